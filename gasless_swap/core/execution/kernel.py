"""
Kernel v3.1 account derivation.

A Kernel account is deployed through the meta factory's
``deployWithFactory(factory, initData, salt)``; ``initData`` is the
account's ``initialize`` call with the ECDSA validator as root validator and
the owner address as its data. The address is a pure function of
``initData`` and the salt, so it is read from the factory's ``getAddress``
before the account exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from eth_abi import decode, encode
from eth_utils import to_checksum_address

from .userop_builder import selector_from_signature


logger = logging.getLogger(__name__)

KERNEL_V3_1_FACTORY = "0xaac5D4240AF87249B3f71BC8E4A2cae074A3E419"
KERNEL_V3_1_META_FACTORY = "0xd703aaE79538628d27099B8c4f621bE4CCd142d5"
ECDSA_VALIDATOR_V3_1 = "0x845ADb2C711129d4f3966735eD98a9F09fC4cE57"

KERNEL_INITIALIZE_SIGNATURE = "initialize(bytes21,address,bytes,bytes,bytes[])"
META_FACTORY_DEPLOY_SIGNATURE = "deployWithFactory(address,bytes,bytes32)"
FACTORY_GET_ADDRESS_SIGNATURE = "getAddress(bytes,bytes32)"

VALIDATOR_TYPE_ROOT = b"\x01"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class KernelDeployment:
    """Everything needed to deploy one Kernel account through the meta factory."""
    factory: str
    meta_factory: str
    init_data: str
    salt: bytes

    @property
    def factory_data(self) -> str:
        return build_deploy_with_factory_data(self.factory, self.init_data, self.salt)


def _salt(index: int) -> bytes:
    if index < 0:
        raise ValueError("Account index must be non-negative")
    return index.to_bytes(32, "big")


def build_kernel_initialize_data(validator: str, owner: str) -> str:
    """
    Build calldata for Kernel.initialize with an ECDSA root validator.
    """
    root_validator = VALIDATOR_TYPE_ROOT + bytes.fromhex(to_checksum_address(validator)[2:])
    args = encode(
        ["bytes21", "address", "bytes", "bytes", "bytes[]"],
        [
            root_validator,
            ZERO_ADDRESS,  # no hook
            bytes.fromhex(to_checksum_address(owner)[2:]),
            b"",
            [],
        ],
    )
    return selector_from_signature(KERNEL_INITIALIZE_SIGNATURE) + args.hex()


def build_deploy_with_factory_data(factory: str, init_data: str, salt: bytes) -> str:
    args = encode(
        ["address", "bytes", "bytes32"],
        [to_checksum_address(factory), bytes.fromhex(init_data[2:]), salt],
    )
    return selector_from_signature(META_FACTORY_DEPLOY_SIGNATURE) + args.hex()


def build_get_address_call(init_data: str, salt: bytes) -> str:
    args = encode(["bytes", "bytes32"], [bytes.fromhex(init_data[2:]), salt])
    return selector_from_signature(FACTORY_GET_ADDRESS_SIGNATURE) + args.hex()


def kernel_deployment(
    owner: str,
    *,
    index: int = 0,
    factory: str = KERNEL_V3_1_FACTORY,
    meta_factory: str = KERNEL_V3_1_META_FACTORY,
    validator: str = ECDSA_VALIDATOR_V3_1,
) -> KernelDeployment:
    return KernelDeployment(
        factory=to_checksum_address(factory),
        meta_factory=to_checksum_address(meta_factory),
        init_data=build_kernel_initialize_data(validator, owner),
        salt=_salt(index),
    )


async def resolve_kernel_address(chain, deployment: KernelDeployment) -> str:
    """
    Read the counterfactual account address from the Kernel factory.

    ``chain`` is anything with an async ``call(to, data)`` returning hex.
    """
    result = await chain.call(deployment.factory, build_get_address_call(deployment.init_data, deployment.salt))
    (address,) = decode(["address"], bytes.fromhex(result[2:]))
    address = to_checksum_address(address)
    logger.info(f"Resolved Kernel account address {address}")
    return address
