"""
Smart account execution context.

Holds the account address, its root validator signer and the execute
calldata layout. Nonce and deployment state are read by the executor.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Sequence

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address, to_hex

from .kernel import (
    ECDSA_VALIDATOR_V3_1,
    KERNEL_V3_1_FACTORY,
    KERNEL_V3_1_META_FACTORY,
    kernel_deployment,
    resolve_kernel_address,
)
from .userop import Call, UserOperation
from .userop_builder import build_execute_call_data, build_kernel_execute_call_data


# Kernel v3 ECDSA validator dummy signature, valid-length for gas estimation
DUMMY_ECDSA_SIGNATURE = (
    "0xfffffffffffffffffffffffffffffff000000000000000000000000000000007"
    "aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1c"
)


class SmartAccount:
    """
    ERC-4337 smart account whose root validator is an ECDSA key.

    Kernel v3 accounts take ERC-7579 ``execute(bytes32,bytes)``; ``simple``
    accounts take ``execute(address,uint256,bytes)`` and a single call.
    """

    def __init__(
        self,
        address: str,
        private_key: str,
        *,
        kind: str = "kernel_v3",
        factory: Optional[str] = None,
        factory_data: Optional[str] = None,
    ) -> None:
        if kind not in ("kernel_v3", "simple"):
            raise ValueError(f"Unsupported account kind: {kind}")
        self.address = to_checksum_address(address)
        self.kind = kind
        self.factory = factory
        self.factory_data = factory_data
        self._signer = Account.from_key(private_key)

    @classmethod
    async def from_kernel_factory(
        cls,
        chain,
        private_key: str,
        *,
        index: int = 0,
        factory: str = KERNEL_V3_1_FACTORY,
        meta_factory: str = KERNEL_V3_1_META_FACTORY,
        validator: str = ECDSA_VALIDATOR_V3_1,
    ) -> "SmartAccount":
        """
        Derive the Kernel v3.1 account owned by ``private_key``.

        The returned account carries the meta factory and its deploy calldata;
        the executor only attaches them while the address has no code.
        """
        owner = Account.from_key(private_key).address
        deployment = kernel_deployment(
            owner,
            index=index,
            factory=factory,
            meta_factory=meta_factory,
            validator=validator,
        )
        address = await resolve_kernel_address(chain, deployment)
        return cls(
            address,
            private_key,
            kind="kernel_v3",
            factory=deployment.meta_factory,
            factory_data=deployment.factory_data,
        )

    @property
    def signer_address(self) -> str:
        return self._signer.address

    @property
    def dummy_signature(self) -> str:
        return DUMMY_ECDSA_SIGNATURE

    def encode_calls(self, calls: Sequence[Call]) -> str:
        if self.kind == "kernel_v3":
            return build_kernel_execute_call_data(calls)

        if len(calls) != 1:
            raise ValueError("Simple accounts execute exactly one call per operation")
        call = calls[0]
        return build_execute_call_data(call.to, call.value, call.data)

    def sign_user_operation(self, user_op: UserOperation, entry_point: str, chain_id: int) -> UserOperation:
        """Return a signed copy; the input operation is left untouched."""
        user_op_hash = user_op.hash(entry_point, chain_id)
        signed = self._signer.sign_message(encode_defunct(hexstr=user_op_hash))
        return replace(user_op, signature=to_hex(signed.signature))
