"""
ERC-4337 UserOperation models and helpers.

Targets the EntryPoint v0.7 RPC shape (factory/factoryData instead of
initCode, no paymaster fields when unsponsored).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from eth_abi import encode
from eth_utils import keccak, to_checksum_address, to_hex


def _to_hex(value: int) -> str:
    return hex(value)


def _to_bytes(data: Optional[str]) -> bytes:
    if not data:
        return b""
    return bytes.fromhex(data[2:] if data.startswith("0x") else data)


@dataclass(frozen=True)
class Call:
    """One call executed by the smart account."""
    to: str
    value: int = 0
    data: str = "0x"


@dataclass(frozen=True)
class UserOperationDraft:
    """
    Unsigned intent for one on-chain action.

    ``call_data`` is already wrapped in the account's execute entry point;
    fee overrides left as ``None`` defer to the executor's defaults.
    """
    calls: Tuple[Call, ...]
    call_data: str
    value: int = 0
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    description: str = ""


@dataclass(frozen=True)
class UserOperation:
    """
    ERC-4337 v0.7 UserOperation payload.

    Values should be supplied in raw units (wei / gas units) and are encoded
    as hex for RPC calls.
    """
    sender: str
    nonce: int
    call_data: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    factory: Optional[str] = None
    factory_data: Optional[str] = None
    signature: str = "0x"

    @property
    def init_code(self) -> bytes:
        if not self.factory:
            return b""
        return _to_bytes(self.factory) + _to_bytes(self.factory_data)

    def to_rpc_dict(self) -> Dict[str, Any]:
        payload = {
            "sender": self.sender,
            "nonce": _to_hex(self.nonce),
            "callData": self.call_data,
            "callGasLimit": _to_hex(self.call_gas_limit),
            "verificationGasLimit": _to_hex(self.verification_gas_limit),
            "preVerificationGas": _to_hex(self.pre_verification_gas),
            "maxFeePerGas": _to_hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _to_hex(self.max_priority_fee_per_gas),
            "signature": self.signature,
        }
        if self.factory:
            payload["factory"] = self.factory
            payload["factoryData"] = self.factory_data or "0x"
        return payload

    def pack(self) -> bytes:
        """ABI-encode the fields covered by the v0.7 userOpHash."""
        account_gas_limits = (
            self.verification_gas_limit.to_bytes(16, "big")
            + self.call_gas_limit.to_bytes(16, "big")
        )
        gas_fees = (
            self.max_priority_fee_per_gas.to_bytes(16, "big")
            + self.max_fee_per_gas.to_bytes(16, "big")
        )
        return encode(
            ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
            [
                to_checksum_address(self.sender),
                self.nonce,
                keccak(self.init_code),
                keccak(_to_bytes(self.call_data)),
                account_gas_limits,
                self.pre_verification_gas,
                gas_fees,
                keccak(b""),  # paymasterAndData
            ],
        )

    def hash(self, entry_point: str, chain_id: int) -> str:
        """Return the userOpHash the EntryPoint hands to the account's validator."""
        inner = keccak(self.pack())
        return to_hex(
            keccak(encode(["bytes32", "address", "uint256"], [inner, to_checksum_address(entry_point), chain_id]))
        )


@dataclass
class UserOpGasEstimate:
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "UserOpGasEstimate":
        def parse_hex(value: Optional[str]) -> Optional[int]:
            if value is None:
                return None
            return int(value, 16)

        return cls(
            call_gas_limit=parse_hex(data.get("callGasLimit")) or 0,
            verification_gas_limit=parse_hex(data.get("verificationGasLimit")) or 0,
            pre_verification_gas=parse_hex(data.get("preVerificationGas")) or 0,
        )


@dataclass(frozen=True)
class FeeEstimate:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int


@dataclass
class UserOpReceipt:
    user_op_hash: str
    success: bool
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    reason: Optional[str] = None
