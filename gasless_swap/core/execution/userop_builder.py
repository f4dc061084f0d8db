"""
UserOperation calldata builders.
"""

from __future__ import annotations

from typing import Sequence

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from .userop import Call


ERC20_APPROVE_SELECTOR = "0x095ea7b3"  # approve(address,uint256)
ERC20_ALLOWANCE_SELECTOR = "0xdd62ed3e"  # allowance(address,address)

SIMPLE_EXECUTE_SIGNATURE = "execute(address,uint256,bytes)"
KERNEL_EXECUTE_SIGNATURE = "execute(bytes32,bytes)"

# ERC-7579 execution modes: callType byte followed by zeroed execType/selector/payload
KERNEL_MODE_SINGLE = b"\x00" * 32
KERNEL_MODE_BATCH = b"\x01" + b"\x00" * 31


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def _encode_uint(value: int) -> str:
    if value < 0:
        raise ValueError("Value must be non-negative")
    return hex(value)[2:].rjust(64, "0")


def _encode_address(address: str) -> str:
    addr = _strip_0x(address).lower()
    if len(addr) != 40:
        raise ValueError(f"Invalid address length: {address}")
    return addr.rjust(64, "0")


def _encode_bytes(data: str) -> str:
    hex_data = _strip_0x(data)
    if len(hex_data) % 2 != 0:
        raise ValueError("Byte data must have an even-length hex string")
    data_len = len(hex_data) // 2
    padded_len = ((data_len + 31) // 32) * 32
    padding = "0" * ((padded_len - data_len) * 2)
    return _encode_uint(data_len) + hex_data + padding


def selector_from_signature(signature: str) -> str:
    selector = keccak(text=signature)[:4].hex()
    return f"0x{selector}"


def build_erc20_approve_data(spender_address: str, amount: int) -> str:
    """
    Build calldata for approve(address,uint256).
    """
    return ERC20_APPROVE_SELECTOR + _encode_address(spender_address) + _encode_uint(amount)


def build_erc20_allowance_call(owner_address: str, spender_address: str) -> str:
    """
    Build calldata for allowance(address,address).
    """
    return ERC20_ALLOWANCE_SELECTOR + _encode_address(owner_address) + _encode_address(spender_address)


def build_entrypoint_get_nonce_call(sender: str, key: int = 0) -> str:
    """
    Build calldata for EntryPoint.getNonce(address,uint192).
    """
    selector = selector_from_signature("getNonce(address,uint192)")
    head = _encode_address(sender) + _encode_uint(key)
    return selector + head


def build_execute_call_data(to_address: str, value_wei: int, data: str) -> str:
    """
    Build calldata for execute(address,uint256,bytes).
    """
    selector = selector_from_signature(SIMPLE_EXECUTE_SIGNATURE)
    head = (
        _encode_address(to_address)
        + _encode_uint(value_wei)
        + _encode_uint(96)  # offset to bytes data
    )
    tail = _encode_bytes(data)
    return selector + head + tail


def build_kernel_execute_call_data(calls: Sequence[Call]) -> str:
    """
    Build calldata for the ERC-7579 execute(bytes32,bytes) entry of a Kernel v3 account.

    A single call is packed as ``target || value || data``; several calls are
    ABI-encoded as an ``(address,uint256,bytes)[]`` batch.
    """
    if not calls:
        raise ValueError("At least one call is required")

    if len(calls) == 1:
        call = calls[0]
        mode = KERNEL_MODE_SINGLE
        execution = (
            bytes.fromhex(_strip_0x(call.to))
            + call.value.to_bytes(32, "big")
            + bytes.fromhex(_strip_0x(call.data))
        )
    else:
        mode = KERNEL_MODE_BATCH
        execution = encode(
            ["(address,uint256,bytes)[]"],
            [[
                (to_checksum_address(call.to), call.value, bytes.fromhex(_strip_0x(call.data)))
                for call in calls
            ]],
        )

    selector = selector_from_signature(KERNEL_EXECUTE_SIGNATURE)
    return selector + encode(["bytes32", "bytes"], [mode, execution]).hex()
