"""
Read-only chain access over JSON-RPC.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .base import JsonRpcError, JsonRpcProvider
from ..core.execution.userop import FeeEstimate
from ..core.execution.userop_builder import (
    build_entrypoint_get_nonce_call,
    build_erc20_allowance_call,
)


logger = logging.getLogger(__name__)

# viem's default base-fee headroom when deriving maxFeePerGas
BASE_FEE_MULTIPLIER_NUMERATOR = 12
BASE_FEE_MULTIPLIER_DENOMINATOR = 10


class RpcError(JsonRpcError):
    """Chain RPC error."""
    pass


def _parse_quantity(value: Optional[str]) -> int:
    if value in (None, "0x", ""):
        return 0
    return int(value, 16)


class ChainReader(JsonRpcProvider):
    """
    Chain reader for the handful of reads a swap needs.

    Constructed once per process and shared by the allowance guard and the
    user operation executor.
    """

    name = "chain"
    timeout_s = 30
    error_class = RpcError

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(rpc_url, timeout_s=timeout_s, client=client)

    async def get_chain_id(self) -> int:
        return _parse_quantity(await self._rpc_call("eth_chainId", []))

    async def call(self, to_address: str, data: str, block: str = "latest") -> str:
        result = await self._rpc_call("eth_call", [{"to": to_address, "data": data}, block])
        if not isinstance(result, str):
            raise RpcError(f"Invalid eth_call response: {result!r}")
        return result

    async def get_allowance(self, token_address: str, owner_address: str, spender_address: str) -> int:
        """Read ERC-20 allowance(owner, spender). Never cached."""
        result = await self.call(token_address, build_erc20_allowance_call(owner_address, spender_address))
        return _parse_quantity(result)

    async def get_code(self, address: str) -> str:
        result = await self._rpc_call("eth_getCode", [address, "latest"])
        return result or "0x"

    async def is_deployed(self, address: str) -> bool:
        return (await self.get_code(address)) not in ("0x", "0x0")

    async def get_entry_point_nonce(self, entry_point: str, sender: str, key: int = 0) -> int:
        result = await self.call(entry_point, build_entrypoint_get_nonce_call(sender, key))
        return _parse_quantity(result)

    async def estimate_fees(self) -> FeeEstimate:
        """
        Estimate EIP-1559 fees from the latest block.

        Falls back to ``eth_gasPrice`` for both fields on chains without a
        base fee.
        """
        block = await self._rpc_call("eth_getBlockByNumber", ["latest", False])
        base_fee = (block or {}).get("baseFeePerGas")

        if base_fee is None:
            gas_price = _parse_quantity(await self._rpc_call("eth_gasPrice", []))
            logger.debug(f"Legacy fee estimate: gasPrice={gas_price}")
            return FeeEstimate(max_fee_per_gas=gas_price, max_priority_fee_per_gas=gas_price)

        try:
            priority_fee = _parse_quantity(await self._rpc_call("eth_maxPriorityFeePerGas", []))
        except RpcError as exc:
            logger.warning(f"eth_maxPriorityFeePerGas unavailable, using zero tip: {exc}")
            priority_fee = 0

        max_fee = (
            _parse_quantity(base_fee) * BASE_FEE_MULTIPLIER_NUMERATOR // BASE_FEE_MULTIPLIER_DENOMINATOR
            + priority_fee
        )
        return FeeEstimate(max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority_fee)
