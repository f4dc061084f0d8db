"""
ERC-4337 Bundler Provider.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from .base import JsonRpcError, JsonRpcProvider
from ..core.execution.userop import UserOperation, UserOpGasEstimate, UserOpReceipt


class BundlerError(JsonRpcError):
    """Bundler provider error."""
    pass


class BundlerProvider(JsonRpcProvider):
    name = "bundler"
    timeout_s = 20
    error_class = BundlerError

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(rpc_url, timeout_s=timeout_s, client=client)

    async def supported_entry_points(self) -> List[str]:
        result = await self._rpc_call("eth_supportedEntryPoints", [])
        if not isinstance(result, list):
            raise BundlerError("Invalid bundler response for eth_supportedEntryPoints")
        return result

    async def send_user_operation(
        self,
        user_op: UserOperation,
        entry_point: str,
    ) -> str:
        if not await self.ready():
            raise BundlerError("Bundler provider is not configured")

        result = await self._rpc_call(
            "eth_sendUserOperation",
            [user_op.to_rpc_dict(), entry_point],
        )
        if not isinstance(result, str):
            raise BundlerError("Invalid bundler response for eth_sendUserOperation")
        return result

    async def estimate_user_operation_gas(
        self,
        user_op: UserOperation,
        entry_point: str,
    ) -> UserOpGasEstimate:
        if not await self.ready():
            raise BundlerError("Bundler provider is not configured")

        result = await self._rpc_call(
            "eth_estimateUserOperationGas",
            [user_op.to_rpc_dict(), entry_point],
        )
        if not isinstance(result, dict):
            raise BundlerError("Invalid bundler response for eth_estimateUserOperationGas")
        return UserOpGasEstimate.from_rpc(result)

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOpReceipt]:
        if not await self.ready():
            raise BundlerError("Bundler provider is not configured")

        result = await self._rpc_call(
            "eth_getUserOperationReceipt",
            [user_op_hash],
        )
        if not result:
            return None
        return self._parse_receipt(user_op_hash, result)

    @staticmethod
    def _parse_receipt(user_op_hash: str, result: Dict[str, Any]) -> UserOpReceipt:
        receipt = result.get("receipt") or {}
        success = result.get("success")
        if success is None:
            success = receipt.get("status") == "0x1"

        return UserOpReceipt(
            user_op_hash=user_op_hash,
            success=bool(success),
            transaction_hash=receipt.get("transactionHash"),
            block_number=int(receipt.get("blockNumber"), 16) if receipt.get("blockNumber") else None,
            gas_used=int(result.get("actualGasUsed"), 16) if result.get("actualGasUsed") else None,
            reason=result.get("reason") or None,
        )
