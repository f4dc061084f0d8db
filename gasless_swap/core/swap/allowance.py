"""ERC-20 allowance guard."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ...providers.rpc import ChainReader, RpcError
from ..execution.erc4337_executor import UserOpExecutionError, UserOpExecutor
from ..execution.userop import UserOpReceipt
from .builder import SwapOperationBuilder


logger = logging.getLogger(__name__)


class ApprovalError(Exception):
    """Approval could not be read, submitted or confirmed."""
    pass


class AllowanceGuard:
    """
    Ensures the spender may move ``required_amount`` before a swap is sent.

    Approvals are exact-amount and always confirmed before returning, so a
    following swap operation never races its approval in the bundler.
    """

    def __init__(
        self,
        chain: ChainReader,
        executor: UserOpExecutor,
        builder: SwapOperationBuilder,
    ) -> None:
        self.chain = chain
        self.executor = executor
        self.builder = builder

    async def check_and_approve(
        self,
        token: str,
        owner: str,
        spender: str,
        required_amount: int,
        on_approve: Optional[Callable[[], None]] = None,
    ) -> Optional[UserOpReceipt]:
        """
        Approve ``spender`` for ``required_amount`` if the current allowance is short.

        Returns:
            The approval receipt, or ``None`` when no approval was needed

        Raises:
            ApprovalError: if the allowance read, submission or confirmation fails
        """
        try:
            allowance = await self.chain.get_allowance(token, owner, spender)
        except RpcError as exc:
            raise ApprovalError(f"Failed to read allowance: {exc}") from exc

        if allowance >= required_amount:
            logger.info(f"Allowance sufficient: {allowance} >= {required_amount}")
            return None

        logger.info(f"Allowance {allowance} below {required_amount}, approving {spender}")
        draft = self.builder.build_approval(token, spender, required_amount)
        if on_approve is not None:
            on_approve()

        try:
            receipt = await self.executor.submit(draft)
        except UserOpExecutionError as exc:
            raise ApprovalError(f"Approval failed: {exc}") from exc

        logger.info(f"Approval confirmed: {receipt.transaction_hash}")
        return receipt
