"""
Swap Orchestrator

Sequences route resolution, quoting, building, allowance and submission as
an explicit state machine. Each state's entry condition is the previous
state's result, so an approval is always confirmed before the swap is sent.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Set

from ...providers.rpc import ChainReader, RpcError
from ..execution.erc4337_executor import UserOpExecutor
from ..execution.userop import UserOpReceipt
from .allowance import AllowanceGuard
from .builder import SwapOperationBuilder
from .models import SwapOutcome, SwapRequest, SwapState
from .quote import build_quote, to_base_units
from .route import RouteResolver


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    def __init__(self, from_state: SwapState, to_state: SwapState):
        super().__init__(f"Invalid transition from {from_state.value} to {to_state.value}")
        self.from_state = from_state
        self.to_state = to_state


class SwapOrchestrator:
    """
    Runs one swap from route resolution to a confirmed receipt.

    Not reusable across invocations: a fresh outcome is produced per ``run``
    and nothing is carried over.
    """

    TRANSITIONS: Dict[SwapState, Set[SwapState]] = {
        SwapState.RESOLVING_ROUTE: {
            SwapState.ABORTED_NO_ROUTE,
            SwapState.QUOTING_AMOUNT,
            SwapState.FAILED,
        },
        SwapState.QUOTING_AMOUNT: {
            SwapState.BUILDING_SWAP,
            SwapState.FAILED,
        },
        SwapState.BUILDING_SWAP: {
            SwapState.CHECKING_ALLOWANCE,
            SwapState.SUBMITTING_SWAP,  # native input, no allowance
            SwapState.FAILED,
        },
        SwapState.CHECKING_ALLOWANCE: {
            SwapState.APPROVING_ALLOWANCE,
            SwapState.SUBMITTING_SWAP,
            SwapState.FAILED,
        },
        SwapState.APPROVING_ALLOWANCE: {
            SwapState.SUBMITTING_SWAP,
            SwapState.FAILED,
        },
        SwapState.SUBMITTING_SWAP: {
            SwapState.CONFIRMED,
            SwapState.FAILED,
        },
        SwapState.ABORTED_NO_ROUTE: set(),
        SwapState.CONFIRMED: set(),
        SwapState.FAILED: set(),
    }

    TERMINAL_STATES: Set[SwapState] = {
        SwapState.ABORTED_NO_ROUTE,
        SwapState.CONFIRMED,
        SwapState.FAILED,
    }

    def __init__(
        self,
        resolver: RouteResolver,
        builder: SwapOperationBuilder,
        guard: AllowanceGuard,
        executor: UserOpExecutor,
        chain: Optional[ChainReader] = None,
        *,
        escalate_fees: bool = False,
        on_approval: Optional[Callable[[UserOpReceipt], None]] = None,
    ) -> None:
        self.resolver = resolver
        self.builder = builder
        self.guard = guard
        self.executor = executor
        self.chain = chain
        self.escalate_fees = escalate_fees
        self.on_approval = on_approval
        self._outcome: Optional[SwapOutcome] = None

    @property
    def current_state(self) -> Optional[SwapState]:
        return self._outcome.state if self._outcome else None

    def _transition(self, to_state: SwapState) -> None:
        outcome = self._outcome
        if to_state not in self.TRANSITIONS.get(outcome.state, set()):
            raise InvalidTransitionError(outcome.state, to_state)
        logger.debug(f"Swap state {outcome.state.value} -> {to_state.value}")
        outcome.state = to_state
        outcome.history.append(to_state)

    async def run(self, request: SwapRequest) -> SwapOutcome:
        """
        Execute the swap pipeline once.

        Returns the outcome in ``CONFIRMED`` or ``ABORTED_NO_ROUTE``; any
        failure moves the outcome to ``FAILED`` and the error is re-raised.
        """
        if self._outcome is not None:
            raise RuntimeError("SwapOrchestrator runs once per process")

        self._outcome = SwapOutcome(
            state=SwapState.RESOLVING_ROUTE,
            history=[SwapState.RESOLVING_ROUTE],
        )
        try:
            await self._run(request, self._outcome)
        except Exception as exc:
            failed_in = self._outcome.state
            self._outcome.error = str(exc)
            if failed_in not in self.TERMINAL_STATES:
                self._transition(SwapState.FAILED)
            logger.error(f"Swap failed in {failed_in.value}: {exc}")
            raise
        return self._outcome

    async def _run(self, request: SwapRequest, outcome: SwapOutcome) -> None:
        token_in = request.token_in.address
        token_out = request.token_out.address
        amount_in = to_base_units(request.amount_in, request.token_in.decimals)
        if amount_in <= 0:
            raise ValueError(
                f"Swap amount {request.amount_in} is below one base unit "
                f"({request.token_in.decimals} decimals)"
            )

        # RESOLVING_ROUTE
        route_output = await self.resolver.resolve(token_in, token_out, request.amount_in)
        outcome.route_output = route_output
        if not route_output.has_route:
            self._transition(SwapState.ABORTED_NO_ROUTE)
            logger.info("No route found")
            return

        self._transition(SwapState.QUOTING_AMOUNT)
        quote = build_quote(route_output.output, request.slippage_percent, request.token_out.decimals)
        outcome.quote = quote
        logger.info(f"Quote: raw_output={quote.raw_output} min_output={quote.min_output}")

        self._transition(SwapState.BUILDING_SWAP)
        fee_estimate = None
        if self.escalate_fees and self.chain is not None:
            try:
                fee_estimate = await self.chain.estimate_fees()
            except RpcError as exc:
                logger.warning(f"Fee estimate unavailable, using executor defaults: {exc}")
        swap_operation = self.builder.build_swap(request, route_output, quote, fee_estimate)
        outcome.swap_operation = swap_operation

        if not request.token_in.is_native:
            self._transition(SwapState.CHECKING_ALLOWANCE)
            outcome.approval_receipt = await self.guard.check_and_approve(
                token=token_in,
                owner=self.executor.account.address,
                spender=request.router_address,
                required_amount=amount_in,
                on_approve=lambda: self._transition(SwapState.APPROVING_ALLOWANCE),
            )
            if outcome.approval_receipt is not None and self.on_approval is not None:
                self.on_approval(outcome.approval_receipt)

        self._transition(SwapState.SUBMITTING_SWAP)
        outcome.swap_receipt = await self.executor.submit(swap_operation)

        self._transition(SwapState.CONFIRMED)
        logger.info(f"Swap confirmed: {outcome.swap_receipt.transaction_hash}")
