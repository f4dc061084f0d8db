"""Typed models used by the swap pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from ..execution.kernel import ZERO_ADDRESS
from ..execution.userop import UserOperationDraft, UserOpReceipt


NATIVE_TOKEN_ADDRESS = ZERO_ADDRESS


def is_native(address: str) -> bool:
    return address.lower() == NATIVE_TOKEN_ADDRESS


@dataclass(frozen=True)
class Token:
    address: str
    decimals: int
    symbol: str = ""

    @property
    def is_native(self) -> bool:
        return is_native(self.address)


@dataclass(frozen=True)
class Pool:
    """An orderbook market; base/quote give its buy/sell orientation."""

    orderbook: str
    base_token: str
    quote_token: str


@dataclass(frozen=True)
class Route:
    path: Tuple[Pool, ...]
    token_in: str
    token_out: str


@dataclass(frozen=True)
class RouteOutput:
    """Best path reported by the routing oracle for one swap attempt."""

    output: Decimal
    route: Route
    is_buy: Tuple[bool, ...] = ()
    native_send: Tuple[bool, ...] = ()

    @classmethod
    def empty(cls, token_in: str, token_out: str) -> "RouteOutput":
        return cls(output=Decimal(0), route=Route(path=(), token_in=token_in, token_out=token_out))

    @property
    def has_route(self) -> bool:
        return self.output > 0

    @property
    def hops(self) -> int:
        return len(self.route.path)


@dataclass(frozen=True)
class Quote:
    raw_output: Decimal
    min_output: int  # token-out smallest unit
    decimals: int
    slippage_percent: Decimal


@dataclass(frozen=True)
class SwapRequest:
    token_in: Token
    token_out: Token
    amount_in: Decimal
    slippage_percent: Decimal
    router_address: str
    native_decimals: int = 18


class SwapState(str, Enum):
    """Swap pipeline states."""
    RESOLVING_ROUTE = "resolving_route"
    ABORTED_NO_ROUTE = "aborted_no_route"
    QUOTING_AMOUNT = "quoting_amount"
    BUILDING_SWAP = "building_swap"
    CHECKING_ALLOWANCE = "checking_allowance"
    APPROVING_ALLOWANCE = "approving_allowance"
    SUBMITTING_SWAP = "submitting_swap"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class SwapOutcome:
    """Result of one pipeline run."""

    state: SwapState
    route_output: Optional[RouteOutput] = None
    quote: Optional[Quote] = None
    swap_operation: Optional[UserOperationDraft] = None
    approval_receipt: Optional[UserOpReceipt] = None
    swap_receipt: Optional[UserOpReceipt] = None
    history: List[SwapState] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.state in {SwapState.CONFIRMED, SwapState.ABORTED_NO_ROUTE}
