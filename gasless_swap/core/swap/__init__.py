"""
Swap pipeline: route, quote, build, allowance and orchestration.

Only the models and pure quote helpers are re-exported here; import the
service classes from their modules.
"""

from .models import (
    NATIVE_TOKEN_ADDRESS,
    Pool,
    Quote,
    Route,
    RouteOutput,
    SwapOutcome,
    SwapRequest,
    SwapState,
    Token,
    is_native,
)

from .quote import (
    build_quote,
    compute_min_output,
    to_base_units,
)

__all__ = [
    # Models
    "NATIVE_TOKEN_ADDRESS",
    "Pool",
    "Quote",
    "Route",
    "RouteOutput",
    "SwapOutcome",
    "SwapRequest",
    "SwapState",
    "Token",
    "is_native",
    # Quote
    "build_quote",
    "compute_min_output",
    "to_base_units",
]
