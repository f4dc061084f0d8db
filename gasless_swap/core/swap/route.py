"""Route resolution over an injected routing oracle."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Protocol, Sequence

from .models import Pool, RouteOutput


logger = logging.getLogger(__name__)

AMOUNT_IN = "amountIn"


class RouteError(Exception):
    """Routing oracle returned a route that cannot be executed."""
    pass


class RoutingOracle(Protocol):
    """Pool discovery and path finding, treated as a black box."""

    async def get_all_pools(self, token_in: str, token_out: str) -> List[Pool]:
        ...

    async def find_best_path(
        self,
        token_in: str,
        token_out: str,
        amount: Decimal,
        amount_type: str,
        pools: Sequence[Pool],
    ) -> RouteOutput:
        ...


class RouteResolver:
    def __init__(self, oracle: RoutingOracle) -> None:
        self.oracle = oracle

    async def resolve(self, token_in: str, token_out: str, amount_in: Decimal) -> RouteOutput:
        """
        Resolve the best exact-input route.

        A missing route comes back as a zero-output ``RouteOutput``; callers
        treat ``output == 0`` as the no-route condition.

        Raises:
            RouteError: if the oracle reports output without matching hop flags
        """
        pools = await self.oracle.get_all_pools(token_in, token_out)
        if not pools:
            logger.info(f"No pools between {token_in} and {token_out}")
            return RouteOutput.empty(token_in, token_out)

        result = await self.oracle.find_best_path(token_in, token_out, amount_in, AMOUNT_IN, pools)
        if not result.has_route:
            return result

        hops = result.hops
        if hops == 0 or len(result.is_buy) != hops or len(result.native_send) != hops:
            raise RouteError(
                f"Route flags do not match path: {hops} hops, "
                f"{len(result.is_buy)} isBuy, {len(result.native_send)} nativeSend"
            )

        logger.info(
            f"Route resolved: {hops} hop(s) via "
            f"{', '.join(pool.orderbook for pool in result.route.path)}, output={result.output}"
        )
        return result
