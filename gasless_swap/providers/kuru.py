"""Async client for the Kuru routing service.

Two calls back the route resolver:

- ``POST /api/v1/markets/filtered`` lists the orderbooks trading any pair
  between the input token, the output token and the intermediate base tokens.
- ``POST /api/v1/route`` returns the best path over those orderbooks for an
  exact input amount.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from itertools import combinations
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from .base import Provider
from ..core.swap.models import NATIVE_TOKEN_ADDRESS, Pool, Route, RouteOutput


logger = logging.getLogger(__name__)

MARKETS_PATH = "/api/v1/markets/filtered"
ROUTE_PATH = "/api/v1/route"


class RoutingOracleError(Exception):
    """Routing service returned an unusable response."""
    pass


def _parse_pool(item: Dict[str, Any]) -> Pool:
    try:
        return Pool(
            orderbook=item.get("market") or item["orderbook"],
            base_token=item.get("baseasset") or item["baseToken"],
            quote_token=item.get("quoteasset") or item["quoteToken"],
        )
    except KeyError as exc:
        raise RoutingOracleError(f"Malformed market entry: missing {exc}") from exc


def _pool_payload(pool: Pool) -> Dict[str, str]:
    return {"orderbook": pool.orderbook, "baseToken": pool.base_token, "quoteToken": pool.quote_token}


class KuruRoutingProvider(Provider):
    """Thin wrapper around the Kuru market and routing endpoints."""

    name = "kuru"
    timeout_s = 20

    def __init__(
        self,
        base_url: str,
        *,
        base_tokens: Sequence[str] = (NATIVE_TOKEN_ADDRESS,),
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.base_tokens = tuple(base_tokens)
        if timeout_s is not None:
            self.timeout_s = timeout_s
        self._client = client

    async def ready(self) -> bool:
        return bool(self.base_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "Routing API not configured"}
        return {"status": "configured", "base_url": self.base_url}

    async def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)

        response = await self._client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()

    def _pairs(self, token_in: str, token_out: str) -> List[Dict[str, str]]:
        tokens: List[str] = []
        for token in (token_in, token_out, *self.base_tokens):
            if token.lower() not in {t.lower() for t in tokens}:
                tokens.append(token)

        pairs = []
        for first, second in combinations(tokens, 2):
            pairs.append({"baseToken": first, "quoteToken": second})
            pairs.append({"baseToken": second, "quoteToken": first})
        return pairs

    async def get_all_pools(self, token_in: str, token_out: str) -> List[Pool]:
        payload = await self._post(MARKETS_PATH, {"pairs": self._pairs(token_in, token_out)})
        items: Iterable[Dict[str, Any]] = (payload or {}).get("data") or []
        pools = [_parse_pool(item) for item in items]
        logger.debug(f"Fetched {len(pools)} pools for {token_in} -> {token_out}")
        return pools

    async def find_best_path(
        self,
        token_in: str,
        token_out: str,
        amount: Decimal,
        amount_type: str,
        pools: Sequence[Pool],
    ) -> RouteOutput:
        payload = await self._post(
            ROUTE_PATH,
            {
                "tokenIn": token_in,
                "tokenOut": token_out,
                "amount": str(amount),
                "amountType": amount_type,
                "pools": [_pool_payload(pool) for pool in pools],
            },
        )
        if not isinstance(payload, dict):
            raise RoutingOracleError(f"Invalid route response: {payload!r}")

        try:
            # str() first so float outputs keep their printed digits
            output = Decimal(str(payload.get("output") or 0))
        except InvalidOperation as exc:
            raise RoutingOracleError(f"Invalid route output: {payload.get('output')!r}") from exc

        route = payload.get("route") or {}
        return RouteOutput(
            output=output,
            route=Route(
                path=tuple(_parse_pool(item) for item in route.get("path") or []),
                token_in=route.get("tokenIn") or token_in,
                token_out=route.get("tokenOut") or token_out,
            ),
            is_buy=tuple(bool(flag) for flag in payload.get("isBuy") or []),
            native_send=tuple(bool(flag) for flag in payload.get("nativeSend") or []),
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
