"""
Tests for the Kuru routing client.
"""

import json
from decimal import Decimal

import httpx
import pytest

from gasless_swap.core.swap.models import NATIVE_TOKEN_ADDRESS, Pool
from gasless_swap.providers.kuru import KuruRoutingProvider, RoutingOracleError


KURU_API = "https://api.kuru.test/"
USDC = "0x9a29e9bab1f0b599d1c6c39b60a79596b3875f56"
WIF = "0xd9d972d687bc511d833fe2550c456fec1a857d2c"
MARKET_1 = "0x3333333333333333333333333333333333333333"
MARKET_2 = "0x4444444444444444444444444444444444444444"


def _provider(responses, requests) -> KuruRoutingProvider:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json=responses[request.url.path])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return KuruRoutingProvider(KURU_API, client=client)


@pytest.mark.asyncio
async def test_get_all_pools_requests_every_pair_orientation():
    requests = []
    provider = _provider(
        {
            "/api/v1/markets/filtered": {
                "data": [{"market": MARKET_1, "baseasset": WIF, "quoteasset": USDC}],
            }
        },
        requests,
    )

    pools = await provider.get_all_pools(USDC, WIF)

    assert pools == [Pool(orderbook=MARKET_1, base_token=WIF, quote_token=USDC)]
    path, body = requests[0]
    assert path == "/api/v1/markets/filtered"
    pairs = {(pair["baseToken"], pair["quoteToken"]) for pair in body["pairs"]}
    assert (USDC, WIF) in pairs
    assert (WIF, USDC) in pairs
    assert (NATIVE_TOKEN_ADDRESS, WIF) in pairs
    assert len(pairs) == 6


@pytest.mark.asyncio
async def test_get_all_pools_empty():
    provider = _provider({"/api/v1/markets/filtered": {"data": []}}, [])

    assert await provider.get_all_pools(USDC, WIF) == []


@pytest.mark.asyncio
async def test_find_best_path_parses_route():
    requests = []
    provider = _provider(
        {
            "/api/v1/route": {
                "output": 123.45,
                "route": {
                    "path": [
                        {"orderbook": MARKET_1, "baseToken": NATIVE_TOKEN_ADDRESS, "quoteToken": USDC},
                        {"orderbook": MARKET_2, "baseToken": WIF, "quoteToken": USDC},
                    ],
                    "tokenIn": USDC,
                    "tokenOut": WIF,
                },
                "isBuy": [False, True],
                "nativeSend": [False, False],
            }
        },
        requests,
    )
    pools = [Pool(MARKET_1, NATIVE_TOKEN_ADDRESS, USDC), Pool(MARKET_2, WIF, USDC)]

    result = await provider.find_best_path(USDC, WIF, Decimal("0.0001"), "amountIn", pools)

    assert result.output == Decimal("123.45")
    assert result.has_route
    assert result.hops == 2
    assert [pool.orderbook for pool in result.route.path] == [MARKET_1, MARKET_2]
    assert result.is_buy == (False, True)
    assert result.native_send == (False, False)

    _, body = requests[0]
    assert body["amount"] == "0.0001"
    assert body["amountType"] == "amountIn"
    assert body["pools"][1] == {"orderbook": MARKET_2, "baseToken": WIF, "quoteToken": USDC}


@pytest.mark.asyncio
async def test_find_best_path_without_output():
    provider = _provider({"/api/v1/route": {"output": 0, "route": {"path": []}}}, [])

    result = await provider.find_best_path(USDC, WIF, Decimal("1"), "amountIn", [])

    assert not result.has_route
    assert result.route.token_in == USDC


@pytest.mark.asyncio
async def test_malformed_market_entry():
    provider = _provider({"/api/v1/markets/filtered": {"data": [{"market": MARKET_1}]}}, [])

    with pytest.raises(RoutingOracleError):
        await provider.get_all_pools(USDC, WIF)


@pytest.mark.asyncio
async def test_health_check_reports_configuration_without_requests():
    requests = []
    provider = _provider({}, requests)

    assert await provider.health_check() == {"status": "configured", "base_url": "https://api.kuru.test"}
    assert requests == []
    assert (await KuruRoutingProvider("").health_check())["status"] == "disabled"
