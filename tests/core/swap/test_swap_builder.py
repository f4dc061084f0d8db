"""
Tests for swap and approval operation building.
"""

from decimal import Decimal

import pytest
from eth_abi import decode

from gasless_swap.core.execution.account import SmartAccount
from gasless_swap.core.execution.userop import FeeEstimate
from gasless_swap.core.execution.userop_builder import selector_from_signature
from gasless_swap.core.swap.builder import (
    ANY_TO_ANY_SWAP_SIGNATURE,
    ANY_TO_ANY_SWAP_TYPES,
    SwapOperationBuilder,
    escalate_fees,
)
from gasless_swap.core.swap.models import (
    NATIVE_TOKEN_ADDRESS,
    Pool,
    Route,
    RouteOutput,
    SwapRequest,
    Token,
)
from gasless_swap.core.swap.quote import build_quote


PRIVATE_KEY = "0x" + "11" * 32
ACCOUNT_ADDRESS = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
ROUTER = "0x2222222222222222222222222222222222222222"
USDC = "0x9a29e9bab1f0b599d1c6c39b60a79596b3875f56"
WIF = "0xd9d972d687bc511d833fe2550c456fec1a857d2c"
MARKET_1 = "0x3333333333333333333333333333333333333333"
MARKET_2 = "0x4444444444444444444444444444444444444444"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def account() -> SmartAccount:
    return SmartAccount(ACCOUNT_ADDRESS, PRIVATE_KEY, kind="kernel_v3")


@pytest.fixture
def builder(account: SmartAccount) -> SwapOperationBuilder:
    return SwapOperationBuilder(account)


def _request(token_in: Token, amount: str = "0.0001") -> SwapRequest:
    return SwapRequest(
        token_in=token_in,
        token_out=Token(WIF, 18, "WIF"),
        amount_in=Decimal(amount),
        slippage_percent=Decimal("5"),
        router_address=ROUTER,
        native_decimals=18,
    )


def _two_hop_route(token_in: str, native_send=(True, False)) -> RouteOutput:
    return RouteOutput(
        output=Decimal("100"),
        route=Route(
            path=(
                Pool(orderbook=MARKET_1, base_token=token_in, quote_token=USDC),
                Pool(orderbook=MARKET_2, base_token=WIF, quote_token=USDC),
            ),
            token_in=token_in,
            token_out=WIF,
        ),
        is_buy=(False, True),
        native_send=native_send,
    )


def _unwrap_kernel_single(call_data: str):
    """Return (target, value, inner calldata bytes) from a Kernel single execute."""
    assert call_data.startswith(selector_from_signature("execute(bytes32,bytes)"))
    mode, execution = decode(["bytes32", "bytes"], bytes.fromhex(call_data[10:]))
    assert mode == b"\x00" * 32
    return "0x" + execution[:20].hex(), int.from_bytes(execution[20:52], "big"), execution[52:]


def _decode_swap(inner: bytes):
    assert "0x" + inner[:4].hex() == selector_from_signature(ANY_TO_ANY_SWAP_SIGNATURE)
    return decode(ANY_TO_ANY_SWAP_TYPES, inner[4:])


# =============================================================================
# Swap operation
# =============================================================================

def test_native_first_hop_attaches_value(builder: SwapOperationBuilder) -> None:
    route_output = _two_hop_route(NATIVE_TOKEN_ADDRESS)
    quote = build_quote(route_output.output, Decimal("5"), 18)

    draft = builder.build_swap(_request(Token(NATIVE_TOKEN_ADDRESS, 18, "MON")), route_output, quote)

    assert draft.value == 10**14
    assert draft.calls[0].value == 10**14
    assert draft.calls[0].to == ROUTER

    target, value, inner = _unwrap_kernel_single(draft.call_data)
    assert target == ROUTER
    assert value == 10**14

    markets, is_buy, native_send, debit, credit, amount, min_out = _decode_swap(inner)
    assert [m.lower() for m in markets] == [MARKET_1, MARKET_2]
    assert list(is_buy) == [False, True]
    assert list(native_send) == [True, False]
    assert debit.lower() == NATIVE_TOKEN_ADDRESS
    assert credit.lower() == WIF
    assert amount == 10**14
    assert min_out == 95 * 10**18


def test_erc20_input_sends_no_value(builder: SwapOperationBuilder) -> None:
    route_output = _two_hop_route(USDC, native_send=(False, False))
    quote = build_quote(route_output.output, Decimal("5"), 18)

    draft = builder.build_swap(_request(Token(USDC, 6, "USDC")), route_output, quote)

    assert draft.value == 0
    _, value, inner = _unwrap_kernel_single(draft.call_data)
    assert value == 0
    _, _, _, _, _, amount, _ = _decode_swap(inner)
    # input amount uses the input token's precision
    assert amount == 100


def test_fees_omitted_without_estimate(builder: SwapOperationBuilder) -> None:
    route_output = _two_hop_route(USDC, native_send=(False, False))
    quote = build_quote(route_output.output, Decimal("5"), 18)

    draft = builder.build_swap(_request(Token(USDC, 6)), route_output, quote)

    assert draft.max_fee_per_gas is None
    assert draft.max_priority_fee_per_gas is None


def test_fees_escalated_with_estimate(builder: SwapOperationBuilder) -> None:
    route_output = _two_hop_route(USDC, native_send=(False, False))
    quote = build_quote(route_output.output, Decimal("5"), 18)
    fees = FeeEstimate(max_fee_per_gas=1_000_000_001, max_priority_fee_per_gas=3)

    draft = builder.build_swap(_request(Token(USDC, 6)), route_output, quote, fees)

    assert draft.max_fee_per_gas == 1_500_000_001
    assert draft.max_priority_fee_per_gas == 4


def test_escalate_fees_integer_ratio() -> None:
    assert escalate_fees(FeeEstimate(100, 10)) == (150, 15)
    assert escalate_fees(FeeEstimate(100, 10), 2, 1) == (200, 20)
    with pytest.raises(ValueError):
        escalate_fees(FeeEstimate(100, 10), 0, 1)


# =============================================================================
# Approval operation
# =============================================================================

def test_build_approval_is_exact_amount(builder: SwapOperationBuilder) -> None:
    draft = builder.build_approval(USDC, ROUTER, 100)

    assert draft.value == 0
    assert draft.calls[0].to == USDC
    target, value, inner = _unwrap_kernel_single(draft.call_data)
    assert target == USDC
    assert value == 0
    assert inner[:4].hex() == "095ea7b3"
    spender, amount = decode(["address", "uint256"], inner[4:])
    assert spender.lower() == ROUTER
    assert amount == 100
