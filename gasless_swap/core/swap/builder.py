"""
Swap and approval operation builders.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from eth_abi import encode
from eth_utils import to_checksum_address

from ..execution.account import SmartAccount
from ..execution.userop import Call, FeeEstimate, UserOperationDraft
from ..execution.userop_builder import build_erc20_approve_data, selector_from_signature
from .models import Quote, RouteOutput, SwapRequest
from .quote import to_base_units


logger = logging.getLogger(__name__)

ANY_TO_ANY_SWAP_SIGNATURE = "anyToAnySwap(address[],bool[],bool[],address,address,uint256,uint256)"
ANY_TO_ANY_SWAP_TYPES = ["address[]", "bool[]", "bool[]", "address", "address", "uint256", "uint256"]


def encode_any_to_any_swap(
    market_addresses: Sequence[str],
    is_buy: Sequence[bool],
    native_send: Sequence[bool],
    debit_token: str,
    credit_token: str,
    amount: int,
    min_amount_out: int,
) -> str:
    """
    Build calldata for the router's anyToAnySwap.
    """
    args = encode(
        ANY_TO_ANY_SWAP_TYPES,
        [
            [to_checksum_address(address) for address in market_addresses],
            list(is_buy),
            list(native_send),
            to_checksum_address(debit_token),
            to_checksum_address(credit_token),
            amount,
            min_amount_out,
        ],
    )
    return selector_from_signature(ANY_TO_ANY_SWAP_SIGNATURE) + args.hex()


def escalate_fees(
    fees: FeeEstimate,
    numerator: int = 15,
    denominator: int = 10,
) -> Tuple[int, int]:
    """Scale (max_fee, max_priority_fee) by numerator/denominator in integer math."""
    if numerator <= 0 or denominator <= 0:
        raise ValueError("Fee multiplier terms must be positive")
    return (
        fees.max_fee_per_gas * numerator // denominator,
        fees.max_priority_fee_per_gas * numerator // denominator,
    )


class SwapOperationBuilder:
    """
    Builds unsigned operations for the swap router.

    Pure construction: nothing here touches the network.
    """

    def __init__(
        self,
        account: SmartAccount,
        *,
        fee_multiplier_numerator: int = 15,
        fee_multiplier_denominator: int = 10,
    ) -> None:
        self.account = account
        self.fee_multiplier_numerator = fee_multiplier_numerator
        self.fee_multiplier_denominator = fee_multiplier_denominator

    def build_swap(
        self,
        request: SwapRequest,
        route_output: RouteOutput,
        quote: Quote,
        fee_estimate: Optional[FeeEstimate] = None,
    ) -> UserOperationDraft:
        """
        Build the router call for a resolved route.

        Value is attached only when the first hop is funded with native
        currency. Fees are escalated only when an estimate is supplied.
        """
        amount_in = to_base_units(request.amount_in, request.token_in.decimals)
        data = encode_any_to_any_swap(
            market_addresses=[pool.orderbook for pool in route_output.route.path],
            is_buy=route_output.is_buy,
            native_send=route_output.native_send,
            debit_token=route_output.route.token_in,
            credit_token=route_output.route.token_out,
            amount=amount_in,
            min_amount_out=quote.min_output,
        )

        value = 0
        if route_output.native_send and route_output.native_send[0]:
            value = to_base_units(request.amount_in, request.native_decimals)

        max_fee = priority_fee = None
        if fee_estimate is not None:
            max_fee, priority_fee = escalate_fees(
                fee_estimate,
                self.fee_multiplier_numerator,
                self.fee_multiplier_denominator,
            )

        call = Call(to=request.router_address, value=value, data=data)
        logger.debug(f"Built swap call: amount_in={amount_in} min_out={quote.min_output} value={value}")
        return UserOperationDraft(
            calls=(call,),
            call_data=self.account.encode_calls([call]),
            value=value,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=priority_fee,
            description=f"Swap {request.token_in.symbol or request.token_in.address} -> "
                        f"{request.token_out.symbol or request.token_out.address}",
        )

    def build_approval(self, token: str, spender: str, amount: int) -> UserOperationDraft:
        """Exact-amount ERC-20 approval."""
        call = Call(to=token, value=0, data=build_erc20_approve_data(spender, amount))
        return UserOperationDraft(
            calls=(call,),
            call_data=self.account.encode_calls([call]),
            value=0,
            description=f"Approve {spender[:10]}... to spend {amount}",
        )
