"""Command line entry point: run one gasless swap and exit."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import structlog

from .config import ConfigurationError, Settings, load_settings
from .core.execution.account import SmartAccount
from .core.execution.erc4337_executor import UserOpExecutor
from .core.execution.userop import UserOpReceipt
from .core.swap.allowance import AllowanceGuard
from .core.swap.builder import SwapOperationBuilder
from .core.swap.models import SwapOutcome, SwapRequest, SwapState, Token
from .core.swap.orchestrator import SwapOrchestrator
from .core.swap.route import RouteResolver
from .logging_config import setup_logging
from .providers.bundler import BundlerProvider
from .providers.kuru import KuruRoutingProvider
from .providers.rpc import ChainReader, RpcError


logger = logging.getLogger(__name__)


class SwapServices:
    """
    Service objects constructed once at process start.

    Providers exist from construction; the account and everything that
    depends on it are built by ``connect`` once the endpoints are verified.
    """

    def __init__(self, settings: Settings) -> None:
        timeout = settings.request_timeout_seconds
        self.settings = settings
        self.chain = ChainReader(settings.rpc_url, timeout_s=timeout)
        self.bundler = BundlerProvider(settings.bundler_url, timeout_s=timeout)
        self.routing = KuruRoutingProvider(settings.kuru_api, timeout_s=timeout)
        self.account: Optional[SmartAccount] = None
        self.executor: Optional[UserOpExecutor] = None
        self.orchestrator: Optional[SwapOrchestrator] = None

    async def connect(self) -> SmartAccount:
        await self.verify_chain()
        self.account = await self.resolve_account()

        settings = self.settings
        self.executor = UserOpExecutor(
            account=self.account,
            chain=self.chain,
            bundler=self.bundler,
            entry_point=settings.entry_point_address,
            chain_id=settings.chain_id,
            receipt_timeout_s=settings.receipt_timeout_seconds,
            poll_interval_s=settings.receipt_poll_interval_seconds,
        )
        builder = SwapOperationBuilder(
            self.account,
            fee_multiplier_numerator=settings.fee_multiplier_numerator,
            fee_multiplier_denominator=settings.fee_multiplier_denominator,
        )
        self.orchestrator = SwapOrchestrator(
            resolver=RouteResolver(self.routing),
            builder=builder,
            guard=AllowanceGuard(self.chain, self.executor, builder),
            executor=self.executor,
            chain=self.chain,
            escalate_fees=settings.enable_fee_escalation,
            on_approval=print_approval,
        )
        return self.account

    async def resolve_account(self) -> SmartAccount:
        settings = self.settings
        if not settings.derives_account:
            return SmartAccount(
                settings.smart_account_address,
                settings.private_key,
                kind=settings.account_kind,
                factory=settings.account_factory,
                factory_data=settings.account_factory_data,
            )

        try:
            return await SmartAccount.from_kernel_factory(
                self.chain,
                settings.private_key,
                index=settings.account_index,
                factory=settings.kernel_factory_address,
                meta_factory=settings.kernel_meta_factory_address,
                validator=settings.ecdsa_validator_address,
            )
        except RpcError as exc:
            raise ConfigurationError(f"Failed to derive smart account address: {exc}") from exc

    async def verify_chain(self) -> None:
        chain_id = await self.chain.get_chain_id()
        if chain_id != self.settings.chain_id:
            raise ConfigurationError(
                f"RPC endpoint serves chain {chain_id}, expected {self.settings.chain_id} "
                f"({self.settings.chain_name})"
            )

        entry_point = self.settings.entry_point_address.lower()
        supported = await self.bundler.supported_entry_points()
        if entry_point not in {address.lower() for address in supported}:
            raise ConfigurationError(
                f"Bundler does not support EntryPoint {self.settings.entry_point_address}"
            )

    async def close(self) -> None:
        for provider in (self.chain, self.bundler, self.routing):
            await provider.close()


def build_request(settings: Settings) -> SwapRequest:
    return SwapRequest(
        token_in=Token(settings.token_in, settings.token_in_decimals, settings.token_in_symbol),
        token_out=Token(settings.token_out, settings.token_out_decimals, settings.token_out_symbol),
        amount_in=settings.swap_amount,
        slippage_percent=settings.slippage_percent,
        router_address=settings.kuru_router,
        native_decimals=settings.native_currency_decimals,
    )


def print_approval(receipt: UserOpReceipt) -> None:
    print(f"approval tx: {receipt.transaction_hash}")


def print_outcome(outcome: SwapOutcome) -> None:
    if outcome.state == SwapState.ABORTED_NO_ROUTE:
        print("No route found")
        return

    if outcome.swap_receipt is not None:
        print(f"op tx hash: {outcome.swap_receipt.transaction_hash}")


async def run_swap(settings: Settings) -> SwapOutcome:
    services = SwapServices(settings)
    try:
        account = await services.connect()
        structlog.contextvars.bind_contextvars(
            chain_id=settings.chain_id,
            smart_account=account.address,
        )
        print(f"smart wallet address: {account.address}")
        return await services.orchestrator.run(build_request(settings))
    finally:
        await services.close()


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a decimal number: {value!r}") from exc


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="gasless-swap",
        description="Swap a fixed token amount through an ERC-4337 smart account",
    )
    parser.add_argument("--amount", type=_decimal, help="Exact input amount in token units")
    parser.add_argument("--slippage", type=_decimal, help="Slippage tolerance in percent")
    parser.add_argument("--token-in", help="Input token address (zero address for native)")
    parser.add_argument("--token-in-decimals", type=int, help="Input token decimals")
    parser.add_argument("--token-out", help="Output token address")
    parser.add_argument("--token-out-decimals", type=int, help="Output token decimals")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    overrides = {
        key: value
        for key, value in {
            "swap_amount": args.amount,
            "slippage_percent": args.slippage,
            "token_in": args.token_in,
            "token_in_decimals": args.token_in_decimals,
            "token_out": args.token_out,
            "token_out_decimals": args.token_out_decimals,
            "log_level": args.log_level,
        }.items()
        if value is not None
    }

    try:
        settings = load_settings(**overrides)
    except ConfigurationError as exc:
        setup_logging(args.log_level or "INFO")
        logger.error(str(exc))
        print(f"❌ Error: {exc}")
        return 1

    setup_logging(settings.log_level)

    try:
        outcome = asyncio.run(run_swap(settings))
    except Exception as exc:
        logger.error(f"Swap aborted: {exc}")
        print(f"❌ Error: {exc}")
        return 1

    print_outcome(outcome)
    return 0


if __name__ == "__main__":
    sys.exit(main())
