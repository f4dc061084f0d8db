"""
Tests for the UserOperation executor lifecycle.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from gasless_swap.core.execution.account import DUMMY_ECDSA_SIGNATURE, SmartAccount
from gasless_swap.core.execution.erc4337_executor import (
    UserOpExecutionError,
    UserOpExecutor,
    UserOpRevertedError,
    UserOpSubmitError,
    UserOpTimeoutError,
)
from gasless_swap.core.execution.userop import (
    Call,
    FeeEstimate,
    UserOperationDraft,
    UserOpGasEstimate,
    UserOpReceipt,
)
from gasless_swap.providers.bundler import BundlerError
from gasless_swap.providers.rpc import RpcError


ACCOUNT_ADDRESS = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
ENTRY_POINT = "0x0000000071727de22e5e9d8baf0edac6f37da032"
FACTORY = "0x5555555555555555555555555555555555555555"
TARGET = "0x1111111111111111111111111111111111111111"
CHAIN_ID = 10143


def _draft(**overrides) -> UserOperationDraft:
    account = SmartAccount(ACCOUNT_ADDRESS, "0x" + "11" * 32)
    calls = (Call(to=TARGET, data="0x1234"),)
    fields = dict(calls=calls, call_data=account.encode_calls(calls))
    fields.update(overrides)
    return UserOperationDraft(**fields)


def _executor(account=None, receipt=None, deployed=True):
    account = account or SmartAccount(ACCOUNT_ADDRESS, "0x" + "11" * 32)

    chain = MagicMock()
    chain.get_entry_point_nonce = AsyncMock(return_value=7)
    chain.is_deployed = AsyncMock(return_value=deployed)
    chain.estimate_fees = AsyncMock(return_value=FeeEstimate(200, 20))

    bundler = MagicMock()
    bundler.estimate_user_operation_gas = AsyncMock(
        return_value=UserOpGasEstimate(
            call_gas_limit=100_000,
            verification_gas_limit=150_000,
            pre_verification_gas=50_000,
        )
    )
    bundler.send_user_operation = AsyncMock(return_value="0xophash")
    bundler.get_user_operation_receipt = AsyncMock(
        return_value=receipt or UserOpReceipt(user_op_hash="0xophash", success=True, transaction_hash="0xtx")
    )

    executor = UserOpExecutor(
        account,
        chain,
        bundler,
        ENTRY_POINT,
        CHAIN_ID,
        receipt_timeout_s=0.05,
        poll_interval_s=0.01,
    )
    return executor, chain, bundler


# =============================================================================
# prepare / sign
# =============================================================================

@pytest.mark.asyncio
async def test_prepare_fills_nonce_fees_and_gas():
    executor, chain, bundler = _executor()

    user_op = await executor.prepare(_draft())

    assert user_op.nonce == 7
    assert user_op.max_fee_per_gas == 200
    assert user_op.max_priority_fee_per_gas == 20
    assert user_op.call_gas_limit == 100_000
    assert user_op.verification_gas_limit == 150_000
    assert user_op.pre_verification_gas == 50_000
    assert user_op.signature == "0x"
    assert user_op.factory is None
    chain.get_entry_point_nonce.assert_awaited_once_with(ENTRY_POINT, executor.account.address)

    estimated = bundler.estimate_user_operation_gas.await_args.args[0]
    assert estimated.signature == DUMMY_ECDSA_SIGNATURE


@pytest.mark.asyncio
async def test_prepare_keeps_draft_fee_overrides():
    executor, chain, _ = _executor()

    user_op = await executor.prepare(_draft(max_fee_per_gas=300, max_priority_fee_per_gas=30))

    assert user_op.max_fee_per_gas == 300
    assert user_op.max_priority_fee_per_gas == 30
    chain.estimate_fees.assert_not_awaited()


@pytest.mark.asyncio
async def test_prepare_attaches_factory_for_undeployed_account():
    account = SmartAccount(ACCOUNT_ADDRESS, "0x" + "11" * 32, factory=FACTORY, factory_data="0xabcd")
    executor, _, _ = _executor(account=account, deployed=False)

    user_op = await executor.prepare(_draft())

    assert user_op.factory == FACTORY
    assert user_op.factory_data == "0xabcd"


@pytest.mark.asyncio
async def test_prepare_skips_factory_once_deployed():
    account = SmartAccount(ACCOUNT_ADDRESS, "0x" + "11" * 32, factory=FACTORY, factory_data="0xabcd")
    executor, _, _ = _executor(account=account, deployed=True)

    user_op = await executor.prepare(_draft())

    assert user_op.factory is None


@pytest.mark.asyncio
async def test_prepare_wraps_rpc_errors():
    executor, chain, _ = _executor()
    chain.get_entry_point_nonce.side_effect = RpcError("eth_call failed")

    with pytest.raises(UserOpExecutionError):
        await executor.prepare(_draft())


@pytest.mark.asyncio
async def test_prepare_gas_estimation_rejection():
    executor, _, bundler = _executor()
    bundler.estimate_user_operation_gas.side_effect = BundlerError("AA23 reverted")

    with pytest.raises(UserOpSubmitError):
        await executor.prepare(_draft())


@pytest.mark.asyncio
async def test_sign_recovers_to_account_signer():
    executor, _, _ = _executor()
    user_op = await executor.prepare(_draft())

    signed = executor.sign(user_op)

    message = encode_defunct(hexstr=user_op.hash(ENTRY_POINT, CHAIN_ID))
    assert Account.recover_message(message, signature=signed.signature) == executor.account.signer_address


# =============================================================================
# send / wait / submit
# =============================================================================

@pytest.mark.asyncio
async def test_submit_returns_successful_receipt():
    executor, _, bundler = _executor()

    receipt = await executor.submit(_draft())

    assert receipt.success
    assert receipt.transaction_hash == "0xtx"
    sent = bundler.send_user_operation.await_args.args[0]
    assert sent.signature not in ("0x", DUMMY_ECDSA_SIGNATURE)
    bundler.get_user_operation_receipt.assert_awaited_with("0xophash")


@pytest.mark.asyncio
async def test_submit_rejected_by_bundler():
    executor, _, bundler = _executor()
    bundler.send_user_operation.side_effect = BundlerError("invalid signature")

    with pytest.raises(UserOpSubmitError):
        await executor.submit(_draft())
    bundler.get_user_operation_receipt.assert_not_awaited()


@pytest.mark.asyncio
async def test_submit_reverted_operation():
    receipt = UserOpReceipt(user_op_hash="0xophash", success=False, transaction_hash="0xtx", reason="0x08c379a0")
    executor, _, _ = _executor(receipt=receipt)

    with pytest.raises(UserOpRevertedError) as exc_info:
        await executor.submit(_draft())

    assert exc_info.value.receipt is receipt


@pytest.mark.asyncio
async def test_wait_for_receipt_polls_until_included():
    executor, _, bundler = _executor()
    included = UserOpReceipt(user_op_hash="0xophash", success=True, transaction_hash="0xtx")
    bundler.get_user_operation_receipt = AsyncMock(side_effect=[None, BundlerError("busy"), included])

    receipt = await executor.wait_for_receipt("0xophash", timeout_s=5, poll_interval_s=0)

    assert receipt is included
    assert bundler.get_user_operation_receipt.await_count == 3


@pytest.mark.asyncio
async def test_wait_for_receipt_times_out():
    executor, _, bundler = _executor()
    bundler.get_user_operation_receipt = AsyncMock(return_value=None)

    with pytest.raises(UserOpTimeoutError):
        await executor.wait_for_receipt("0xophash")
