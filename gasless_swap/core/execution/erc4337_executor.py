"""
ERC-4337 UserOperation execution.

Handles the full lifecycle of a user operation:
- Nonce and deployment lookup
- Fee defaults and gas estimation
- Signing under the account's root validator
- Submission to the bundler
- Receipt polling
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Optional

from ...providers.bundler import BundlerError, BundlerProvider
from ...providers.rpc import ChainReader, RpcError
from .account import SmartAccount
from .userop import UserOperation, UserOperationDraft, UserOpReceipt


logger = logging.getLogger(__name__)


class UserOpExecutionError(Exception):
    """UserOperation execution error."""
    pass


class UserOpSubmitError(UserOpExecutionError):
    """Bundler rejected the operation or its gas estimation."""
    pass


class UserOpTimeoutError(UserOpExecutionError):
    """Operation was accepted but not included in time."""
    pass


class UserOpRevertedError(UserOpExecutionError):
    """Operation was included but its execution failed."""

    def __init__(self, message: str, receipt: Optional[UserOpReceipt] = None):
        super().__init__(message)
        self.receipt = receipt


class UserOpExecutor:
    """
    Signs, sends and confirms user operations for one smart account.

    ``submit`` blocks until the operation is included; no retries are made.
    """

    def __init__(
        self,
        account: SmartAccount,
        chain: ChainReader,
        bundler: BundlerProvider,
        entry_point: str,
        chain_id: int,
        *,
        receipt_timeout_s: float = 120.0,
        poll_interval_s: float = 2.0,
    ) -> None:
        self.account = account
        self.chain = chain
        self.bundler = bundler
        self.entry_point = entry_point
        self.chain_id = chain_id
        self.receipt_timeout_s = receipt_timeout_s
        self.poll_interval_s = poll_interval_s

    async def prepare(self, draft: UserOperationDraft) -> UserOperation:
        """Fill nonce, init code, fees and gas limits for an unsigned draft."""
        sender = self.account.address
        try:
            nonce = await self.chain.get_entry_point_nonce(self.entry_point, sender)

            factory = factory_data = None
            if self.account.factory and not await self.chain.is_deployed(sender):
                logger.info(f"Smart account {sender} not deployed, attaching factory")
                factory, factory_data = self.account.factory, self.account.factory_data

            max_fee = draft.max_fee_per_gas
            priority_fee = draft.max_priority_fee_per_gas
            if max_fee is None or priority_fee is None:
                defaults = await self.chain.estimate_fees()
                max_fee = defaults.max_fee_per_gas if max_fee is None else max_fee
                priority_fee = defaults.max_priority_fee_per_gas if priority_fee is None else priority_fee
        except RpcError as exc:
            raise UserOpExecutionError(f"Failed to read account state: {exc}") from exc

        user_op = UserOperation(
            sender=sender,
            nonce=nonce,
            call_data=draft.call_data,
            call_gas_limit=0,
            verification_gas_limit=0,
            pre_verification_gas=0,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=priority_fee,
            factory=factory,
            factory_data=factory_data,
            signature=self.account.dummy_signature,
        )

        try:
            estimate = await self.bundler.estimate_user_operation_gas(user_op, self.entry_point)
        except BundlerError as exc:
            raise UserOpSubmitError(f"Gas estimation rejected: {exc}") from exc

        return replace(
            user_op,
            call_gas_limit=estimate.call_gas_limit,
            verification_gas_limit=estimate.verification_gas_limit,
            pre_verification_gas=estimate.pre_verification_gas,
            signature="0x",
        )

    def sign(self, user_op: UserOperation) -> UserOperation:
        return self.account.sign_user_operation(user_op, self.entry_point, self.chain_id)

    async def send(self, user_op: UserOperation) -> str:
        try:
            user_op_hash = await self.bundler.send_user_operation(user_op, self.entry_point)
        except BundlerError as exc:
            raise UserOpSubmitError(f"Bundler rejected user operation: {exc}") from exc
        logger.info(f"User operation submitted: {user_op_hash}")
        return user_op_hash

    async def wait_for_receipt(
        self,
        user_op_hash: str,
        timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ) -> UserOpReceipt:
        """
        Poll the bundler until the operation is included.

        Raises:
            UserOpTimeoutError: if no receipt appears within ``timeout_s``
        """
        timeout_s = self.receipt_timeout_s if timeout_s is None else timeout_s
        poll_interval_s = self.poll_interval_s if poll_interval_s is None else poll_interval_s
        deadline = time.monotonic() + timeout_s

        while True:
            try:
                receipt = await self.bundler.get_user_operation_receipt(user_op_hash)
            except BundlerError as exc:
                logger.warning(f"Error checking user operation status: {exc}")
                receipt = None

            if receipt is not None:
                logger.info(
                    f"User operation included: {user_op_hash} "
                    f"(tx {receipt.transaction_hash}, block {receipt.block_number})"
                )
                return receipt

            if time.monotonic() >= deadline:
                raise UserOpTimeoutError(
                    f"User operation {user_op_hash} not included after {timeout_s}s"
                )
            await asyncio.sleep(poll_interval_s)

    async def submit(self, draft: UserOperationDraft) -> UserOpReceipt:
        """
        Prepare, sign, send and confirm one operation.

        Raises:
            UserOpSubmitError: rejected by the bundler
            UserOpTimeoutError: not included in time
            UserOpRevertedError: included but reverted
        """
        user_op = await self.prepare(draft)
        signed = self.sign(user_op)
        user_op_hash = await self.send(signed)
        receipt = await self.wait_for_receipt(user_op_hash)

        if not receipt.success:
            raise UserOpRevertedError(
                f"User operation {user_op_hash} reverted"
                + (f": {receipt.reason}" if receipt.reason else ""),
                receipt=receipt,
            )
        return receipt
