"""
ERC-4337 Execution Layer

- UserOperation / UserOperationDraft: wire and unsigned operation models
- SmartAccount: account address, signer and execute calldata layout
- kernel: Kernel v3.1 initCode and counterfactual address
- UserOpExecutor (erc4337_executor): prepare, sign, send, confirm

Usage:
    from gasless_swap.core.execution import SmartAccount, Call
    from gasless_swap.core.execution.erc4337_executor import UserOpExecutor

    account = SmartAccount(address, private_key)
    call_data = account.encode_calls([Call(to=token, data=approve_data)])
"""

from .userop import (
    Call,
    FeeEstimate,
    UserOperation,
    UserOperationDraft,
    UserOpGasEstimate,
    UserOpReceipt,
)

from .userop_builder import (
    build_entrypoint_get_nonce_call,
    build_erc20_allowance_call,
    build_erc20_approve_data,
    build_execute_call_data,
    build_kernel_execute_call_data,
    selector_from_signature,
)

from .kernel import (
    KernelDeployment,
    kernel_deployment,
    resolve_kernel_address,
)

from .account import (
    SmartAccount,
)

__all__ = [
    # Models
    "Call",
    "FeeEstimate",
    "UserOperation",
    "UserOperationDraft",
    "UserOpGasEstimate",
    "UserOpReceipt",
    # Calldata builders
    "build_entrypoint_get_nonce_call",
    "build_erc20_allowance_call",
    "build_erc20_approve_data",
    "build_execute_call_data",
    "build_kernel_execute_call_data",
    "selector_from_signature",
    # Kernel derivation
    "KernelDeployment",
    "kernel_deployment",
    "resolve_kernel_address",
    # Account
    "SmartAccount",
]
