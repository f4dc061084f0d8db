from decimal import Decimal
from pathlib import Path
from typing import Any, Literal, Optional

from eth_utils import is_address, is_hex
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.execution.kernel import ECDSA_VALIDATOR_V3_1, KERNEL_V3_1_FACTORY, KERNEL_V3_1_META_FACTORY
from .core.swap.quote import to_base_units


BASE_DIR = Path(__file__).resolve().parents[1]

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ENTRY_POINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"

# Kuru testnet markets on Monad
DEFAULT_TOKEN_IN = "0x9a29e9bab1f0b599d1c6c39b60a79596b3875f56"  # USDC
DEFAULT_TOKEN_OUT = "0xd9d972d687Bc511D833fe2550C456fEC1a857D2C"  # WIF


class ConfigurationError(Exception):
    """Missing or malformed required setting."""
    pass


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Endpoints
    kuru_api: str = Field(..., description="Routing service base URL")
    kuru_router: str = Field(..., description="Swap router contract address")
    rpc_url: str = Field(..., description="Chain JSON-RPC endpoint")
    bundler_url: str = Field(..., description="ERC-4337 bundler JSON-RPC endpoint")

    # Chain metadata
    chain_id: int = Field(..., gt=0, description="EVM chain ID")
    chain_name: str = Field(..., min_length=1, description="Human readable chain name")
    native_currency_symbol: str = Field(..., min_length=1, description="Native currency symbol")
    native_currency_decimals: int = Field(default=18, ge=0, le=77, description="Native currency decimals")

    # Smart account
    private_key: str = Field(..., repr=False, description="Hex private key of the account's root validator signer")
    entry_point_address: str = Field(
        default=ENTRY_POINT_V07,
        description="EntryPoint v0.7 contract address",
    )
    account_kind: Literal["kernel_v3", "simple"] = Field(
        default="kernel_v3",
        description="Execute calldata layout used by the smart account",
    )
    account_index: int = Field(default=0, ge=0, description="Kernel account salt index")
    kernel_factory_address: str = Field(default=KERNEL_V3_1_FACTORY)
    kernel_meta_factory_address: str = Field(default=KERNEL_V3_1_META_FACTORY)
    ecdsa_validator_address: str = Field(default=ECDSA_VALIDATOR_V3_1)
    smart_account_address: Optional[str] = Field(
        default=None,
        description="Override for the smart account address; derived from the signer when unset",
    )
    account_factory: Optional[str] = Field(
        default=None,
        description="Factory used with an overridden account address when it has no code yet",
    )
    account_factory_data: Optional[str] = Field(
        default=None,
        description="Factory calldata paired with account_factory",
    )

    # Swap parameters
    token_in: str = Field(default=DEFAULT_TOKEN_IN, description="Input token address (zero address for native)")
    token_in_symbol: str = Field(default="USDC")
    token_in_decimals: int = Field(default=6, ge=0, le=77)
    token_out: str = Field(default=DEFAULT_TOKEN_OUT, description="Output token address")
    token_out_symbol: str = Field(default="WIF")
    token_out_decimals: int = Field(default=18, ge=0, le=77)
    swap_amount: Decimal = Field(default=Decimal("0.0001"), gt=0, description="Exact input amount (human units)")
    slippage_percent: Decimal = Field(default=Decimal("5"), ge=0, le=100, description="Slippage tolerance in percent")

    # Gas policy
    enable_fee_escalation: bool = Field(
        default=False,
        description="Escalate estimated fees by the configured multiplier on the swap operation",
    )
    fee_multiplier_numerator: int = Field(default=15, gt=0)
    fee_multiplier_denominator: int = Field(default=10, gt=0)

    # Timeouts
    receipt_timeout_seconds: float = Field(default=120.0, gt=0, description="Max wait for user operation inclusion")
    receipt_poll_interval_seconds: float = Field(default=2.0, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP request timeout")

    @field_validator("kuru_api", "rpc_url", "bundler_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"expected an http(s) URL, got {value!r}")
        return value.rstrip("/")

    @field_validator(
        "kuru_router",
        "entry_point_address",
        "kernel_factory_address",
        "kernel_meta_factory_address",
        "ecdsa_validator_address",
        "token_in",
        "token_out",
    )
    @classmethod
    def _check_address(cls, value: str) -> str:
        value = value.strip()
        if not is_address(value):
            raise ValueError(f"invalid address {value!r}")
        return value

    @field_validator("smart_account_address", "account_factory")
    @classmethod
    def _check_factory(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if not is_address(value.strip()):
            raise ValueError(f"invalid address {value!r}")
        return value.strip()

    @field_validator("account_factory_data")
    @classmethod
    def _check_factory_data(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not value.startswith("0x") or not is_hex(value) or len(value) % 2 != 0:
            raise ValueError("factory data must be 0x-prefixed even-length hex")
        return value

    @field_validator("private_key")
    @classmethod
    def _check_private_key(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("0x"):
            value = f"0x{value}"
        if len(value) != 66 or not is_hex(value):
            raise ValueError("private key must be 32 bytes of hex")
        return value

    @model_validator(mode="after")
    def _check_account(self) -> "Settings":
        if bool(self.account_factory) != bool(self.account_factory_data):
            raise ValueError("account_factory and account_factory_data must be set together")
        if self.account_factory and not self.smart_account_address:
            raise ValueError("account_factory requires smart_account_address")
        if self.account_kind == "simple" and not self.smart_account_address:
            raise ValueError("simple accounts require smart_account_address")
        return self

    @model_validator(mode="after")
    def _check_swap_amount(self) -> "Settings":
        if to_base_units(self.swap_amount, self.token_in_decimals) <= 0:
            raise ValueError(
                f"swap_amount {self.swap_amount} is below one base unit of a "
                f"{self.token_in_decimals}-decimal token"
            )
        return self

    @property
    def native_token_in(self) -> bool:
        return self.token_in.lower() == ZERO_ADDRESS

    @property
    def derives_account(self) -> bool:
        return self.smart_account_address is None


_settings: Optional[Settings] = None


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment, converting validation failures.

    Raises:
        ConfigurationError: when a required value is missing or malformed
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'settings'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
