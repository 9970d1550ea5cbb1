"""Configuration loader for upi-attest using Pydantic settings.

Config precedence (highest wins):
  1. Explicit constructor values / CLI flags
  2. Environment variables (UPI_ATTEST_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("UPI_ATTEST_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "UPI_ATTEST_ENV"
DEFAULT_ENV = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BrowserSettings(BaseSettings):
    """Playwright browser settings."""

    model_config = SettingsConfigDict(env_prefix="UPI_ATTEST_BROWSER__")

    headless: bool = True
    user_agent: str = ""
    launch_args: list[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"]
    )
    release_timeout_sec: float = 10.0


class PortalSettings(BaseSettings):
    """Payment portal URLs, selectors, and per-step timeouts."""

    model_config = SettingsConfigDict(env_prefix="UPI_ATTEST_PORTAL__")

    history_url: str = "https://amazon.in/pay/history"
    history_url_pattern: str = "**/pay/history"

    identifier_selector: str = "#ap_email"
    secret_selector: str = "#ap_password"
    send_code_selector: str = "#auth-send-code"
    otp_selector: str = "#auth-mfa-otpcode"
    transaction_link_selector: str = "#transaction-desktop > a"
    receipt_selector: str = "#payui-transaction-receipt-id"
    receipt_attribute: str = "data"

    navigation_timeout_ms: int = 30_000
    field_timeout_ms: int = 10_000
    optional_step_timeout_ms: int = 5_000
    otp_redirect_timeout_ms: int = 15_000
    receipt_timeout_ms: int = 10_000


class SessionSettings(BaseSettings):
    """Login session lifetime and sweep cadence."""

    model_config = SettingsConfigDict(env_prefix="UPI_ATTEST_SESSION__")

    timeout_sec: float = 600.0
    sweep_interval_sec: float = 60.0


class SignerSettings(BaseSettings):
    """EIP-712 signer key and domain."""

    model_config = SettingsConfigDict(env_prefix="UPI_ATTEST_SIGNER__")

    mnemonic: SecretStr = SecretStr("")
    derivation_path: str = "m/44'/60'/0'/0/0"
    domain_name: str = "PaymentVerificationService"
    domain_version: str = "1"
    chain_id: int = 42161
    verifying_contract: str = "0x5b866b6655234b3b6f9b3bd86f068a99622f5919"


class APISettings(BaseSettings):
    """API server configuration."""

    model_config = SettingsConfigDict(env_prefix="UPI_ATTEST_API__")

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]


class LoggingSettings(BaseSettings):
    """Log level and output format."""

    model_config = SettingsConfigDict(env_prefix="UPI_ATTEST_LOGGING__")

    level: str = "INFO"
    json_format: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root upi-attest settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="UPI_ATTEST_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    portal: PortalSettings = Field(default_factory=PortalSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    signer: SignerSettings = Field(default_factory=SignerSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val

        # TEE deployments inject the seed as a bare MNEMONIC variable
        bare_mnemonic = os.getenv("MNEMONIC")
        if bare_mnemonic:
            signer = merged.setdefault("signer", {})
            if isinstance(signer, dict):
                signer.setdefault("mnemonic", bare_mnemonic)
        return merged

    @model_validator(mode="after")
    def _check_sweep_cadence(self) -> "Settings":
        """Reject non-positive session timings."""
        if self.session.timeout_sec <= 0 or self.session.sweep_interval_sec <= 0:
            raise ValueError("session.timeout_sec and session.sweep_interval_sec must be positive")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
