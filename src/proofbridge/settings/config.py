"""Configuration loader for proofbridge services using Pydantic settings."""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

ENV_VAR_NAME = "PROOFBRIDGE_ENV"
DEFAULT_ENV = "local"
PROJECT_ROOT = Path(__file__).resolve().parents[3]
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.default.toml"
LOCAL_CONFIG_FILE = CONFIG_DIR / "settings.local.toml"
SETTINGS_FILE_ENV_VAR = "PROOFBRIDGE_SETTINGS_FILE"


def _resolve_env(explicit_env: str | None = None) -> str:
    """Return the active environment name.

    Args:
        explicit_env: Environment value supplied directly by the caller.

    Returns:
        A stripped environment name, falling back to ``DEFAULT_ENV``.
    """

    env = explicit_env or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV
    return env.strip()


def _env_file_candidates(env: str) -> list[Path]:
    """List candidate ``.env`` files used during settings resolution."""

    return [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / f".env.{env}",
        PROJECT_ROOT / ".env.local",
    ]


def _resolve_config_path(raw_path: str | None) -> Path | None:
    """Return an absolute config path from user input."""

    if not raw_path:
        return None
    candidate = Path(raw_path).expanduser()
    if not candidate.is_absolute():
        candidate = (PROJECT_ROOT / candidate).resolve()
    return candidate


def _config_file_priority(include_missing: bool = False) -> tuple[Path, ...]:
    """Return config files in descending precedence order."""

    ordered: list[Path] = []
    env_override = _resolve_config_path(os.getenv(SETTINGS_FILE_ENV_VAR))
    if env_override:
        ordered.append(env_override)
    ordered.append(LOCAL_CONFIG_FILE)
    ordered.append(DEFAULT_CONFIG_FILE)
    if include_missing:
        return tuple(ordered)
    return tuple(path for path in ordered if path.exists())


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Pydantic settings source that loads values from a TOML file."""

    def __init__(self, settings_cls: type[BaseSettings], path: Path) -> None:
        super().__init__(settings_cls)
        self.path = path
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self.path.exists():
            self._data = {}
            return self._data
        try:
            with self.path.open("rb") as handle:
                self._data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:  # pragma: no cover - invalid files surface immediately
            raise ValueError(f"Invalid TOML syntax in {self.path}") from exc
        return self._data

    def __call__(self) -> dict[str, Any]:  # pragma: no cover - trivial wrapper
        return self._load()

    def get_field_value(self, field_name: str, field):  # pragma: no cover - passthrough helper
        data = self._load()
        return data.get(field_name), field_name in data


class RuntimeSettings(BaseSettings):
    """Process-level runtime controls."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "RUNTIME__LOG_LEVEL"),
    )


class LedgerSettings(BaseSettings):
    """Ledger API endpoint that accepts normalized contributions."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    base_url: str = Field(
        default="http://127.0.0.1:4000/api",
        validation_alias=AliasChoices("LEDGER_URL", "LEDGER__BASE_URL"),
    )
    contribute_path: str = Field(
        default="/contribute",
        validation_alias=AliasChoices("LEDGER_CONTRIBUTE_PATH", "LEDGER__CONTRIBUTE_PATH"),
    )
    timeout_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices("LEDGER_TIMEOUT", "LEDGER__TIMEOUT_SECONDS"),
    )


class RelaySettings(BaseSettings):
    """Callback relay that stores out-of-band proofs until the client polls them."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    base_url: str = Field(
        default="http://127.0.0.1:4000/api",
        validation_alias=AliasChoices("RELAY_URL", "RELAY__BASE_URL"),
    )
    callback_path: str = Field(
        default="/callback",
        validation_alias=AliasChoices("RELAY_CALLBACK_PATH", "RELAY__CALLBACK_PATH"),
    )
    proof_path: str = Field(
        default="/proof/{session_id}",
        validation_alias=AliasChoices("RELAY_PROOF_PATH", "RELAY__PROOF_PATH"),
    )
    proof_ttl_seconds: int = Field(
        default=300,
        validation_alias=AliasChoices("RELAY_PROOF_TTL", "RELAY__PROOF_TTL_SECONDS"),
    )
    frontend_url: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("FRONTEND_URL", "RELAY__FRONTEND_URL"),
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("RELAY_TIMEOUT", "RELAY__REQUEST_TIMEOUT_SECONDS"),
    )


class AttestationSettings(BaseSettings):
    """Attestation Service credentials and verification templates."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    app_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ATTESTATION_APP_ID", "ATTESTATION__APP_ID"),
    )
    app_secret: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ATTESTATION_APP_SECRET", "ATTESTATION__APP_SECRET"),
    )
    template_ids: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("ATTESTATION_TEMPLATE_IDS", "ATTESTATION__TEMPLATE_IDS"),
    )
    sdk_logger: str = Field(
        default="reclaim",
        validation_alias=AliasChoices("ATTESTATION_SDK_LOGGER", "ATTESTATION__SDK_LOGGER"),
    )


class DeliverySettings(BaseSettings):
    """Timing knobs for proof delivery and deferred failure reporting."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    poll_initial_delay_seconds: float = Field(
        default=3.0,
        validation_alias=AliasChoices("DELIVERY_POLL_INITIAL_DELAY", "DELIVERY__POLL_INITIAL_DELAY_SECONDS"),
    )
    poll_interval_seconds: float = Field(
        default=2.0,
        validation_alias=AliasChoices("DELIVERY_POLL_INTERVAL", "DELIVERY__POLL_INTERVAL_SECONDS"),
    )
    poll_max_attempts: int = Field(
        default=30,
        ge=1,
        validation_alias=AliasChoices("DELIVERY_POLL_MAX_ATTEMPTS", "DELIVERY__POLL_MAX_ATTEMPTS"),
    )
    failure_grace_seconds: float = Field(
        default=120.0,
        validation_alias=AliasChoices("DELIVERY_FAILURE_GRACE", "DELIVERY__FAILURE_GRACE_SECONDS"),
    )


class ObservabilitySettings(BaseSettings):
    """Structured logging and metrics exporters."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    structured_logging: bool = Field(
        default=True,
        validation_alias=AliasChoices("STRUCTURED_LOGGING", "OBSERVABILITY__STRUCTURED_LOGGING"),
    )
    statsd_host: str | None = Field(
        default=None,
        validation_alias=AliasChoices("STATSD_HOST", "OBSERVABILITY__STATSD_HOST"),
    )
    statsd_port: int = Field(
        default=8125,
        validation_alias=AliasChoices("STATSD_PORT", "OBSERVABILITY__STATSD_PORT"),
    )
    statsd_prefix: str = Field(
        default="proofbridge",
        validation_alias=AliasChoices("STATSD_PREFIX", "OBSERVABILITY__STATSD_PREFIX"),
    )


class Settings(BaseSettings):
    """Top-level configuration model with nested sections for each subsystem."""

    env: str = Field(
        default_factory=lambda: _resolve_env(),
        validation_alias=AliasChoices("ENV", "ENVIRONMENT", "RUNTIME__ENV"),
    )
    project_root: Path = Field(default=PROJECT_ROOT)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    attestation: AttestationSettings = Field(default_factory=AttestationSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    env_files: tuple[Path, ...] = Field(default_factory=tuple, exclude=True)
    config_files: tuple[Path, ...] = Field(default_factory=tuple, exclude=True)

    model_config = SettingsConfigDict(
        env_prefix="PROOFBRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Extend settings sources with TOML-based config files."""

        config_sources = [TomlConfigSettingsSource(settings_cls, path) for path in _config_file_priority()]
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            *config_sources,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _normalize_urls(self) -> "Settings":
        """Strip trailing slashes so paths can be appended verbatim."""

        ledger_url = self.ledger.base_url.rstrip("/")
        if ledger_url != self.ledger.base_url:
            object.__setattr__(self, "ledger", self.ledger.model_copy(update={"base_url": ledger_url}))
        relay_updates = {}
        if self.relay.base_url.endswith("/"):
            relay_updates["base_url"] = self.relay.base_url.rstrip("/")
        if self.relay.frontend_url.endswith("/"):
            relay_updates["frontend_url"] = self.relay.frontend_url.rstrip("/")
        if relay_updates:
            object.__setattr__(self, "relay", self.relay.model_copy(update=relay_updates))
        templates = {key.lower(): value for key, value in self.attestation.template_ids.items() if value}
        if templates != self.attestation.template_ids:
            object.__setattr__(self, "attestation", self.attestation.model_copy(update={"template_ids": templates}))
        return self

    @property
    def is_local(self) -> bool:
        """bool: True when the active environment is ``local``."""

        return self.env.lower() == "local"


def _load_settings(env: str | None = None) -> Settings:
    """Load settings with optional environment override.

    Args:
        env: Environment name supplied programmatically.

    Returns:
        Fully parsed :class:`Settings` instance with env files applied.
    """

    resolved_env = _resolve_env(env)
    candidate_files = [path for path in _env_file_candidates(resolved_env) if path.exists()]
    config_files = _config_file_priority()
    return Settings(
        _env_file=[str(path) for path in candidate_files],
        _env_file_encoding="utf-8",
        env=resolved_env,
        env_files=tuple(candidate_files),
        config_files=config_files,
    )


@lru_cache(maxsize=1)
def get_settings(env: str | None = None) -> Settings:
    """Return cached settings for the requested environment."""

    return _load_settings(env)


def reload_settings(env: str | None = None) -> Settings:
    """Clear the cached settings and reload from disk."""

    get_settings.cache_clear()
    return get_settings(env)


__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "PROJECT_ROOT",
    "ENV_VAR_NAME",
]
