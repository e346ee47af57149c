"""Unit tests covering environment variable and TOML overrides for settings."""

from __future__ import annotations

import textwrap
from pathlib import Path

from proofbridge.settings.config import PROJECT_ROOT, reload_settings


def _clear_env(monkeypatch: object, *names: str) -> None:
    """Remove env vars for every alias and prefixed variant."""

    for name in names:
        monkeypatch.delenv(name, raising=False)
        if name.startswith("PROOFBRIDGE_"):
            monkeypatch.delenv(name.removeprefix("PROOFBRIDGE_"), raising=False)
        else:
            monkeypatch.delenv(f"PROOFBRIDGE_{name}", raising=False)


def test_defaults_follow_reference_cadence(monkeypatch: object) -> None:
    _clear_env(
        monkeypatch,
        "PROOFBRIDGE_DELIVERY__POLL_MAX_ATTEMPTS",
        "DELIVERY_POLL_MAX_ATTEMPTS",
        "PROOFBRIDGE_SETTINGS_FILE",
    )

    settings = reload_settings(env="dev")

    assert settings.delivery.poll_initial_delay_seconds == 3.0
    assert settings.delivery.poll_interval_seconds == 2.0
    assert settings.delivery.poll_max_attempts == 30
    assert settings.delivery.failure_grace_seconds == 120.0
    assert settings.relay.proof_ttl_seconds == 300
    assert settings.attestation.sdk_logger == "reclaim"


def test_delivery_env_override(monkeypatch: object) -> None:
    """Ensure nested delivery values follow environment overrides."""

    _clear_env(monkeypatch, "PROOFBRIDGE_DELIVERY__POLL_MAX_ATTEMPTS", "DELIVERY_POLL_MAX_ATTEMPTS")

    monkeypatch.setenv("PROOFBRIDGE_DELIVERY__POLL_MAX_ATTEMPTS", "5")
    overridden = reload_settings(env="dev")

    assert overridden.delivery.poll_max_attempts == 5


def test_urls_lose_trailing_slash(monkeypatch: object) -> None:
    _clear_env(monkeypatch, "PROOFBRIDGE_LEDGER__BASE_URL", "LEDGER_URL", "PROOFBRIDGE_RELAY__BASE_URL", "RELAY_URL")

    monkeypatch.setenv("PROOFBRIDGE_LEDGER__BASE_URL", "https://ledger.example.com/api/")
    monkeypatch.setenv("PROOFBRIDGE_RELAY__BASE_URL", "https://relay.example.com/")
    settings = reload_settings(env="dev")

    assert settings.ledger.base_url == "https://ledger.example.com/api"
    assert settings.relay.base_url == "https://relay.example.com"


def test_settings_file_env_override(monkeypatch: object, tmp_path: Path) -> None:
    """Verify PROOFBRIDGE_SETTINGS_FILE layers an extra TOML file on top of defaults."""

    config_file = tmp_path / "settings.toml"
    config_file.write_text(
        textwrap.dedent(
            """
            [relay]
            frontend_url = "https://app.example.com/"

            [attestation.template_ids]
            Zomato = "tmpl-zomato"
            github = "tmpl-github"
            """
        ).strip(),
        encoding="utf-8",
    )
    _clear_env(monkeypatch, "PROOFBRIDGE_RELAY__FRONTEND_URL", "FRONTEND_URL")
    monkeypatch.setenv("PROOFBRIDGE_SETTINGS_FILE", str(config_file))

    settings = reload_settings(env="dev")

    assert settings.relay.frontend_url == "https://app.example.com"
    assert settings.attestation.template_ids == {"zomato": "tmpl-zomato", "github": "tmpl-github"}
    assert config_file in settings.config_files


def test_project_root_contains_default_config() -> None:
    assert (PROJECT_ROOT / "config" / "settings.default.toml").exists()
