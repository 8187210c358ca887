"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``ENTITLECTL_*`` prefix
  3. TOML file    — ``entitlectl.toml`` discovered via walk-up
  4. Code defaults — baked into the section models
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from entitlectl.config.discovery import find_config, read_toml
from entitlectl.config.models import (
    BillingConfig,
    OutboxConfig,
    PluginsConfig,
    PublicConfig,
    ReconcileConfig,
)
from entitlectl.domain.actors import Actor
from entitlectl.domain.types import ActorRole


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from an ``entitlectl.toml`` file discovered via walk-up."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = read_toml(toml_path)

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class EntitlementSettings(BaseSettings):
    """Unified settings for the entitlectl CLI and services.

    Attributes:
        data_root: Directory holding ``.entitlectl/`` (parent of
            ``entitlectl.toml``, or CWD if no config found).
        config_path: The TOML file that was loaded, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "ENTITLECTL_",
        "env_nested_delimiter": "__",
    }

    data_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False
    no_dispatch: bool = False

    # --- Acting identity ---
    actor_id: str = "cli"
    actor_label: str = "cli"
    actor_role: ActorRole = ActorRole.VIEWER

    # --- TOML sections ---
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    outbox: OutboxConfig = Field(default_factory=OutboxConfig)
    public: PublicConfig = Field(default_factory=PublicConfig)
    billing: BillingConfig = Field(default_factory=BillingConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)

    @property
    def actor(self) -> Actor:
        """The actor every CLI call is attributed to."""
        return Actor(id=self.actor_id, label=self.actor_label, role=self.actor_role)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        data_root: Path | None = None,
        **cli_flags: Any,
    ) -> EntitlementSettings:
        """Construct settings from CLI invocation.

        ``None`` flag values are dropped so env vars and TOML still apply.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(data_root)

        resolved_root = data_root
        if resolved_root is None:
            resolved_root = toml_path.parent if toml_path else Path.cwd()

        flags = {k: v for k, v in cli_flags.items() if v is not None}

        _tls.toml_path = toml_path
        try:
            return cls(
                data_root=resolved_root,
                config_path=toml_path,
                **flags,
            )
        finally:
            _tls.toml_path = None
