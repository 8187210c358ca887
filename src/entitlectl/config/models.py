"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, entitlectl.toml only contains
overrides.  A fresh install needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ReconcileConfig(BaseModel):
    """[reconcile] section."""

    model_config = {"frozen": True}

    escalate_after_days: int = 30
    overdue_after_days: int = 30
    lease_ttl_seconds: int = 300


class OutboxConfig(BaseModel):
    """[outbox] section."""

    model_config = {"frozen": True}

    dispatch_inline: bool = True
    max_retries: int = 5
    call_timeout_seconds: float = 10.0
    claim_ttl_seconds: int = 300


class PublicConfig(BaseModel):
    """[public] section."""

    model_config = {"frozen": True}

    base_url: str = "https://example.invalid/card"

    def link_for(self, slug: str) -> str:
        return f"{self.base_url.rstrip('/')}/{slug}"


class BillingConfig(BaseModel):
    """[billing] section."""

    model_config = {"frozen": True}

    monthly_amount: int = 500
    billing_cycle: str = "monthly"


class PluginsConfig(BaseModel):
    """[plugins] section."""

    model_config = {"frozen": True}

    file_artifacts: bool = True
    log_notifier: bool = True


class EntitlementConfig(BaseModel):
    """Root configuration composing all TOML sections."""

    model_config = {"frozen": True}

    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    outbox: OutboxConfig = Field(default_factory=OutboxConfig)
    public: PublicConfig = Field(default_factory=PublicConfig)
    billing: BillingConfig = Field(default_factory=BillingConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
