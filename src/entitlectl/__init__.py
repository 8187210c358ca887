"""entitlectl — entitlement state engine for billable, publicly listed subjects."""

__version__ = "0.1.0"
