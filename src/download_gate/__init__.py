"""Entitlement-gated, throttled and audited access to purchased downloads."""

__version__ = "0.1.0"
