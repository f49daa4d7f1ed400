"""Lifecycle telemetry for create-cloudflare sessions and prompts."""

__version__ = "0.1.0"
