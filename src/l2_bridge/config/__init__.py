"""Configuration — pydantic-settings models."""

from l2_bridge.config.settings import AppConfig, normalize_endpoint

__all__ = ["AppConfig", "normalize_endpoint"]
