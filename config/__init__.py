"""Configuration management for the upload service."""

from .platform import Config, detect_platform, is_production

__all__ = ["Config", "detect_platform", "is_production"]
