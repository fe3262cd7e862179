"""Configuration module - exports Settings, load_config and load_settings."""

from transcript_uploader.config.loader import load_config, load_settings
from transcript_uploader.config.settings import Settings

__all__ = ["Settings", "load_config", "load_settings"]
