"""Configuration module for casechat."""

from casechat.config.loader import get_config_path, load_config
from casechat.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
