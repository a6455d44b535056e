"""Configuration module for Inbox Agent."""

from inbox_agent.config.loader import get_config_path, load_config, save_config
from inbox_agent.config.schema import Config

__all__ = ["Config", "load_config", "save_config", "get_config_path"]
