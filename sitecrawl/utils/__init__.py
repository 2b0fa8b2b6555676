"""
Utility modules for the crawler.
"""

from .config import Config, ConfigManager, Settings, load_config, get_config

__all__ = ['Config', 'ConfigManager', 'Settings', 'load_config', 'get_config']
