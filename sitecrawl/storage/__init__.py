"""
Storage layer for the crawler.
"""

from .state_store import StateStore, SettingsStore, URLSet

__all__ = ['StateStore', 'SettingsStore', 'URLSet']
