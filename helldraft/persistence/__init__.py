"""
Persistence - Local saves and run history.

The only state kept across processes besides the shared store.
"""

from .save_manager import RunHistoryEntry, SaveManager

__all__ = ["RunHistoryEntry", "SaveManager"]
