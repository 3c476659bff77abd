"""
Save module - local persistence of goals, trees and stats.
"""

from levelup.save.manager import SaveManager, SaveEvent, SaveMetadata

__all__ = [
    "SaveManager",
    "SaveEvent",
    "SaveMetadata",
]
