"""
Shared types for availability-related functionality.

This module contains shared data classes used by the availability service
and the availability API to keep slot data structures consistent.
"""

from dataclasses import dataclass
from datetime import time


@dataclass
class SlotData:
    """
    One candidate slot of a practitioner's day.

    `is_available` is False when the slot window overlaps a non-cancelled
    booking of that practitioner.
    """
    start_time: time
    end_time: time
    is_available: bool

    def to_dict(self) -> dict[str, str | bool]:
        """Convert to dictionary format."""
        return {
            "start_time": f"{self.start_time.hour:02d}:{self.start_time.minute:02d}",
            "end_time": f"{self.end_time.hour:02d}:{self.end_time.minute:02d}",
            "is_available": self.is_available,
        }
