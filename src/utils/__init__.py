"""
Utility modules for the therapy scheduling backend.

This package contains shared helpers used across the application, mainly
timezone-aware datetime handling.
"""

from utils.datetime_utils import format_datetime, get_timezone, to_utc, utc_now

__all__ = ['format_datetime', 'get_timezone', 'to_utc', 'utc_now']
