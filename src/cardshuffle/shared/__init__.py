"""cardshuffle Shared Module.

This package contains shared constants, result types, error handling and
logging helpers used across cardshuffle.
"""

__all__ = ["constants", "errors", "logging", "result"]
