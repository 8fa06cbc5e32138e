"""cardshuffle: cached card collection client with a timed random shuffle."""

from cardshuffle.shared.constants import CLIDefaults

__version__ = CLIDefaults.VERSION

__all__ = ["__version__"]
