"""Entry point for ``python -m cardshuffle``."""

from cardshuffle.cli.app import run

if __name__ == "__main__":
    run()
