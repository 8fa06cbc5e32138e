"""cardshuffle command line interface (see ``cardshuffle.cli.app``)."""
