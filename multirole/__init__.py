"""Building blocks for a card duel server: protocol, core messages, replays, banlists, card data and logging."""

__version__ = "0.1.0"