"""A player's deck: main, extra and side piles of card codes."""

from collections import Counter
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Deck:
    """Card codes of the three piles and the deck check error code (0 if none).

    An empty deck is valid when deck checking is disabled.
    """

    main: tuple[int, ...] = field(default_factory=tuple)
    extra: tuple[int, ...] = field(default_factory=tuple)
    side: tuple[int, ...] = field(default_factory=tuple)
    error: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "main", tuple(self.main))
        object.__setattr__(self, "extra", tuple(self.extra))
        object.__setattr__(self, "side", tuple(self.side))

    def code_map(self) -> dict[int, int]:
        """Count every card code across all piles, ordered by code."""
        counts = Counter(self.main)
        counts.update(self.extra)
        counts.update(self.side)
        return dict(sorted(counts.items()))