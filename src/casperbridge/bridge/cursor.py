"""Per-chain scan position."""

import threading
from typing import Optional

from .bridge_types import ChainId


class EventCursor:
    """Last confirmed position scanned on one chain.

    Monotonically non-decreasing; only the chain's watcher advances it.
    ``position`` is ``None`` until the first successful head read when no
    explicit start position was configured.
    """

    def __init__(self, chain: ChainId, position: Optional[int] = None):
        if position is not None and position < 0:
            raise ValueError("Cursor position must be non-negative")
        self.chain = chain
        self._position = position
        self._lock = threading.Lock()

    @property
    def position(self) -> Optional[int]:
        with self._lock:
            return self._position

    @property
    def is_initialized(self) -> bool:
        return self.position is not None

    def advance(self, position: int) -> int:
        """Move forward to ``position``; moving backwards is an error."""
        with self._lock:
            if self._position is not None and position < self._position:
                raise ValueError(
                    f"{self.chain.value} cursor cannot move back "
                    f"from {self._position} to {position}"
                )
            self._position = position
            return position

    def __repr__(self) -> str:
        return f"EventCursor({self.chain.value}, {self._position})"
