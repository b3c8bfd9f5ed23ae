"""
Deduplicazione degli eventi real-time
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

import time
from typing import Callable, Hashable


class EventDeduplicator:
    """
    Scarta gli eventi ripetuti entro una finestra temporale.

    La chiave è (tipo evento, entità principale): lo stesso order:paid
    ricevuto più volte dallo stesso o da più canali conta una volta sola.
    La finestra parte dal primo evento accettato.
    """

    def __init__(self, window_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._seen: dict[Hashable, float] = {}

    def is_duplicate(self, key: Hashable) -> bool:
        """True se la chiave è già stata accettata entro la finestra."""
        now = self._clock()
        self._prune(now)
        if key in self._seen:
            return True
        self._seen[key] = now
        return False

    def _prune(self, now: float) -> None:
        expired = [k for k, seen_at in self._seen.items() if now - seen_at >= self.window_seconds]
        for key in expired:
            del self._seen[key]

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
