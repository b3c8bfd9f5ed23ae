"""
Cache dello snapshot di cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Mapping, Optional, TypeVar

from cassa.schemas.order import OrderRead

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Valore in cache con istante di lettura e versione crescente."""

    value: T
    fetched_at: float
    version: int
    optimistic: bool = False


@dataclass
class SnapshotCache(Generic[T]):
    """
    Contenitore di una sola entry con invalidazione esplicita.

    Ogni put() incrementa la versione; invalidate() marca la entry come
    non più affidabile senza perdere l'ultimo valore noto.
    """

    clock: Callable[[], float] = time.monotonic
    _entry: Optional[CacheEntry[T]] = field(default=None, init=False)
    _version: int = field(default=0, init=False)
    _valid: bool = field(default=False, init=False)
    invalidated_reason: Optional[str] = field(default=None, init=False)

    @property
    def entry(self) -> Optional[CacheEntry[T]]:
        return self._entry

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_valid(self) -> bool:
        return self._valid and self._entry is not None

    def put(self, value: T, optimistic: bool = False) -> CacheEntry[T]:
        self._version += 1
        self._entry = CacheEntry(
            value=value,
            fetched_at=self.clock(),
            version=self._version,
            optimistic=optimistic,
        )
        self._valid = True
        self.invalidated_reason = None
        return self._entry

    def invalidate(self, reason: str) -> None:
        if self._valid:
            logger.debug("Snapshot cassa invalidato: %s", reason)
        self._valid = False
        self.invalidated_reason = reason


def merge_orders(
    current: Mapping[uuid.UUID, OrderRead],
    updated: Iterable[OrderRead] = (),
    removed: Iterable[uuid.UUID] = (),
) -> dict[uuid.UUID, OrderRead]:
    """
    Unisce aggiornamenti puntuali a uno snapshot di ordinazioni.

    (current - removed) con gli aggiornati che sostituiscono per id.
    """
    merged = {k: v for k, v in current.items()}
    for order_id in removed:
        merged.pop(order_id, None)
    for order in updated:
        merged[order.id] = order
    return merged
