"""
Sincronizzazione real-time della vista cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Mantiene lo snapshot delle ordinazioni visibili in cassa allineato al
server combinando eventi push, refresh su richiesta e aggiornamenti
ottimistici dopo un pagamento.

Stati di connessione:
    CONNECTING   canale non pronto; gli eventi non producono refresh
    CONNECTED    snapshot allineato, gli eventi programmano refresh
    RECONCILING  refresh in corso

Alla (ri)connessione si attende un breve intervallo di assestamento e
poi si esegue esattamente un refresh forzato. Se la lettura dello
snapshot fallisce con il canale ancora attivo, il refresh viene ritentato.
"""

import asyncio
import logging
import uuid
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cassa.core.config import Settings, settings as default_settings
from cassa.core.database import session_scope
from cassa.core.exceptions import AppException, StaleStateError, TransportError
from cassa.core.result import Result
from cassa.models.mixins import utcnow
from cassa.schemas.order import OrderRead, OrderStatus, PaymentState, TableGroup
from cassa.services.order_service import OrderService
from cassa.services.table_groups import compute_table_groups
from cassa.sync.cache import SnapshotCache, merge_orders
from cassa.sync.debounce import RefreshDebouncer
from cassa.sync.dedup import EventDeduplicator
from cassa.sync.events import NotificationNew, parse_event

logger = logging.getLogger(__name__)

SnapshotFetcher = Callable[[], Awaitable[Sequence[OrderRead]]]


class SyncState(str, Enum):
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONCILING = "RECONCILING"


class ViewBucket(str, Enum):
    """Sezioni della vista cassa."""
    IN_ATTESA = "IN_ATTESA"
    PARZIALI = "PARZIALI"
    PAGATI = "PAGATI"


def bucket_of(order: OrderRead) -> ViewBucket:
    if order.stato_pagamento == PaymentState.COMPLETAMENTE_PAGATO or order.stato == OrderStatus.PAGATO:
        return ViewBucket.PAGATI
    if order.paid_cents > 0:
        return ViewBucket.PARZIALI
    return ViewBucket.IN_ATTESA


def build_view(orders: Iterable[OrderRead]) -> dict[ViewBucket, list[TableGroup]]:
    """Divide le ordinazioni nelle tre sezioni e le raggruppa per tavolo."""
    by_bucket: dict[ViewBucket, list[OrderRead]] = {b: [] for b in ViewBucket}
    for order in orders:
        by_bucket[bucket_of(order)].append(order)
    return {bucket: compute_table_groups(items) for bucket, items in by_bucket.items()}


def as_paid(order: OrderRead) -> OrderRead:
    """Copia dell'ordinazione come se fosse stata saldata."""
    lines = [
        line.model_copy(update={"paid_quantity": line.quantity})
        for line in order.lines
    ]
    return order.model_copy(
        update={
            "lines": lines,
            "stato": OrderStatus.PAGATO,
            "stato_pagamento": PaymentState.COMPLETAMENTE_PAGATO,
            "paid_cents": order.total_cents,
            "remaining_cents": 0,
        }
    )


# ------------------------------------------------------------
# Fetcher da database
# ------------------------------------------------------------

def database_snapshot_fetcher(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    paid_window: timedelta = timedelta(hours=12),
) -> SnapshotFetcher:
    """
    Fetcher che legge lo snapshot direttamente dal database.

    Gli errori di connessione diventano TransportError, così la
    sincronizzazione torna in CONNECTING invece di propagare.
    """
    service = OrderService()

    async def fetch() -> list[OrderRead]:
        try:
            async with session_scope(session_factory) as db:
                orders = await service.get_cashier_orders(db, paid_since=utcnow() - paid_window)
                return [OrderRead.model_validate(o) for o in orders]
        except (DBAPIError, OSError) as exc:
            raise TransportError(f"Lettura snapshot cassa non riuscita: {exc}") from exc

    return fetch


# ------------------------------------------------------------
# Sincronizzazione
# ------------------------------------------------------------

class ReconciliationSync:
    """
    Riconciliazione della vista cassa.

    Uso tipico:
        sync = ReconciliationSync(database_snapshot_fetcher())
        await sync.on_transport_connected()
        await sync.on_event("order:paid", {"orderId": "..."})
        result = await sync.pay_optimistically(order_id, lambda: cassa.pay_order(...))
    """

    def __init__(
        self,
        fetch_snapshot: SnapshotFetcher,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self._fetch_snapshot = fetch_snapshot
        self._state = SyncState.CONNECTING
        self._lock = asyncio.Lock()
        self._settle_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self.settle_seconds = config.sync_reconnect_settle_seconds
        self.retry_base_seconds = config.sync_retry_base_seconds
        self.retry_max_seconds = config.sync_retry_max_seconds
        self._transport_up = False
        self._failures = 0
        self.notification_kinds = frozenset(config.sync_notification_kinds)
        self.cache: SnapshotCache[dict[uuid.UUID, OrderRead]] = SnapshotCache()
        self.dedup = EventDeduplicator(config.sync_dedup_window_seconds)
        self.debouncer = RefreshDebouncer(
            self._debounced_refresh,
            delay=config.sync_debounce_seconds,
            max_wait=config.sync_debounce_max_wait_seconds,
        )
        self.refresh_count = 0

    # ------------------------------------------------------------
    # Stato e vista
    # ------------------------------------------------------------
    @property
    def state(self) -> SyncState:
        return self._state

    def _set_state(self, state: SyncState) -> None:
        if state != self._state:
            logger.debug("Sync cassa: %s -> %s", self._state.value, state.value)
            self._state = state

    @property
    def orders(self) -> dict[uuid.UUID, OrderRead]:
        entry = self.cache.entry
        return dict(entry.value) if entry is not None else {}

    def view(self) -> dict[ViewBucket, list[TableGroup]]:
        return build_view(self.orders.values())

    # ------------------------------------------------------------
    # Trasporto
    # ------------------------------------------------------------
    async def on_transport_connected(self) -> None:
        """Canale (ri)connesso: assestamento e un solo refresh forzato."""
        self._set_state(SyncState.CONNECTING)
        self._transport_up = True
        self._failures = 0
        self.debouncer.cancel()
        self._schedule_refresh(self.settle_seconds)

    def _schedule_refresh(self, delay: float) -> None:
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = asyncio.get_running_loop().create_task(self._settle_then_refresh(delay))

    async def _settle_then_refresh(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._settle_task = None
        await self.refresh(force=True)

    def _retry_delay(self) -> float:
        return min(self.retry_base_seconds * 2 ** (self._failures - 1), self.retry_max_seconds)

    def on_transport_lost(self) -> None:
        self._transport_up = False
        self._set_state(SyncState.CONNECTING)
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = None
        self.debouncer.cancel()
        self.cache.invalidate("canale disconnesso")

    async def wait_settled(self) -> None:
        """Attende la fine dell'eventuale refresh di riconnessione."""
        task = self._settle_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------
    # Eventi
    # ------------------------------------------------------------
    async def on_event(self, event_class: str, payload: Optional[Mapping[str, Any]]) -> bool:
        """
        Gestisce un evento push.

        Returns:
            True se l'evento ha programmato un refresh
        """
        event = parse_event(event_class, payload)
        if event is None:
            return False
        if isinstance(event, NotificationNew) and event.kind not in self.notification_kinds:
            return False
        if self.dedup.is_duplicate(event.dedup_key):
            logger.debug("Evento duplicato ignorato: %s %s", event.type, event.entity_id)
            return False
        if self._state == SyncState.CONNECTING:
            # Il refresh di (ri)connessione riallinea comunque lo snapshot
            return False
        self.cache.invalidate(f"evento {event.type}")
        self.debouncer.trigger()
        return True

    # ------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------
    async def _debounced_refresh(self) -> None:
        await self.refresh()

    async def refresh(self, force: bool = False) -> bool:
        """
        Rilegge lo snapshot dal server.

        Senza force il refresh viene saltato quando il canale non è
        pronto. Un TransportError riporta lo stato in CONNECTING e, se il
        canale push è attivo, programma un nuovo refresh forzato con attesa
        crescente (retry_base_seconds raddoppiato fino a retry_max_seconds).

        Returns:
            True se lo snapshot è stato aggiornato
        """
        if force:
            self.debouncer.cancel()
        elif self._state == SyncState.CONNECTING:
            return False

        async with self._lock:
            self._set_state(SyncState.RECONCILING)
            try:
                orders = await self._fetch_snapshot()
            except TransportError as exc:
                self._failures += 1
                self.cache.invalidate("errore di trasporto")
                self._set_state(SyncState.CONNECTING)
                if self._transport_up and self._settle_task is None:
                    delay = self._retry_delay()
                    logger.warning(
                        "Refresh cassa non riuscito (%s): nuovo tentativo tra %.2fs", exc.detail, delay
                    )
                    self._schedule_refresh(delay)
                else:
                    logger.warning("Refresh cassa non riuscito: %s", exc.detail)
                return False
            self._failures = 0
            self.cache.put({o.id: o for o in orders})
            self.refresh_count += 1
            self._set_state(SyncState.CONNECTED)
            return True

    # ------------------------------------------------------------
    # Aggiornamento ottimistico
    # ------------------------------------------------------------
    async def pay_optimistically(
        self,
        order_id: uuid.UUID,
        operation: Callable[[], Awaitable[Any]],
    ) -> Result[Any]:
        """
        Sposta subito l'ordinazione tra le pagate ed esegue il pagamento.

        In caso di fallimento esegue subito un refresh forzato che
        ripristina la vista reale; in caso di successo programma un
        refresh debounced di conferma.

        Un'ordinazione assente dallo snapshot corrente non viene pagata:
        l'esito è un fallimento StaleStateError e parte un refresh forzato.
        """
        current = self.orders
        if order_id not in current:
            self._spawn(self.refresh(force=True))
            return Result.failure(
                StaleStateError(
                    f"Ordinazione {order_id} non presente nella vista cassa",
                    extra={"order_id": str(order_id)},
                )
            )

        self.cache.put(merge_orders(current, updated=[as_paid(current[order_id])]), optimistic=True)

        try:
            outcome = await operation()
        except AppException as exc:
            outcome = Result.failure(exc)
        result = outcome if isinstance(outcome, Result) else Result.success(outcome)

        if not result.ok:
            logger.info(
                "Pagamento ottimistico di %s fallito (%s): riallineamento", order_id, result.error_code
            )
            await self.refresh(force=True)
        elif self._state != SyncState.CONNECTING:
            self.debouncer.trigger()
        return result

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def close(self) -> None:
        self.debouncer.cancel()
        if self._settle_task is not None:
            self._settle_task.cancel()
        for task in list(self._background):
            task.cancel()
