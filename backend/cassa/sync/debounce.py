"""
Debounce dei refresh
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RefreshDebouncer:
    """
    Raggruppa una raffica di richieste in un'unica esecuzione.

    Ogni trigger() rinvia l'esecuzione di `delay` secondi, ma mai oltre
    `max_wait` secondi dalla prima richiesta non ancora servita: sotto
    una raffica continua il refresh parte comunque.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        delay: float,
        max_wait: float,
    ) -> None:
        if max_wait < delay:
            raise ValueError("max_wait deve essere >= delay")
        self._callback = callback
        self.delay = delay
        self.max_wait = max_wait
        self._task: Optional[asyncio.Task] = None
        self._first_request_at: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        """Richiede un'esecuzione (da chiamare dentro l'event loop)."""
        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._first_request_at is None:
            self._first_request_at = now
        fire_at = min(now + self.delay, self._first_request_at + self.max_wait)

        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = loop.create_task(self._fire_after(max(0.0, fire_at - now)))

    def cancel(self) -> None:
        """Annulla l'esecuzione in attesa, se presente."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._first_request_at = None

    async def _fire_after(self, wait: float) -> None:
        await asyncio.sleep(wait)
        # Da qui un nuovo trigger() programma un'esecuzione successiva
        # invece di cancellare quella in corso
        self._task = None
        self._first_request_at = None
        try:
            await self._callback()
        except Exception:
            logger.exception("Refresh debounced fallito")
