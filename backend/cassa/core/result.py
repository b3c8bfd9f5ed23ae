"""
Risultato tipizzato per il confine del core.
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

I servizi sollevano eccezioni AppException; il facade CassaService le
raccoglie in un Result così che chi integra il core (UI cassa, listener
eventi) possa distinguere successo e fallimento senza try/except.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar

from cassa.core.exceptions import AppException

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Esito di un'operazione: valore oppure errore di dominio."""

    value: Optional[T] = None
    error: Optional[AppException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.error_code if self.error is not None else None

    def unwrap(self) -> T:
        """Restituisce il valore o rilancia l'errore di dominio."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppException) -> "Result[T]":
        return cls(error=error)


async def capture(awaitable: Awaitable[T]) -> Result[T]:
    """
    Attende l'operazione e converte le eccezioni di dominio in Result.

    Solo le AppException diventano failure: qualunque altro errore
    è un bug e viene propagato.
    """
    try:
        return Result.success(await awaitable)
    except AppException as exc:
        logger.info("Operazione fallita: %s (%s)", exc.detail, exc.error_code)
        return Result.failure(exc)
