"""
Emissione scontrini
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

La stampa/rendering dello scontrino è un collaboratore esterno: la cassa
chiede l'emissione solo dopo che il pagamento è stato salvato.
"""

import logging
from typing import Optional, Protocol

from cassa.core.money import format_euro
from cassa.schemas.order import OrderRead
from cassa.schemas.payment import PaymentRead

logger = logging.getLogger(__name__)


class ReceiptIssuer(Protocol):
    """Interfaccia verso la stampante/servizio scontrini."""

    async def issue(self, payment: PaymentRead, order: Optional[OrderRead]) -> None:
        ...


class LoggingReceiptIssuer:
    """Implementazione di default: registra la richiesta nei log."""

    async def issue(self, payment: PaymentRead, order: Optional[OrderRead]) -> None:
        logger.info(
            "Scontrino richiesto: pagamento %s, ordinazione #%s, %s (%s)",
            payment.id,
            order.numero if order else "-",
            format_euro(payment.amount_cents),
            payment.method,
        )
