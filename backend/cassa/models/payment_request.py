"""
Modello SQLAlchemy per le Richieste di pagamento
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Il cameriere chiede alla cassa di incassare un'ordinazione (per intero o
per alcune righe); la cassa accetta, eseguendo il pagamento, o rifiuta.
"""

import datetime
import uuid
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from cassa.models import Base
from cassa.models.mixins import TimestampMixin, UUIDMixin


class PaymentRequest(Base, UUIDMixin, TimestampMixin):
    """
    Richiesta di pagamento inviata dalla sala alla cassa.

    Attributes:
        order_id: Ordinazione da incassare
        tipo: ORDINAZIONE (intero residuo) o PARZIALE (righe selezionate)
        table_key: Tavolo al momento della richiesta (None per asporto)
        selections: Righe richieste [{"line_id", "quantity"}], solo per PARZIALE
        amount_cents: Importo atteso al momento della richiesta
        method: Metodo di pagamento indicato dal cliente
        stato: RICHIESTA, COMPLETATO o ANNULLATO
        waiter_name: Cameriere che ha inviato la richiesta
        customer_name: Cliente che paga
        payment_id: Pagamento registrato all'accettazione
        reject_reason: Motivo del rifiuto
        completed_at: Data/ora di accettazione o rifiuto
    """

    __tablename__ = "payment_requests"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    tipo: Mapped[str] = mapped_column(String(20), nullable=False)

    table_key: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    selections: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    method: Mapped[str] = mapped_column(String(20), nullable=False)

    stato: Mapped[str] = mapped_column(String(20), nullable=False, default="RICHIESTA")

    waiter_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("payments.id", ondelete="SET NULL"),
        nullable=True,
    )

    reject_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    completed_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_payment_requests_stato", "stato"),
        Index("ix_payment_requests_order_id", "order_id"),
        CheckConstraint("amount_cents > 0", name="ck_payment_requests_amount_positive"),
        CheckConstraint("tipo IN ('ORDINAZIONE', 'PARZIALE')", name="ck_payment_requests_tipo"),
        CheckConstraint(
            "stato IN ('RICHIESTA', 'COMPLETATO', 'ANNULLATO')",
            name="ck_payment_requests_stato",
        ),
        CheckConstraint(
            "method IN ('CONTANTI', 'POS', 'MISTO')",
            name="ck_payment_requests_method",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentRequest(id={self.id}, order={self.order_id}, "
            f"tipo={self.tipo}, stato={self.stato})>"
        )
