"""
Modelli SQLAlchemy per Pagamenti e Allocazioni sulle righe
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Un Payment è l'unità di incasso; le LineAllocation sono il ledger che
registra quali unità di quali righe quel pagamento ha coperto.
L'annullamento non cancella nulla: marca il pagamento ANNULLATO e le
allocazioni come stornate (reversed_at).
"""

import datetime
import uuid
from typing import Optional

from sqlalchemy import (
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


class Payment(Base, UUIDMixin, TimestampMixin):
    """
    Modello per i pagamenti.

    Attributes:
        order_id: Ordinazione pagata (None per i pagamenti su conto scalare)
        account_id: Conto scalare pagato (solo pagamenti "per altri")
        amount_cents: Importo incassato
        method: CONTANTI, POS, MISTO o DEBITO (chiusura a debito cliente)
        kind: COMPLETO, PARZIALE, DEBITO o CONTO_SCALARE
        payer_name: Chi ha pagato
        status: COMPLETATO o ANNULLATO
        cancel_reason: Motivo dell'annullamento
        cancelled_at: Data/ora annullamento
    """

    __tablename__ = "payments"

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=True,
        doc="Ordinazione pagata",
    )

    account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("scalar_accounts.id", ondelete="RESTRICT"),
        nullable=True,
        doc="Conto scalare pagato",
    )

    amount_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Importo incassato in centesimi",
    )

    method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Metodo di pagamento",
    )

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="COMPLETO",
        doc="Modalità del pagamento",
    )

    payer_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        doc="Pagatore",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="COMPLETATO",
        doc="Stato del pagamento",
    )

    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == "ANNULLATO"

    __table_args__ = (
        Index("ix_payments_order_id", "order_id"),
        Index("ix_payments_account_id", "account_id"),
        Index("ix_payments_created_at", "created_at"),
        CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "method IN ('CONTANTI', 'POS', 'MISTO', 'DEBITO')",
            name="ck_payments_method",
        ),
        CheckConstraint(
            "kind IN ('COMPLETO', 'PARZIALE', 'DEBITO', 'CONTO_SCALARE')",
            name="ck_payments_kind",
        ),
        CheckConstraint(
            "status IN ('COMPLETATO', 'ANNULLATO')",
            name="ck_payments_status",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, amount_cents={self.amount_cents}, "
            f"method={self.method}, status={self.status})>"
        )


class LineAllocation(Base, UUIDMixin, TimestampMixin):
    """
    Allocazione di un pagamento su una riga.

    Registra quante unità della riga il pagamento ha coperto. Una sola
    allocazione per coppia (pagamento, riga).
    """

    __tablename__ = "line_allocations"

    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("order_lines.id", ondelete="CASCADE"),
        nullable=False,
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    payer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    reversed_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Valorizzato quando l'allocazione viene stornata",
    )

    @property
    def is_active(self) -> bool:
        return self.reversed_at is None

    __table_args__ = (
        Index("idx_allocation_payment_line_unique", "payment_id", "line_id", unique=True),
        Index("idx_allocation_line", "line_id"),
        Index("idx_allocation_order", "order_id"),
        CheckConstraint("quantity > 0", name="ck_allocation_quantity_positive"),
        CheckConstraint("amount_cents >= 0", name="ck_allocation_amount_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<LineAllocation(payment={self.payment_id}, line={self.line_id}, "
            f"qty={self.quantity})>"
        )
