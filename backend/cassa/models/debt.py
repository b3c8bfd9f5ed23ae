"""
Modelli SQLAlchemy per Debiti clienti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Un debito nasce chiudendo il residuo di un'ordinazione "a debito" oppure
direttamente, senza ordinazione. Il residuo è sempre amount - paid.
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


class Debt(Base, UUIDMixin, TimestampMixin):
    """
    Debito di un cliente.

    Attributes:
        customer_id: Cliente debitore
        order_id: Ordinazione di origine (None per debiti diretti)
        payment_id: Pagamento DEBITO che ha chiuso le righe sul ledger
        amount_cents: Importo originario
        paid_cents: Totale già incassato (somma dei DebtPayment)
        state: OPEN o SETTLED (stato terminale)
        note: Nota libera
        settled_at: Data/ora saldo
    """

    __tablename__ = "debts"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
    )

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=True,
    )

    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("payments.id", ondelete="RESTRICT"),
        nullable=True,
    )

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    paid_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    state: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN")

    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    settled_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def remaining_cents(self) -> int:
        """Residuo ancora dovuto."""
        return self.amount_cents - self.paid_cents

    @property
    def is_direct(self) -> bool:
        """True per i debiti non legati a un'ordinazione."""
        return self.order_id is None

    __table_args__ = (
        Index("ix_debts_customer_id", "customer_id"),
        Index("ix_debts_state", "state"),
        CheckConstraint("amount_cents > 0", name="ck_debts_amount_positive"),
        CheckConstraint(
            "paid_cents >= 0 AND paid_cents <= amount_cents",
            name="ck_debts_paid_range",
        ),
        CheckConstraint("state IN ('OPEN', 'SETTLED')", name="ck_debts_state"),
    )

    def __repr__(self) -> str:
        return (
            f"<Debt(id={self.id}, amount_cents={self.amount_cents}, "
            f"paid_cents={self.paid_cents}, state={self.state})>"
        )


class DebtPayment(Base, UUIDMixin, TimestampMixin):
    """Incasso (anche parziale) a fronte di un debito."""

    __tablename__ = "debt_payments"

    debt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("debts.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    method: Mapped[str] = mapped_column(String(20), nullable=False)

    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_debt_payments_debt_id", "debt_id"),
        CheckConstraint("amount_cents > 0", name="ck_debt_payments_amount_positive"),
        CheckConstraint(
            "method IN ('CONTANTI', 'POS', 'MISTO')",
            name="ck_debt_payments_method",
        ),
    )

    def __repr__(self) -> str:
        return f"<DebtPayment(debt={self.debt_id}, amount_cents={self.amount_cents})>"
