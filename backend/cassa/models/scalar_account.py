"""
Modelli SQLAlchemy per Conti Scalari
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Un conto scalare è un conto progressivo (tavolo o cliente) su cui si
registrano movimenti in sola aggiunta: ORDINE aumenta il saldo, PAGAMENTO
lo riduce, STORNO annulla un movimento precedente. Il saldo non è
memorizzato: si ricalcola sempre dai movimenti.
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
from cassa.models.mixins import TimestampMixin, UUIDMixin, utcnow


class ScalarAccount(Base, UUIDMixin, TimestampMixin):
    """
    Conto scalare intestato a un tavolo o a un cliente.

    Attributes:
        table_key: Tavolo intestatario
        customer_id: Cliente intestatario (anagrafica)
        customer_name: Nome del cliente intestatario
        stato: APERTO o CHIUSO (chiuso automaticamente a saldo zero)
        opened_at: Apertura
        closed_at: Chiusura
    """

    __tablename__ = "scalar_accounts"

    table_key: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=True,
    )

    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    stato: Mapped[str] = mapped_column(String(20), nullable=False, default="APERTO")

    opened_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    closed_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def owner_label(self) -> str:
        """Intestazione leggibile del conto."""
        if self.table_key:
            return f"Tavolo {self.table_key}"
        return self.customer_name or "Cliente"

    __table_args__ = (
        Index("ix_scalar_accounts_table_key", "table_key"),
        Index("ix_scalar_accounts_customer_id", "customer_id"),
        Index("ix_scalar_accounts_stato", "stato"),
        CheckConstraint("stato IN ('APERTO', 'CHIUSO')", name="ck_scalar_accounts_stato"),
        CheckConstraint(
            "table_key IS NOT NULL OR customer_id IS NOT NULL OR customer_name IS NOT NULL",
            name="ck_scalar_accounts_owner",
        ),
    )

    def __repr__(self) -> str:
        return f"<ScalarAccount(owner={self.owner_label}, stato={self.stato})>"


class Movement(Base, UUIDMixin, TimestampMixin):
    """
    Movimento di un conto scalare.

    amount_cents è sempre positivo: il segno dipende dal tipo
    (e, per gli STORNO, dal tipo del movimento stornato).
    """

    __tablename__ = "scalar_movements"

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("scalar_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    tipo: Mapped[str] = mapped_column(String(20), nullable=False)

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    reversed_movement_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("scalar_movements.id", ondelete="RESTRICT"),
        nullable=True,
        doc="Movimento stornato (solo STORNO)",
    )

    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("payments.id", ondelete="RESTRICT"),
        nullable=True,
        doc="Pagamento collegato (solo PAGAMENTO)",
    )

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        doc="Ordinazione addebitata (solo ORDINE)",
    )

    payer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_scalar_movements_account_id", "account_id"),
        # Un movimento può essere stornato una sola volta
        Index("uq_scalar_movements_reversed", "reversed_movement_id", unique=True),
        # Un pagamento genera al più un movimento
        Index("uq_scalar_movements_payment", "payment_id", unique=True),
        CheckConstraint("amount_cents > 0", name="ck_scalar_movements_amount_positive"),
        CheckConstraint(
            "tipo IN ('ORDINE', 'PAGAMENTO', 'STORNO')",
            name="ck_scalar_movements_tipo",
        ),
        CheckConstraint(
            "(tipo = 'STORNO') = (reversed_movement_id IS NOT NULL)",
            name="ck_scalar_movements_storno_target",
        ),
    )

    def __repr__(self) -> str:
        return f"<Movement(tipo={self.tipo}, amount_cents={self.amount_cents})>"
