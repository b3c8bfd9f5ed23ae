"""
Modelli SQLAlchemy per Ordinazioni e Righe
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Un'ordinazione appartiene a un tavolo (table_key) oppure è un asporto/banco.
Ogni riga registra quante unità risultano già pagate (paid_quantity):
lo stato di pagamento dell'ordine è sempre derivato dalle righe.
"""

import datetime
import uuid
from typing import List, Optional

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
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cassa.models import Base
from cassa.models.mixins import TimestampMixin, UUIDMixin, utcnow


class Order(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le ordinazioni.

    Attributes:
        numero: Numero progressivo leggibile dell'ordinazione
        order_type: TAVOLO, ASPORTO o BANCONE
        table_key: Identificativo del tavolo (es. "T3", "21", "P2"), None per asporto/banco
        customer_id: Cliente associato (opzionale)
        customer_name: Nome cliente mostrato in cassa
        waiter_name: Cameriere che ha preso l'ordinazione
        stato: Stato di servizio (ORDINATO ... CONSEGNATO, PAGATO, ANNULLATO)
        stato_pagamento: Stato derivato dal ledger (NON_PAGATO, PARZIALMENTE_PAGATO,
            COMPLETAMENTE_PAGATO). Scritto solo da LedgerService.
        opened_at: Apertura ordinazione
        delivered_at: Consegna al tavolo
        closed_at: Chiusura per pagamento completo

    Relationships:
        lines: Righe dell'ordinazione
    """

    __tablename__ = "orders"

    # ------------------------------------------------------------
    # Colonne Dati
    # ------------------------------------------------------------
    numero: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Numero progressivo dell'ordinazione",
    )

    order_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="TAVOLO",
        doc="Tipo ordinazione",
    )

    table_key: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Identificativo del tavolo",
    )

    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        doc="Cliente associato",
    )

    customer_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        doc="Nome cliente",
    )

    waiter_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Cameriere",
    )

    stato: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="ORDINATO",
        doc="Stato di servizio dell'ordinazione",
    )

    stato_pagamento: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="NON_PAGATO",
        doc="Stato di pagamento derivato dalle righe",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    opened_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        doc="Apertura ordinazione",
    )

    delivered_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Consegna",
    )

    closed_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Chiusura per pagamento completo",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    lines: Mapped[List["OrderLine"]] = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderLine.position",
        doc="Righe dell'ordinazione",
    )

    # ------------------------------------------------------------
    # Properties Calcolate (centesimi)
    # ------------------------------------------------------------
    @property
    def total_cents(self) -> int:
        """Totale dell'ordinazione."""
        return sum(line.total_cents for line in self.lines)

    @property
    def paid_cents(self) -> int:
        """Quota già pagata."""
        return sum(line.paid_cents for line in self.lines)

    @property
    def remaining_cents(self) -> int:
        """Residuo da pagare."""
        return self.total_cents - self.paid_cents

    @property
    def is_delivered(self) -> bool:
        """True se l'ordinazione può essere pagata."""
        return self.stato in ("CONSEGNATO", "PAGATO")

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_orders_table_key", "table_key"),
        Index("ix_orders_stato", "stato"),
        Index("ix_orders_numero", "numero", unique=True),
        CheckConstraint(
            "order_type IN ('TAVOLO', 'ASPORTO', 'BANCONE')",
            name="ck_orders_order_type",
        ),
        CheckConstraint(
            "stato IN ('ORDINATO', 'IN_PREPARAZIONE', 'PRONTO', 'CONSEGNATO', 'PAGATO', 'ANNULLATO')",
            name="ck_orders_stato",
        ),
        CheckConstraint(
            "stato_pagamento IN ('NON_PAGATO', 'PARZIALMENTE_PAGATO', 'COMPLETAMENTE_PAGATO')",
            name="ck_orders_stato_pagamento",
        ),
    )

    def __repr__(self) -> str:
        return f"<Order(numero={self.numero}, table={self.table_key}, stato={self.stato})>"


class OrderLine(Base, UUIDMixin, TimestampMixin):
    """
    Riga di un'ordinazione.

    paid_quantity è mantenuta dal ledger: 0 <= paid_quantity <= quantity.
    paid_by elenca i pagatori delle porzioni attive (separati da virgola).
    """

    __tablename__ = "order_lines"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        doc="Ordinazione di appartenenza",
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Posizione della riga nell'ordinazione",
    )

    product_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Descrizione prodotto",
    )

    unit_price_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Prezzo unitario in centesimi",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Quantità ordinata",
    )

    paid_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Quantità già pagata",
    )

    paid_by: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        doc="Pagatori delle porzioni pagate",
    )

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="lines",
    )

    @property
    def total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def paid_cents(self) -> int:
        return self.unit_price_cents * self.paid_quantity

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.paid_quantity

    @property
    def remaining_cents(self) -> int:
        return self.unit_price_cents * self.remaining_quantity

    __table_args__ = (
        Index("ix_order_lines_order_id", "order_id"),
        CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        CheckConstraint("unit_price_cents >= 0", name="ck_order_lines_unit_price_positive"),
        CheckConstraint(
            "paid_quantity >= 0 AND paid_quantity <= quantity",
            name="ck_order_lines_paid_quantity_range",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderLine(product={self.product_name}, "
            f"qty={self.paid_quantity}/{self.quantity})>"
        )
