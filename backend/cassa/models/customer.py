"""
Modello SQLAlchemy per l'anagrafica Clienti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cassa.models import Base
from cassa.models.mixins import TimestampMixin, UUIDMixin


class Customer(Base, UUIDMixin, TimestampMixin):
    """
    Cliente abituale del locale.

    Serve come intestatario di debiti e di conti scalari.
    """

    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Nome e cognome (o soprannome) del cliente",
    )

    phone: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
        doc="Telefono",
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_customers_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name={self.name})>"
