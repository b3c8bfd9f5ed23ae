"""
Schemas Pydantic per Ordinazioni e Gruppi Tavolo
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Contiene:
- Enums: OrderType, OrderStatus, PaymentState
- Schemas per OrderLine
- Schemas per Order
- TableGroup (vista aggregata per tavolo calcolata in cassa)
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from cassa.core.money import from_cents, to_cents


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class OrderType(str, Enum):
    """Tipo di ordinazione."""
    TAVOLO = "TAVOLO"
    ASPORTO = "ASPORTO"
    BANCONE = "BANCONE"


class OrderStatus(str, Enum):
    """Stato di servizio dell'ordinazione."""
    ORDINATO = "ORDINATO"
    IN_PREPARAZIONE = "IN_PREPARAZIONE"
    PRONTO = "PRONTO"
    CONSEGNATO = "CONSEGNATO"
    PAGATO = "PAGATO"
    ANNULLATO = "ANNULLATO"


class PaymentState(str, Enum):
    """Stato di pagamento derivato dalle righe."""
    NON_PAGATO = "NON_PAGATO"
    PARZIALMENTE_PAGATO = "PARZIALMENTE_PAGATO"
    COMPLETAMENTE_PAGATO = "COMPLETAMENTE_PAGATO"


# -------------------------------------------------------------------
# Schemas per OrderLine
# -------------------------------------------------------------------

class OrderLineCreate(BaseModel):
    """Riga di una nuova ordinazione."""

    product_name: str = Field(..., min_length=1, max_length=200, description="Prodotto")
    unit_price: Decimal = Field(..., ge=0, description="Prezzo unitario in euro")
    quantity: int = Field(..., gt=0, description="Quantità")

    @property
    def unit_price_cents(self) -> int:
        return to_cents(self.unit_price)


class OrderLineRead(BaseModel):
    """Riga con lo stato di pagamento."""

    id: uuid.UUID
    product_name: str
    unit_price_cents: int
    quantity: int
    paid_quantity: int
    paid_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.paid_quantity

    @computed_field
    @property
    def unit_price(self) -> Decimal:
        return from_cents(self.unit_price_cents)


# -------------------------------------------------------------------
# Schemas per Order
# -------------------------------------------------------------------

class OrderCreate(BaseModel):
    """Dati per l'inserimento di una nuova ordinazione."""

    order_type: OrderType = Field(default=OrderType.TAVOLO)
    table_key: Optional[str] = Field(None, max_length=20, description="Tavolo (es. T3, 21, P2)")
    customer_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = Field(None, max_length=200)
    waiter_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    lines: list[OrderLineCreate] = Field(..., min_length=1)

    @field_validator("table_key")
    @classmethod
    def normalize_table_key(cls, v: Optional[str]) -> Optional[str]:
        """Rimuove spazi e uniforma il prefisso in maiuscolo."""
        if v is None:
            return v
        v = v.strip().upper()
        return v or None

    @model_validator(mode="after")
    def check_table(self) -> "OrderCreate":
        """Le ordinazioni al tavolo richiedono il tavolo, le altre no."""
        if self.order_type == OrderType.TAVOLO and not self.table_key:
            raise ValueError("Le ordinazioni al tavolo richiedono table_key")
        if self.order_type != OrderType.TAVOLO and self.table_key:
            raise ValueError("Solo le ordinazioni al tavolo possono avere table_key")
        return self


class OrderRead(BaseModel):
    """Ordinazione con righe e totali in centesimi."""

    id: uuid.UUID
    numero: int
    order_type: OrderType
    table_key: Optional[str] = None
    customer_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = None
    waiter_name: Optional[str] = None
    stato: OrderStatus
    stato_pagamento: PaymentState
    opened_at: datetime
    delivered_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    lines: list[OrderLineRead] = Field(default_factory=list)
    total_cents: int
    paid_cents: int
    remaining_cents: int

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def totale(self) -> Decimal:
        return from_cents(self.total_cents)

    @computed_field
    @property
    def rimanente(self) -> Decimal:
        return from_cents(self.remaining_cents)


# -------------------------------------------------------------------
# Gruppo Tavolo
# -------------------------------------------------------------------

class TableGroup(BaseModel):
    """
    Aggregazione delle ordinazioni di un tavolo.

    Le ordinazioni senza tavolo (asporto, banco) formano un gruppo a sé
    con chiave "ordine-<id>" e is_table=False.
    """

    key: str
    table_key: Optional[str] = None
    is_table: bool = True
    orders: list[OrderRead] = Field(default_factory=list)
    total_cents: int = 0
    paid_cents: int = 0
    remaining_cents: int = 0
    customer_names: list[str] = Field(default_factory=list)
    first_opened_at: Optional[datetime] = None

    @computed_field
    @property
    def totale(self) -> Decimal:
        return from_cents(self.total_cents)

    @computed_field
    @property
    def pagato(self) -> Decimal:
        return from_cents(self.paid_cents)

    @computed_field
    @property
    def rimanente(self) -> Decimal:
        return from_cents(self.remaining_cents)
