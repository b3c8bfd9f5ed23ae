"""
Schemas Pydantic per i Debiti clienti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from cassa.core.money import from_cents
from cassa.schemas.payment import LineSelection, PaymentMethod


class DebtState(str, Enum):
    """Stato del debito. SETTLED è terminale."""
    OPEN = "OPEN"
    SETTLED = "SETTLED"


class DebtCreate(BaseModel):
    """Chiusura a debito (totale o parziale) del residuo di un'ordinazione."""

    customer_id: uuid.UUID
    order_id: uuid.UUID
    amount: Decimal = Field(..., description="Importo da porre a debito in euro")
    note: Optional[str] = None
    selections: Optional[list[LineSelection]] = Field(
        None, description="Righe coperte dal debito (obbligatorie se parziale)"
    )


class DirectDebtCreate(BaseModel):
    """Debito non legato a un'ordinazione."""

    customer_id: uuid.UUID
    amount: Decimal
    note: Optional[str] = None


class DebtPaymentCreate(BaseModel):
    """Incasso a fronte di un debito."""

    amount: Decimal
    method: PaymentMethod
    note: Optional[str] = None


class DebtPaymentRead(BaseModel):
    id: uuid.UUID
    debt_id: uuid.UUID
    amount_cents: int
    method: str
    note: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DebtRead(BaseModel):
    """Debito con residuo."""

    id: uuid.UUID
    customer_id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    payment_id: Optional[uuid.UUID] = None
    amount_cents: int
    paid_cents: int
    remaining_cents: int
    state: DebtState
    note: Optional[str] = None
    settled_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def rimanente(self) -> Decimal:
        return from_cents(self.remaining_cents)


class CustomerDebtBalance(BaseModel):
    """Esposizione complessiva di un cliente."""

    customer_id: uuid.UUID
    open_debts: int
    total_cents: int
    paid_cents: int
    remaining_cents: int

    @computed_field
    @property
    def rimanente(self) -> Decimal:
        return from_cents(self.remaining_cents)
