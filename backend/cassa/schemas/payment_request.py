"""
Schemas Pydantic per le Richieste di pagamento
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


class PaymentRequestType(str, Enum):
    """Intero residuo o righe selezionate."""
    ORDINAZIONE = "ORDINAZIONE"
    PARZIALE = "PARZIALE"


class PaymentRequestStatus(str, Enum):
    """Stato della richiesta. COMPLETATO e ANNULLATO sono terminali."""
    RICHIESTA = "RICHIESTA"
    COMPLETATO = "COMPLETATO"
    ANNULLATO = "ANNULLATO"


class PaymentRequestCreate(BaseModel):
    """Richiesta inviata dal cameriere."""

    order_id: uuid.UUID
    method: PaymentMethod
    customer_name: Optional[str] = Field(None, max_length=200)
    waiter_name: Optional[str] = Field(None, max_length=200)
    selections: Optional[list[LineSelection]] = Field(
        None, description="Righe da pagare (assenti = intero residuo)"
    )


class PaymentRequestReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PaymentRequestRead(BaseModel):
    """Richiesta di pagamento."""

    id: uuid.UUID
    order_id: uuid.UUID
    tipo: PaymentRequestType
    table_key: Optional[str] = None
    selections: Optional[list[LineSelection]] = None
    amount_cents: int
    method: PaymentMethod
    stato: PaymentRequestStatus
    waiter_name: Optional[str] = None
    customer_name: Optional[str] = None
    payment_id: Optional[uuid.UUID] = None
    reject_reason: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def importo(self) -> Decimal:
        return from_cents(self.amount_cents)
