"""
Schemas Pydantic per i Pagamenti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Contiene:
- Enums: PaymentMethod, PaymentKind, PaymentRecordStatus
- Selezioni di righe per i pagamenti parziali
- Richieste per le modalità di pagamento (ordine, parziale, tavolo, multi-ordine)
- Esiti per-ordine dei pagamenti non atomici
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from cassa.core.money import from_cents


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class PaymentMethod(str, Enum):
    """Metodi di pagamento accettati in cassa."""
    CONTANTI = "CONTANTI"
    POS = "POS"
    MISTO = "MISTO"


class PaymentKind(str, Enum):
    """Modalità con cui il pagamento è stato registrato."""
    COMPLETO = "COMPLETO"
    PARZIALE = "PARZIALE"
    DEBITO = "DEBITO"
    CONTO_SCALARE = "CONTO_SCALARE"


class PaymentRecordStatus(str, Enum):
    """Stato del pagamento registrato."""
    COMPLETATO = "COMPLETATO"
    ANNULLATO = "ANNULLATO"


# Metodo usato per i pagamenti che chiudono righe a debito cliente
DEBT_METHOD = "DEBITO"


# -------------------------------------------------------------------
# Selezioni e richieste
# -------------------------------------------------------------------

class LineSelection(BaseModel):
    """Quantità di una riga da pagare."""

    line_id: uuid.UUID
    quantity: int = Field(..., gt=0)


class PayOrderRequest(BaseModel):
    """Pagamento completo di un'ordinazione."""

    amount: Decimal = Field(..., gt=0, description="Importo incassato in euro")
    method: PaymentMethod
    payer_name: Optional[str] = Field(None, max_length=200)


class PayPartialRequest(BaseModel):
    """Pagamento di un sottoinsieme di righe."""

    selections: list[LineSelection] = Field(..., min_length=1)
    method: PaymentMethod
    payer_name: Optional[str] = Field(None, max_length=200)
    amount: Optional[Decimal] = Field(
        None, gt=0, description="Importo incassato (default: valore delle righe selezionate)"
    )


class PayTableRequest(BaseModel):
    """Pagamento di tutte le ordinazioni aperte di un tavolo."""

    method: PaymentMethod
    payer_name: Optional[str] = Field(None, max_length=200)


class MultiOrderLeg(BaseModel):
    """Righe da pagare di una singola ordinazione."""

    order_id: uuid.UUID
    selections: list[LineSelection] = Field(..., min_length=1)


class MultiOrderPaymentRequest(BaseModel):
    """Un pagatore, righe di più ordinazioni."""

    legs: list[MultiOrderLeg] = Field(..., min_length=1)
    method: PaymentMethod
    payer_name: Optional[str] = Field(None, max_length=200)


class CancelPaymentRequest(BaseModel):
    """Annullamento di un pagamento."""

    reason: Optional[str] = Field(None, max_length=500)


# -------------------------------------------------------------------
# Risposte
# -------------------------------------------------------------------

class PaymentRead(BaseModel):
    """Pagamento registrato."""

    id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    account_id: Optional[uuid.UUID] = None
    amount_cents: int
    method: str
    kind: PaymentKind
    payer_name: Optional[str] = None
    status: PaymentRecordStatus
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)


class LegOutcome(BaseModel):
    """Esito del pagamento di una singola ordinazione."""

    order_id: uuid.UUID
    ok: bool
    payment: Optional[PaymentRead] = None
    error_code: Optional[str] = None
    detail: Optional[str] = None


class TablePaymentOutcome(BaseModel):
    """
    Esito di un pagamento su più ordinazioni.

    Ogni ordinazione è una transazione separata: gli ordini pagati restano
    pagati anche se un altro fallisce.
    """

    table_key: Optional[str] = None
    legs: list[LegOutcome] = Field(default_factory=list)

    @computed_field
    @property
    def all_ok(self) -> bool:
        return all(leg.ok for leg in self.legs)

    @computed_field
    @property
    def paid_count(self) -> int:
        return sum(1 for leg in self.legs if leg.ok)

    @computed_field
    @property
    def failed_count(self) -> int:
        return sum(1 for leg in self.legs if not leg.ok)

    @computed_field
    @property
    def total_paid_cents(self) -> int:
        return sum(leg.payment.amount_cents for leg in self.legs if leg.ok and leg.payment)
