"""
Schemas Pydantic per i Clienti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CustomerCreate(BaseModel):
    """Dati per la creazione di un cliente."""

    name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=30)
    notes: Optional[str] = None


class CustomerRead(BaseModel):
    """Cliente."""

    id: uuid.UUID
    name: str
    phone: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
