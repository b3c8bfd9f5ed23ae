"""
Schemas Pydantic per il riepilogo di Cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


class CashRegisterSummary(BaseModel):
    close_date: date = Field(..., description="Data di riferimento")
    total_cash: Decimal = Field(..., description="Totale incassato in contanti")
    total_pos: Decimal = Field(..., description="Totale incassato con POS")
    total_mixed: Decimal = Field(..., description="Totale incassi misti")
    total_debt_charged: Decimal = Field(..., description="Totale chiuso a debito cliente")
    total_debt_collected: Decimal = Field(..., description="Incassi a fronte di debiti")
    total_amount: Decimal = Field(..., description="Totale incassato (esclusi addebiti a debito)")
    payments_count: int = Field(..., description="Numero di pagamenti inclusi")
    cancelled_count: int = Field(..., description="Pagamenti annullati nella giornata")
