"""
Router FastAPI per il riepilogo di cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.database import get_db
from cassa.schemas.cash_register import CashRegisterSummary
from cassa.services.cash_register_service import CashRegisterService

router = APIRouter(prefix="/cash-register", tags=["Cassa"])


@router.get("/summary/{target_date}", response_model=CashRegisterSummary)
async def get_daily_summary(
    target_date: date,
    db: AsyncSession = Depends(get_db),
):
    """Totali incassati in una giornata, per metodo di pagamento."""
    return await CashRegisterService.get_daily_summary(target_date, db)
