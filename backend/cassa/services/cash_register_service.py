"""
Service Layer per il riepilogo di Cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.money import from_cents
from cassa.models import DebtPayment, Payment
from cassa.schemas.cash_register import CashRegisterSummary
from cassa.schemas.payment import DEBT_METHOD, PaymentMethod, PaymentRecordStatus


def _day_bounds(target_date: date) -> tuple[datetime, datetime]:
    start = datetime.combine(target_date, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class CashRegisterService:
    @staticmethod
    async def get_daily_summary(target_date: date, db: AsyncSession) -> CashRegisterSummary:
        """Totali di cassa della giornata per metodo di pagamento."""
        start, end = _day_bounds(target_date)

        result = await db.execute(
            select(Payment).where(Payment.created_at >= start, Payment.created_at < end)
        )
        payments = result.scalars().all()

        debt_result = await db.execute(
            select(DebtPayment).where(DebtPayment.created_at >= start, DebtPayment.created_at < end)
        )
        debt_collections = debt_result.scalars().all()

        totals = {method.value: 0 for method in PaymentMethod}
        totals[DEBT_METHOD] = 0
        active = [p for p in payments if p.status == PaymentRecordStatus.COMPLETATO.value]
        for p in active:
            totals[p.method] = totals.get(p.method, 0) + p.amount_cents

        collected = sum(d.amount_cents for d in debt_collections)
        for d in debt_collections:
            totals[d.method] = totals.get(d.method, 0) + d.amount_cents

        cash = totals[PaymentMethod.CONTANTI.value]
        pos = totals[PaymentMethod.POS.value]
        mixed = totals[PaymentMethod.MISTO.value]

        return CashRegisterSummary(
            close_date=target_date,
            total_cash=from_cents(cash),
            total_pos=from_cents(pos),
            total_mixed=from_cents(mixed),
            total_debt_charged=from_cents(totals[DEBT_METHOD]),
            total_debt_collected=from_cents(collected),
            total_amount=from_cents(cash + pos + mixed),
            payments_count=len(active),
            cancelled_count=len(payments) - len(active),
        )
