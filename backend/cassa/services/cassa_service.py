"""
Facade del core di cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Punto d'ingresso unico per chi integra il core (API, UI cassa, listener
eventi). Converte gli importi in euro in centesimi al bordo e restituisce
Result invece di sollevare le eccezioni di dominio.
"""

import logging
import uuid
from typing import Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.exceptions import AppException
from cassa.core.money import Amount, to_cents
from cassa.core.result import Result, capture
from cassa.models import Debt, Movement, Payment
from cassa.schemas.order import OrderRead, TableGroup
from cassa.schemas.payment import (
    LineSelection,
    MultiOrderLeg,
    PaymentMethod,
    PaymentRead,
    TablePaymentOutcome,
)
from cassa.schemas.scalar_account import (
    MovementRead,
    MovementType,
    TabSettlement,
    TabSummary,
)
from cassa.services.debt_service import DebtService
from cassa.services.ledger_service import LedgerService
from cassa.services.payment_service import PaymentService
from cassa.services.receipts import ReceiptIssuer
from cassa.services.scalar_account_service import ScalarAccountService
from cassa.services.table_groups import compute_table_groups

logger = logging.getLogger(__name__)


class CassaService:
    """
    Operazioni di cassa con esito tipizzato.

    Ogni metodo restituisce Result: ok con il valore, oppure l'errore
    di dominio (ValidationError, OverAllocationError, AlreadyPaidError, ...).
    """

    def __init__(
        self,
        receipts: Optional[ReceiptIssuer] = None,
        tolerance_cents: Optional[int] = None,
    ) -> None:
        self.ledger = LedgerService()
        self.accounts = ScalarAccountService()
        self.payments = PaymentService(
            ledger=self.ledger,
            receipts=receipts,
            accounts=self.accounts,
            tolerance_cents=tolerance_cents,
        )
        self.debts = DebtService(ledger=self.ledger)

    # ------------------------------------------------------------
    # Ordinazioni
    # ------------------------------------------------------------
    @staticmethod
    def compute_table_groups(orders: Iterable[OrderRead]) -> list[TableGroup]:
        return compute_table_groups(orders)

    # ------------------------------------------------------------
    # Pagamenti
    # ------------------------------------------------------------
    async def pay_order(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        amount: Amount,
        method: PaymentMethod,
        payer_name: Optional[str] = None,
    ) -> Result[Payment]:
        try:
            cents = to_cents(amount)
        except AppException as exc:
            return Result.failure(exc)
        return await capture(self.payments.pay_order(db, order_id, cents, method, payer_name))

    async def pay_table(
        self,
        db: AsyncSession,
        table_key: str,
        method: PaymentMethod,
        payer_name: Optional[str] = None,
    ) -> Result[TablePaymentOutcome]:
        return await capture(self.payments.pay_table(db, table_key, method, payer_name))

    async def pay_partial(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        selections: Sequence[LineSelection],
        method: PaymentMethod,
        payer_name: Optional[str] = None,
        amount: Optional[Amount] = None,
    ) -> Result[Payment]:
        try:
            cents = to_cents(amount) if amount is not None else None
        except AppException as exc:
            return Result.failure(exc)
        return await capture(
            self.payments.pay_partial(db, order_id, selections, method, payer_name, cents)
        )

    async def pay_multi_order_partial(
        self,
        db: AsyncSession,
        legs: Sequence[MultiOrderLeg],
        method: PaymentMethod,
        payer_name: Optional[str] = None,
    ) -> Result[TablePaymentOutcome]:
        return await capture(self.payments.pay_multi_order_partial(db, legs, method, payer_name))

    async def cancel_payment(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Result[Payment]:
        return await capture(self.payments.cancel_payment(db, order_id, reason))

    # ------------------------------------------------------------
    # Debiti
    # ------------------------------------------------------------
    async def create_debt(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        order_id: uuid.UUID,
        amount: Amount,
        note: Optional[str] = None,
        selections: Optional[Sequence[LineSelection]] = None,
    ) -> Result[Debt]:
        try:
            cents = to_cents(amount)
        except AppException as exc:
            return Result.failure(exc)
        return await capture(
            self.debts.create_debt(db, customer_id, order_id, cents, note, selections)
        )

    async def pay_debt(
        self,
        db: AsyncSession,
        debt_id: uuid.UUID,
        amount: Amount,
        method: PaymentMethod,
        note: Optional[str] = None,
    ) -> Result[Debt]:
        try:
            cents = to_cents(amount)
        except AppException as exc:
            return Result.failure(exc)
        return await capture(self.debts.pay_debt(db, debt_id, cents, method, note))

    async def create_direct_debt(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        amount: Amount,
        note: Optional[str] = None,
    ) -> Result[Debt]:
        try:
            cents = to_cents(amount)
        except AppException as exc:
            return Result.failure(exc)
        return await capture(self.debts.create_direct_debt(db, customer_id, cents, note))

    # ------------------------------------------------------------
    # Conti scalari
    # ------------------------------------------------------------
    async def record_movement(
        self,
        db: AsyncSession,
        account_id: uuid.UUID,
        tipo: MovementType,
        amount: Amount,
        reversed_movement_id: Optional[uuid.UUID] = None,
        payer_name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Result[Movement]:
        try:
            cents = to_cents(amount)
        except AppException as exc:
            return Result.failure(exc)
        return await capture(
            self.accounts.record_movement(
                db,
                account_id,
                tipo,
                cents,
                reversed_movement_id=reversed_movement_id,
                payer_name=payer_name,
                description=description,
            )
        )

    async def pay_for_others(
        self,
        db: AsyncSession,
        account_id: uuid.UUID,
        amount: Amount,
        method: PaymentMethod,
        payer_name: Optional[str] = None,
    ) -> Result[TabSettlement]:
        """
        Pagamento "per altri" in due passi: incasso, poi movimento sul conto.

        Se il secondo passo fallisce l'incasso resta registrato e l'esito
        riporta failed_step="movement" con il pagamento da completare.
        """
        try:
            cents = to_cents(amount)
        except AppException as exc:
            return Result.failure(exc)

        payment_result = await capture(
            self.payments.create_tab_payment(db, account_id, cents, method, payer_name)
        )
        if not payment_result.ok:
            return Result.failure(payment_result.error)
        payment = payment_result.value
        payment_read = PaymentRead.model_validate(payment)

        movement_result = await capture(
            self.accounts.record_movement(
                db,
                account_id,
                MovementType.PAGAMENTO,
                cents,
                payment_id=payment_read.id,
                payer_name=payer_name,
            )
        )
        if not movement_result.ok:
            logger.error(
                "Incasso %s registrato ma movimento sul conto %s non riuscito: %s",
                payment_read.id,
                account_id,
                movement_result.error.detail,
            )
            return Result.success(
                TabSettlement(
                    payment=payment_read,
                    failed_step="movement",
                    error_code=movement_result.error_code,
                    detail=movement_result.error.detail,
                )
            )
        return Result.success(
            TabSettlement(
                payment=payment_read,
                movement=MovementRead.model_validate(movement_result.value),
            )
        )

    async def get_tab_summary(self, db: AsyncSession) -> TabSummary:
        return await self.accounts.get_tab_summary(db)
