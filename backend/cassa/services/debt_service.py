"""
Service Layer per i Debiti clienti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Un debito chiude sul ledger (totalmente o in parte) il residuo di
un'ordinazione tramite un pagamento con metodo DEBITO, oppure nasce
direttamente senza ordinazione. Gli incassi successivi riducono il
residuo del debito fino al saldo, stato terminale.
"""

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.config import settings
from cassa.core.database import write_transaction
from cassa.core.exceptions import (
    AlreadyPaidError,
    AlreadySettledError,
    BusinessValidationError,
    NotFoundError,
)
from cassa.core.money import format_euro, within_tolerance
from cassa.models import Customer, Debt, DebtPayment, Payment
from cassa.models.mixins import utcnow
from cassa.schemas.debt import CustomerDebtBalance, DebtState
from cassa.schemas.payment import (
    DEBT_METHOD,
    LineSelection,
    PaymentKind,
    PaymentMethod,
    PaymentRecordStatus,
)
from cassa.services.ledger_service import LedgerService

# Logger per questo modulo
logger = logging.getLogger(__name__)


class DebtService:
    """
    Service per i debiti dei clienti.

    Implementa:
    - Chiusura a debito del residuo di un'ordinazione (totale o per righe)
    - Debito diretto senza ordinazione
    - Incassi parziali fino al saldo
    - Esposizione per cliente
    """

    def __init__(self, ledger: Optional[LedgerService] = None) -> None:
        self.ledger = ledger or LedgerService()

    async def _get_customer(self, db: AsyncSession, customer_id: uuid.UUID) -> Customer:
        customer = await db.get(Customer, customer_id)
        if not customer:
            raise NotFoundError(f"Cliente {customer_id} non trovato")
        return customer

    # ------------------------------------------------------------
    # Creazione
    # ------------------------------------------------------------
    async def create_debt(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        order_id: uuid.UUID,
        amount_cents: int,
        note: Optional[str] = None,
        selections: Optional[Sequence[LineSelection]] = None,
    ) -> Debt:
        """
        Pone a debito del cliente il residuo (o parte) di un'ordinazione.

        Se l'importo corrisponde al residuo vengono chiuse tutte le righe
        non pagate; per un importo inferiore occorre indicare le righe
        coperte, il cui valore deve corrispondere all'importo.

        Steps:
        1. Verifica cliente e importo
        2. Registra un Payment DEBITO e alloca le righe sul ledger
        3. Crea il Debt legato al pagamento
        4. Commit unico

        Raises:
            NotFoundError: cliente o ordinazione inesistente
            AlreadyPaidError: ordinazione senza residuo
            BusinessValidationError: importo non positivo, superiore al residuo,
                o debito parziale senza righe corrispondenti
        """
        async with write_transaction(db, "creazione debito"):
            customer = await self._get_customer(db, customer_id)
            order = await self.ledger.load_order(db, order_id, for_update=True)

            if amount_cents <= 0:
                raise BusinessValidationError("L'importo del debito deve essere positivo")
            remaining = order.remaining_cents
            if remaining <= 0:
                raise AlreadyPaidError(f"L'ordinazione #{order.numero} non ha residuo da pagare")
            if amount_cents > remaining:
                raise BusinessValidationError(
                    f"Importo {format_euro(amount_cents)} superiore al residuo {format_euro(remaining)}",
                    extra={"remaining_cents": remaining, "amount_cents": amount_cents},
                )
            if not order.is_delivered:
                raise BusinessValidationError(
                    f"L'ordinazione #{order.numero} non è ancora stata consegnata"
                )

            if within_tolerance(amount_cents, remaining, settings.payment_tolerance_cents):
                covered = self.ledger.outstanding_selections(order)
            else:
                if not selections:
                    raise BusinessValidationError(
                        "Per un debito parziale indicare le righe coperte"
                    )
                value = self.ledger.selection_value_cents(order, selections)
                if not within_tolerance(value, amount_cents, settings.payment_tolerance_cents):
                    raise BusinessValidationError(
                        f"Il valore delle righe selezionate ({format_euro(value)}) "
                        f"non corrisponde all'importo del debito ({format_euro(amount_cents)})"
                    )
                covered = list(selections)

            payer = f"Debito - {customer.name}"
            payment = Payment(
                order_id=order.id,
                amount_cents=amount_cents,
                method=DEBT_METHOD,
                kind=PaymentKind.DEBITO.value,
                payer_name=payer,
                status=PaymentRecordStatus.COMPLETATO.value,
            )
            db.add(payment)
            await db.flush()

            await self.ledger.allocate_payment(db, order, covered, payment.id, payer)

            debt = Debt(
                customer_id=customer.id,
                order_id=order.id,
                payment_id=payment.id,
                amount_cents=amount_cents,
                paid_cents=0,
                state=DebtState.OPEN.value,
                note=note,
            )
            db.add(debt)
            await db.commit()

        logger.info(
            "Debito di %s creato per %s (ordinazione #%d, stato %s)",
            customer.name,
            format_euro(amount_cents),
            order.numero,
            order.stato_pagamento,
        )
        return debt

    async def create_direct_debt(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        amount_cents: int,
        note: Optional[str] = None,
    ) -> Debt:
        """
        Registra un debito non legato ad alcuna ordinazione.

        Raises:
            NotFoundError: cliente inesistente
            BusinessValidationError: importo non positivo
        """
        async with write_transaction(db, "creazione debito diretto"):
            customer = await self._get_customer(db, customer_id)
            if amount_cents <= 0:
                raise BusinessValidationError("L'importo del debito deve essere positivo")

            debt = Debt(
                customer_id=customer.id,
                order_id=None,
                amount_cents=amount_cents,
                paid_cents=0,
                state=DebtState.OPEN.value,
                note=note,
            )
            db.add(debt)
            await db.commit()

        logger.info("Debito diretto di %s per %s", customer.name, format_euro(amount_cents))
        return debt

    # ------------------------------------------------------------
    # Incasso
    # ------------------------------------------------------------
    async def pay_debt(
        self,
        db: AsyncSession,
        debt_id: uuid.UUID,
        amount_cents: int,
        method: PaymentMethod,
        note: Optional[str] = None,
    ) -> Debt:
        """
        Registra un incasso a fronte del debito.

        Al raggiungimento del saldo il debito passa a SETTLED e non accetta
        altri pagamenti.

        Raises:
            NotFoundError: debito inesistente
            AlreadySettledError: debito già saldato
            BusinessValidationError: importo non positivo o superiore al residuo
        """
        async with write_transaction(db, "pagamento debito"):
            debt = await self._load(db, debt_id, for_update=True)
            if debt.state == DebtState.SETTLED.value:
                raise AlreadySettledError(f"Il debito {debt_id} è già saldato")
            if amount_cents <= 0:
                raise BusinessValidationError("L'importo deve essere positivo")
            if amount_cents > debt.remaining_cents:
                raise BusinessValidationError(
                    f"Importo {format_euro(amount_cents)} superiore al residuo "
                    f"{format_euro(debt.remaining_cents)}",
                    extra={"remaining_cents": debt.remaining_cents, "amount_cents": amount_cents},
                )

            db.add(
                DebtPayment(
                    debt_id=debt.id,
                    amount_cents=amount_cents,
                    method=PaymentMethod(method).value,
                    note=note,
                )
            )
            debt.paid_cents += amount_cents
            if debt.remaining_cents == 0:
                debt.state = DebtState.SETTLED.value
                debt.settled_at = utcnow()
            await db.commit()

        logger.info(
            "Debito %s: incassati %s, residuo %s (%s)",
            debt.id,
            format_euro(amount_cents),
            format_euro(debt.remaining_cents),
            debt.state,
        )
        return debt

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def _load(self, db: AsyncSession, debt_id: uuid.UUID, for_update: bool = False) -> Debt:
        stmt = select(Debt).where(Debt.id == debt_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        debt = result.scalar_one_or_none()
        if not debt:
            raise NotFoundError(f"Debito {debt_id} non trovato")
        return debt

    async def get_by_id(self, db: AsyncSession, debt_id: uuid.UUID) -> Debt:
        return await self._load(db, debt_id)

    async def get_open_debts(
        self,
        db: AsyncSession,
        customer_id: Optional[uuid.UUID] = None,
    ) -> Sequence[Debt]:
        """Debiti aperti, dal più vecchio."""
        stmt = (
            select(Debt)
            .where(Debt.state == DebtState.OPEN.value)
            .order_by(Debt.created_at)
            .execution_options(populate_existing=True)
        )
        if customer_id is not None:
            stmt = stmt.where(Debt.customer_id == customer_id)
        result = await db.execute(stmt)
        return result.scalars().all()

    async def get_debt_payments(self, db: AsyncSession, debt_id: uuid.UUID) -> Sequence[DebtPayment]:
        await self._load(db, debt_id)
        result = await db.execute(
            select(DebtPayment).where(DebtPayment.debt_id == debt_id).order_by(DebtPayment.created_at)
        )
        return result.scalars().all()

    async def get_customer_balance(self, db: AsyncSession, customer_id: uuid.UUID) -> CustomerDebtBalance:
        """Esposizione del cliente sui debiti aperti."""
        await self._get_customer(db, customer_id)
        debts = await self.get_open_debts(db, customer_id)
        total = sum(d.amount_cents for d in debts)
        paid = sum(d.paid_cents for d in debts)
        return CustomerDebtBalance(
            customer_id=customer_id,
            open_debts=len(debts),
            total_cents=total,
            paid_cents=paid,
            remaining_cents=total - paid,
        )
