"""
Service Layer per i Conti Scalari
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Conti progressivi "pagare per altri": movimenti in sola aggiunta,
saldo sempre ricalcolato dai movimenti.

saldo = Σ ORDINE - Σ PAGAMENTO, dove uno STORNO toglie dal totale del
tipo del movimento che storna (storno di ORDINE abbassa il saldo,
storno di PAGAMENTO lo rialza). Il saldo non può mai diventare negativo.
"""

import logging
import uuid
from typing import Iterable, Optional, Sequence

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.database import write_transaction
from cassa.core.exceptions import BusinessValidationError, NotFoundError
from cassa.core.money import format_euro
from cassa.models import Movement, Payment, ScalarAccount
from cassa.models.mixins import utcnow
from cassa.schemas.payment import PaymentKind, PaymentRecordStatus
from cassa.schemas.scalar_account import (
    AccountBalance,
    AccountStatus,
    MovementType,
    TabSummary,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)


def fold_movements(movements: Iterable[Movement]) -> tuple[int, int]:
    """
    Totali netti di un conto.

    Returns:
        (totale ordinato, totale pagato) al netto degli storni
    """
    movements = list(movements)
    by_id = {m.id: m for m in movements}
    ordered = paid = 0
    for movement in movements:
        if movement.tipo == MovementType.ORDINE.value:
            ordered += movement.amount_cents
        elif movement.tipo == MovementType.PAGAMENTO.value:
            paid += movement.amount_cents
        else:
            target = by_id.get(movement.reversed_movement_id)
            if target is None:
                logger.warning("Storno %s senza movimento di riferimento", movement.id)
                continue
            if target.tipo == MovementType.ORDINE.value:
                ordered -= movement.amount_cents
            else:
                paid -= movement.amount_cents
    return ordered, paid


class ScalarAccountService:
    """
    Service per i conti scalari di tavoli e clienti.

    Implementa:
    - Apertura implicita del conto al primo movimento
    - Registrazione movimenti ORDINE / PAGAMENTO / STORNO
    - Chiusura automatica a saldo zero
    - Riepilogo dei conti aperti
    - Ricerca degli incassi non ancora riportati sul conto
    """

    # ------------------------------------------------------------
    # Conti
    # ------------------------------------------------------------
    async def load_account(
        self,
        db: AsyncSession,
        account_id: uuid.UUID,
        for_update: bool = False,
    ) -> ScalarAccount:
        """
        Raises:
            NotFoundError: conto inesistente
        """
        stmt = (
            select(ScalarAccount)
            .where(ScalarAccount.id == account_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        account = result.scalar_one_or_none()
        if not account:
            raise NotFoundError(f"Conto scalare {account_id} non trovato")
        return account

    async def get_or_open_account(
        self,
        db: AsyncSession,
        table_key: Optional[str] = None,
        customer_id: Optional[uuid.UUID] = None,
        customer_name: Optional[str] = None,
    ) -> ScalarAccount:
        """
        Restituisce il conto aperto dell'intestatario, creandolo se manca.

        Un conto chiuso non viene riaperto: il nuovo movimento apre un
        nuovo conto.

        Raises:
            BusinessValidationError: nessun intestatario indicato
        """
        if table_key:
            condition = ScalarAccount.table_key == table_key
        elif customer_id:
            condition = ScalarAccount.customer_id == customer_id
        elif customer_name:
            condition = and_(
                ScalarAccount.customer_name == customer_name,
                ScalarAccount.customer_id.is_(None),
                ScalarAccount.table_key.is_(None),
            )
        else:
            raise BusinessValidationError("Indicare un tavolo o un cliente per il conto")

        async with write_transaction(db, "apertura conto scalare"):
            result = await db.execute(
                select(ScalarAccount)
                .where(condition, ScalarAccount.stato == AccountStatus.APERTO.value)
                .order_by(ScalarAccount.opened_at.desc())
                .limit(1)
            )
            account = result.scalar_one_or_none()
            if account is not None:
                return account

            account = ScalarAccount(
                table_key=table_key,
                customer_id=customer_id,
                customer_name=customer_name,
                stato=AccountStatus.APERTO.value,
            )
            db.add(account)
            await db.commit()

        logger.info("Conto scalare aperto per %s", account.owner_label)
        return account

    # ------------------------------------------------------------
    # Movimenti
    # ------------------------------------------------------------
    async def record_movement(
        self,
        db: AsyncSession,
        account_id: uuid.UUID,
        tipo: MovementType,
        amount_cents: int,
        reversed_movement_id: Optional[uuid.UUID] = None,
        payment_id: Optional[uuid.UUID] = None,
        order_id: Optional[uuid.UUID] = None,
        payer_name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Movement:
        """
        Aggiunge un movimento al conto.

        - ORDINE: aumenta il saldo
        - PAGAMENTO: riduce il saldo; rifiutato se supera il saldo rimanente
          al netto degli incassi del conto ancora privi di movimento.
          Con payment_id già registrato restituisce il movimento esistente.
        - STORNO: annulla per intero un movimento precedente del conto,
          una sola volta; mai uno STORNO, mai con saldo risultante negativo

        Il conto si chiude quando il saldo torna a zero; uno STORNO che
        riporta il saldo sopra zero lo riapre.

        Raises:
            NotFoundError: conto o movimento stornato inesistente
            BusinessValidationError: violazione delle regole sopra
        """
        tipo = MovementType(tipo)
        async with write_transaction(db, "registrazione movimento"):
            account = await self.load_account(db, account_id, for_update=True)

            if payment_id is not None:
                existing = await db.execute(select(Movement).where(Movement.payment_id == payment_id))
                movement = existing.scalar_one_or_none()
                if movement is not None:
                    logger.info("Pagamento %s già registrato sul conto: nessuna operazione", payment_id)
                    return movement

            if amount_cents <= 0:
                raise BusinessValidationError("L'importo del movimento deve essere positivo")

            movements = await self._movements(db, account_id)
            ordered, paid = fold_movements(movements)
            saldo = ordered - paid

            if tipo == MovementType.STORNO:
                new_saldo = self._check_reversal(movements, reversed_movement_id, amount_cents, saldo)
            else:
                if reversed_movement_id is not None:
                    raise BusinessValidationError("Solo uno STORNO può riferirsi a un altro movimento")
                if account.stato == AccountStatus.CHIUSO.value:
                    raise BusinessValidationError(f"Il conto di {account.owner_label} è chiuso")
                if tipo == MovementType.ORDINE:
                    new_saldo = saldo + amount_cents
                else:
                    # Gli incassi già registrati ma senza movimento impegnano il saldo
                    pending = sum(
                        p.amount_cents
                        for p in await self.find_unrecorded_payments(db, account_id)
                        if p.id != payment_id
                    )
                    if amount_cents > saldo - pending:
                        raise BusinessValidationError(
                            "Importo superiore al saldo rimanente",
                            extra={
                                "saldo_cents": saldo,
                                "pending_cents": pending,
                                "amount_cents": amount_cents,
                            },
                        )
                    if payment_id is not None:
                        await self._check_tab_payment(db, account_id, payment_id, amount_cents)
                    new_saldo = saldo - amount_cents

            movement = Movement(
                account_id=account_id,
                tipo=tipo.value,
                amount_cents=amount_cents,
                reversed_movement_id=reversed_movement_id,
                payment_id=payment_id if tipo == MovementType.PAGAMENTO else None,
                order_id=order_id,
                payer_name=payer_name,
                description=description,
            )
            db.add(movement)

            if new_saldo == 0 and account.stato == AccountStatus.APERTO.value:
                account.stato = AccountStatus.CHIUSO.value
                account.closed_at = utcnow()
                logger.info("Conto di %s saldato e chiuso", account.owner_label)
            elif new_saldo > 0 and account.stato == AccountStatus.CHIUSO.value:
                account.stato = AccountStatus.APERTO.value
                account.closed_at = None
                logger.info("Conto di %s riaperto da storno", account.owner_label)

            await db.commit()

        logger.info(
            "Conto %s: %s %s, saldo %s",
            account.owner_label,
            tipo.value,
            format_euro(amount_cents),
            format_euro(new_saldo),
        )
        return movement

    @staticmethod
    def _check_reversal(
        movements: Sequence[Movement],
        reversed_movement_id: Optional[uuid.UUID],
        amount_cents: int,
        saldo: int,
    ) -> int:
        """Valida uno STORNO e restituisce il saldo risultante."""
        if reversed_movement_id is None:
            raise BusinessValidationError("Lo STORNO deve indicare il movimento da stornare")

        target = next((m for m in movements if m.id == reversed_movement_id), None)
        if target is None:
            raise NotFoundError(f"Movimento {reversed_movement_id} non trovato su questo conto")
        if target.tipo == MovementType.STORNO.value:
            raise BusinessValidationError("Non è possibile stornare uno storno")
        if any(m.reversed_movement_id == target.id for m in movements):
            raise BusinessValidationError("Movimento già stornato")
        if amount_cents != target.amount_cents:
            raise BusinessValidationError(
                f"Lo storno deve essere pari al movimento stornato ({format_euro(target.amount_cents)})"
            )

        if target.tipo == MovementType.ORDINE.value:
            new_saldo = saldo - amount_cents
        else:
            new_saldo = saldo + amount_cents
        if new_saldo < 0:
            raise BusinessValidationError(
                "Lo storno porterebbe il saldo sotto zero",
                extra={"saldo_cents": saldo, "amount_cents": amount_cents},
            )
        return new_saldo

    @staticmethod
    async def _check_tab_payment(
        db: AsyncSession,
        account_id: uuid.UUID,
        payment_id: uuid.UUID,
        amount_cents: int,
    ) -> None:
        payment = await db.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError(f"Pagamento {payment_id} non trovato")
        if (
            payment.account_id != account_id
            or payment.kind != PaymentKind.CONTO_SCALARE.value
            or payment.status != PaymentRecordStatus.COMPLETATO.value
        ):
            raise BusinessValidationError("Il pagamento non è un incasso valido per questo conto")
        if payment.amount_cents != amount_cents:
            raise BusinessValidationError(
                f"Importo diverso dal pagamento registrato ({format_euro(payment.amount_cents)})"
            )

    async def _movements(self, db: AsyncSession, account_id: uuid.UUID) -> Sequence[Movement]:
        result = await db.execute(
            select(Movement)
            .where(Movement.account_id == account_id)
            .order_by(Movement.created_at)
        )
        return result.scalars().all()

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def get_movements(self, db: AsyncSession, account_id: uuid.UUID) -> Sequence[Movement]:
        await self.load_account(db, account_id)
        return await self._movements(db, account_id)

    async def get_account_balance(self, db: AsyncSession, account_id: uuid.UUID) -> AccountBalance:
        """Totali del conto calcolati dai movimenti."""
        account = await self.load_account(db, account_id)
        movements = await self._movements(db, account_id)
        return self._balance(account, movements)

    @staticmethod
    def _balance(account: ScalarAccount, movements: Sequence[Movement]) -> AccountBalance:
        ordered, paid = fold_movements(movements)
        return AccountBalance(
            account_id=account.id,
            owner=account.owner_label,
            stato=account.stato,
            totale_ordinato_cents=ordered,
            totale_pagato_cents=paid,
            saldo_cents=ordered - paid,
            movements_count=len(movements),
        )

    async def get_tab_summary(self, db: AsyncSession) -> TabSummary:
        """
        Riepilogo di tutti i conti aperti.

        Calcolato a ogni chiamata dai movimenti, senza cache.
        """
        result = await db.execute(
            select(ScalarAccount)
            .where(ScalarAccount.stato == AccountStatus.APERTO.value)
            .order_by(ScalarAccount.opened_at)
            .execution_options(populate_existing=True)
        )
        accounts = result.scalars().all()
        if not accounts:
            return TabSummary()

        movements_result = await db.execute(
            select(Movement)
            .where(Movement.account_id.in_([a.id for a in accounts]))
            .order_by(Movement.created_at)
        )
        by_account: dict[uuid.UUID, list[Movement]] = {}
        for movement in movements_result.scalars().all():
            by_account.setdefault(movement.account_id, []).append(movement)

        return TabSummary(
            accounts=[self._balance(a, by_account.get(a.id, [])) for a in accounts]
        )

    async def find_unrecorded_payments(
        self,
        db: AsyncSession,
        account_id: Optional[uuid.UUID] = None,
    ) -> Sequence[Payment]:
        """
        Incassi su conto scalare registrati senza il relativo movimento.

        Sono i pagamenti "per altri" interrotti dopo il primo passo:
        vanno completati con record_movement(PAGAMENTO, payment_id=...).
        """
        stmt = (
            select(Payment)
            .outerjoin(Movement, Movement.payment_id == Payment.id)
            .where(
                Payment.kind == PaymentKind.CONTO_SCALARE.value,
                Payment.status == PaymentRecordStatus.COMPLETATO.value,
                Movement.id.is_(None),
            )
            .order_by(Payment.created_at)
        )
        if account_id is not None:
            stmt = stmt.where(Payment.account_id == account_id)
        result = await db.execute(stmt)
        return result.scalars().all()
