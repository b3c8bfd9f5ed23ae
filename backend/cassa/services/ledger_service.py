"""
Service Layer per il Ledger delle righe pagate
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Unico punto che modifica paid_quantity delle righe e stato_pagamento
delle ordinazioni. Ogni allocazione è registrata come LineAllocation
legata al pagamento, così che l'annullamento ripristini esattamente
le quantità coperte.

Il ledger esegue solo flush: il commit spetta al chiamante
(un pagamento = una transazione).
"""

import logging
import uuid
from collections import OrderedDict
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cassa.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    NotFoundError,
    OverAllocationError,
)
from cassa.models import LineAllocation, Order, OrderLine
from cassa.models.mixins import utcnow
from cassa.schemas.order import OrderStatus, PaymentState
from cassa.schemas.payment import LineSelection

# Logger per questo modulo
logger = logging.getLogger(__name__)


class LedgerService:
    """
    Service per il ledger riga-per-riga dei pagamenti.

    Implementa:
    - Allocazione di un pagamento su righe/quantità esplicite
    - Storno idempotente delle allocazioni di un pagamento
    - Ricalcolo dello stato di pagamento dell'ordinazione
    - Verifica di coerenza tra allocazioni e righe
    """

    # ------------------------------------------------------------
    # Caricamento
    # ------------------------------------------------------------
    async def load_order(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        for_update: bool = False,
    ) -> Order:
        """
        Carica un'ordinazione con le righe aggiornate dal database.

        Con for_update=True la riga dell'ordinazione viene bloccata
        (SELECT ... FOR UPDATE): tutte le scritture sul ledger di uno
        stesso ordine passano da qui e risultano serializzate.

        Raises:
            NotFoundError: ordinazione inesistente
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.lines))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()

        result = await db.execute(stmt)
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError(f"Ordinazione {order_id} non trovata")
        return order

    # ------------------------------------------------------------
    # Selezioni
    # ------------------------------------------------------------
    def outstanding_selections(self, order: Order) -> list[LineSelection]:
        """Selezione esplicita dell'intero residuo (tutte le quantità non pagate)."""
        return [
            LineSelection(line_id=line.id, quantity=line.remaining_quantity)
            for line in order.lines
            if line.remaining_quantity > 0
        ]

    def validate_selections(
        self,
        order: Order,
        selections: Sequence[LineSelection],
    ) -> "OrderedDict[uuid.UUID, int]":
        """
        Valida le selezioni contro lo stato corrente delle righe.

        Selezioni ripetute sulla stessa riga vengono sommate.

        Returns:
            Quantità richiesta per riga, nell'ordine di prima comparsa

        Raises:
            BusinessValidationError: selezione vuota, quantità non positiva,
                riga non appartenente all'ordinazione
            OverAllocationError: quantità oltre il residuo della riga
        """
        if not selections:
            raise BusinessValidationError("Nessuna riga selezionata per il pagamento")

        requested: "OrderedDict[uuid.UUID, int]" = OrderedDict()
        for selection in selections:
            if selection.quantity <= 0:
                raise BusinessValidationError(
                    f"Quantità non valida per la riga {selection.line_id}: {selection.quantity}"
                )
            requested[selection.line_id] = requested.get(selection.line_id, 0) + selection.quantity

        lines_by_id = {line.id: line for line in order.lines}
        for line_id, quantity in requested.items():
            line = lines_by_id.get(line_id)
            if line is None:
                raise BusinessValidationError(
                    f"La riga {line_id} non appartiene all'ordinazione #{order.numero}"
                )
            if quantity > line.remaining_quantity:
                raise OverAllocationError(
                    f"{line.product_name}: richieste {quantity} unità, "
                    f"residue {line.remaining_quantity}",
                    extra={
                        "line_id": str(line_id),
                        "requested": quantity,
                        "available": line.remaining_quantity,
                    },
                )
        return requested

    def selection_value_cents(self, order: Order, selections: Sequence[LineSelection]) -> int:
        """Valore in centesimi delle selezioni (validate)."""
        requested = self.validate_selections(order, selections)
        lines_by_id = {line.id: line for line in order.lines}
        return sum(lines_by_id[line_id].unit_price_cents * qty for line_id, qty in requested.items())

    # ------------------------------------------------------------
    # Allocazione e storno
    # ------------------------------------------------------------
    async def allocate_payment(
        self,
        db: AsyncSession,
        order: Order,
        selections: Sequence[LineSelection],
        payment_id: uuid.UUID,
        payer_name: Optional[str] = None,
    ) -> list[LineAllocation]:
        """
        Segna come pagate le quantità selezionate.

        Tutte le selezioni sono validate prima di modificare qualsiasi riga:
        o passano tutte o nessuna riga viene toccata.

        Args:
            db: Sessione database
            order: Ordinazione caricata con load_order(for_update=True)
            selections: Righe e quantità da pagare
            payment_id: Pagamento a cui legare le allocazioni
            payer_name: Pagatore da riportare su paid_by

        Returns:
            Lista di LineAllocation create

        Raises:
            OverAllocationError: quantità oltre il residuo
            BusinessValidationError: selezioni non valide o pagamento già allocato
        """
        requested = self.validate_selections(order, selections)

        already = await db.execute(
            select(func.count(LineAllocation.id)).where(LineAllocation.payment_id == payment_id)
        )
        if already.scalar_one() > 0:
            raise BusinessValidationError(f"Il pagamento {payment_id} è già stato allocato")

        lines_by_id = {line.id: line for line in order.lines}
        allocations: list[LineAllocation] = []
        for line_id, quantity in requested.items():
            line = lines_by_id[line_id]
            line.paid_quantity += quantity
            line.paid_by = _merge_payers(line.paid_by, [payer_name])
            allocation = LineAllocation(
                payment_id=payment_id,
                line_id=line_id,
                order_id=order.id,
                quantity=quantity,
                amount_cents=line.unit_price_cents * quantity,
                payer_name=payer_name,
            )
            db.add(allocation)
            allocations.append(allocation)

        self.recompute_order_status(order)
        await db.flush()

        logger.info(
            "Ordinazione #%s: allocate %d righe al pagamento %s (residuo %d cent)",
            order.numero,
            len(allocations),
            payment_id,
            order.remaining_cents,
        )
        return allocations

    async def reverse_allocation(self, db: AsyncSession, payment_id: uuid.UUID) -> set[uuid.UUID]:
        """
        Ripristina le righe coperte da un pagamento.

        Idempotente: se le allocazioni sono già stornate non fa nulla.

        Returns:
            Id delle ordinazioni interessate (vuoto se nulla da stornare)

        Raises:
            ConflictError: il ledger porterebbe una riga sotto zero
        """
        result = await db.execute(
            select(LineAllocation).where(
                LineAllocation.payment_id == payment_id,
                LineAllocation.reversed_at.is_(None),
            )
        )
        allocations = result.scalars().all()
        if not allocations:
            logger.info("Pagamento %s: nessuna allocazione attiva da stornare", payment_id)
            return set()

        order_ids = {a.order_id for a in allocations}
        for order_id in order_ids:
            # Blocca l'ordinazione come per le allocazioni
            await self.load_order(db, order_id, for_update=True)

        line_ids = [a.line_id for a in allocations]
        lines_result = await db.execute(
            select(OrderLine)
            .where(OrderLine.id.in_(line_ids))
            .execution_options(populate_existing=True)
        )
        lines_by_id = {line.id: line for line in lines_result.scalars().all()}

        now = utcnow()
        for allocation in allocations:
            line = lines_by_id[allocation.line_id]
            if allocation.quantity > line.paid_quantity:
                raise ConflictError(
                    f"Ledger incoerente per la riga {line.product_name}: "
                    f"stornate {allocation.quantity}, pagate {line.paid_quantity}"
                )
            line.paid_quantity -= allocation.quantity
            allocation.reversed_at = now
        await db.flush()

        await self._refresh_paid_by(db, lines_by_id.values())
        # flush prima del reload con populate_existing in load_order
        await db.flush()

        for order_id in order_ids:
            order = await self.load_order(db, order_id)
            self.recompute_order_status(order)
        await db.flush()

        logger.info(
            "Pagamento %s: stornate %d allocazioni su %d ordinazioni",
            payment_id,
            len(allocations),
            len(order_ids),
        )
        return order_ids

    async def _refresh_paid_by(self, db: AsyncSession, lines: Iterable[OrderLine]) -> None:
        """Ricostruisce paid_by dalle sole allocazioni attive."""
        lines = list(lines)
        result = await db.execute(
            select(LineAllocation)
            .where(
                LineAllocation.line_id.in_([line.id for line in lines]),
                LineAllocation.reversed_at.is_(None),
            )
            .order_by(LineAllocation.created_at)
        )
        payers: dict[uuid.UUID, list[Optional[str]]] = {}
        for allocation in result.scalars().all():
            payers.setdefault(allocation.line_id, []).append(allocation.payer_name)
        for line in lines:
            line.paid_by = _merge_payers(None, payers.get(line.id, []))

    # ------------------------------------------------------------
    # Stato derivato
    # ------------------------------------------------------------
    def recompute_order_status(self, order: Order) -> str:
        """
        Deriva stato_pagamento dalle righe e allinea lo stato di servizio.

        - residuo 0 (con totale > 0): COMPLETAMENTE_PAGATO, stato PAGATO
        - qualcosa pagato: PARZIALMENTE_PAGATO
        - niente pagato: NON_PAGATO
        Un'ordinazione PAGATO che torna ad avere residuo rientra in CONSEGNATO.
        """
        state = derive_payment_state(order.total_cents, order.paid_cents)
        order.stato_pagamento = state

        if state == PaymentState.COMPLETAMENTE_PAGATO.value:
            if order.stato != OrderStatus.ANNULLATO.value:
                order.stato = OrderStatus.PAGATO.value
            if order.closed_at is None:
                order.closed_at = utcnow()
        elif order.stato == OrderStatus.PAGATO.value:
            order.stato = OrderStatus.CONSEGNATO.value
            order.closed_at = None

        return state

    async def verify_order(self, db: AsyncSession, order_id: uuid.UUID) -> list[str]:
        """
        Controlla la coerenza tra allocazioni attive e stato delle righe.

        Returns:
            Elenco delle discrepanze trovate (vuoto se coerente)
        """
        order = await self.load_order(db, order_id)
        result = await db.execute(
            select(LineAllocation.line_id, func.sum(LineAllocation.quantity))
            .where(
                LineAllocation.order_id == order_id,
                LineAllocation.reversed_at.is_(None),
            )
            .group_by(LineAllocation.line_id)
        )
        allocated = {line_id: int(qty) for line_id, qty in result.all()}

        issues: list[str] = []
        for line in order.lines:
            expected = allocated.get(line.id, 0)
            if expected != line.paid_quantity:
                issues.append(
                    f"{line.product_name}: pagate {line.paid_quantity}, allocate {expected}"
                )
            if not 0 <= line.paid_quantity <= line.quantity:
                issues.append(
                    f"{line.product_name}: quantità pagata {line.paid_quantity} "
                    f"fuori intervallo 0..{line.quantity}"
                )

        expected_state = derive_payment_state(order.total_cents, order.paid_cents)
        if order.stato_pagamento != expected_state:
            issues.append(
                f"stato_pagamento {order.stato_pagamento}, atteso {expected_state}"
            )

        if issues:
            logger.warning("Ordinazione #%s incoerente: %s", order.numero, "; ".join(issues))
        return issues


def derive_payment_state(total_cents: int, paid_cents: int) -> str:
    """Stato di pagamento corrispondente a totale e pagato."""
    if total_cents > 0 and paid_cents >= total_cents:
        return PaymentState.COMPLETAMENTE_PAGATO.value
    if paid_cents > 0:
        return PaymentState.PARZIALMENTE_PAGATO.value
    return PaymentState.NON_PAGATO.value


def _merge_payers(current: Optional[str], new_payers: Iterable[Optional[str]]) -> Optional[str]:
    """Unisce i nomi dei pagatori senza duplicati, mantenendo l'ordine."""
    names = [n.strip() for n in (current or "").split(",") if n.strip()]
    for payer in new_payers:
        if payer and payer not in names:
            names.append(payer)
    return ", ".join(names) or None
