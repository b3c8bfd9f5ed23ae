"""
Tests per il ledger delle righe (allocazione e storno).
"""

import uuid

import pytest

from cassa.core.exceptions import BusinessValidationError, OverAllocationError
from cassa.models import Payment
from cassa.schemas.payment import LineSelection
from cassa.services.ledger_service import LedgerService, derive_payment_state


async def add_payment(db, order_id: uuid.UUID, amount_cents: int, payer: str = "Anna") -> Payment:
    payment = Payment(
        order_id=order_id,
        amount_cents=amount_cents,
        method="CONTANTI",
        kind="PARZIALE",
        payer_name=payer,
        status="COMPLETATO",
    )
    db.add(payment)
    await db.flush()
    return payment


# ============================================================
# Stato derivato
# ============================================================


class TestDerivePaymentState:
    """Tests per derive_payment_state."""

    def test_stati(self):
        """Test NON_PAGATO, PARZIALMENTE_PAGATO, COMPLETAMENTE_PAGATO."""
        assert derive_payment_state(1000, 0) == "NON_PAGATO"
        assert derive_payment_state(1000, 1) == "PARZIALMENTE_PAGATO"
        assert derive_payment_state(1000, 1000) == "COMPLETAMENTE_PAGATO"

    def test_totale_zero(self):
        """Test ordinazione a costo zero non risulta pagata."""
        assert derive_payment_state(0, 0) == "NON_PAGATO"


# ============================================================
# Validazione selezioni
# ============================================================


class TestValidateSelections:
    """Tests per la validazione delle selezioni."""

    async def test_selezioni_ripetute_sommate(self, db, make_order):
        """Test due selezioni sulla stessa riga contano insieme."""
        order = await make_order(lines=(("Birra", "5.00", 3),))
        line_id = order.lines[0].id
        ledger = LedgerService()

        requested = ledger.validate_selections(
            order, [LineSelection(line_id=line_id, quantity=1), LineSelection(line_id=line_id, quantity=2)]
        )
        assert requested[line_id] == 3

        with pytest.raises(OverAllocationError) as exc_info:
            ledger.validate_selections(
                order,
                [LineSelection(line_id=line_id, quantity=2), LineSelection(line_id=line_id, quantity=2)],
            )
        assert exc_info.value.extra["available"] == 3

    async def test_riga_estranea(self, db, make_order):
        """Test riga di un'altra ordinazione rifiutata."""
        order = await make_order()
        with pytest.raises(BusinessValidationError):
            LedgerService().validate_selections(order, [LineSelection(line_id=uuid.uuid4(), quantity=1)])

    async def test_selezione_vuota(self, db, make_order):
        """Test nessuna riga selezionata."""
        order = await make_order()
        with pytest.raises(BusinessValidationError):
            LedgerService().validate_selections(order, [])


# ============================================================
# Allocazione e storno
# ============================================================


class TestAllocation:
    """Tests per allocate_payment e reverse_allocation."""

    async def test_alloca_e_storna(self, db, make_order):
        """Test lo storno ripristina esattamente lo stato precedente."""
        created = await make_order(lines=(("Pizza", "8.00", 2), ("Birra", "5.00", 3)))
        order_id = created.id
        ledger = LedgerService()

        order = await ledger.load_order(db, order_id, for_update=True)
        pizza, beer = order.lines
        payment = await add_payment(db, order_id, 1300)
        payment_id = payment.id
        await ledger.allocate_payment(
            db,
            order,
            [LineSelection(line_id=pizza.id, quantity=1), LineSelection(line_id=beer.id, quantity=1)],
            payment_id,
            "Anna",
        )
        await db.commit()

        assert pizza.paid_quantity == 1
        assert pizza.paid_by == "Anna"
        assert order.stato_pagamento == "PARZIALMENTE_PAGATO"
        assert order.paid_cents == 1300
        assert order.remaining_cents == 1800

        affected = await ledger.reverse_allocation(db, payment_id)
        await db.commit()
        assert affected == {order_id}

        order = await ledger.load_order(db, order_id)
        assert [line.paid_quantity for line in order.lines] == [0, 0]
        assert all(line.paid_by is None for line in order.lines)
        assert order.stato_pagamento == "NON_PAGATO"
        assert await ledger.verify_order(db, order_id) == []

    async def test_storno_idempotente(self, db, make_order):
        """Test il secondo storno non modifica nulla."""
        created = await make_order()
        ledger = LedgerService()
        order = await ledger.load_order(db, created.id, for_update=True)
        payment = await add_payment(db, order.id, 1600)
        await ledger.allocate_payment(db, order, ledger.outstanding_selections(order), payment.id, "Anna")
        await db.commit()

        assert await ledger.reverse_allocation(db, payment.id) == {order.id}
        await db.commit()
        assert await ledger.reverse_allocation(db, payment.id) == set()

    async def test_pagamento_completo_chiude_ordinazione(self, db, make_order):
        """Test residuo zero porta a PAGATO con data di chiusura."""
        created = await make_order()
        ledger = LedgerService()
        order = await ledger.load_order(db, created.id, for_update=True)
        payment = await add_payment(db, order.id, 1600)
        await ledger.allocate_payment(db, order, ledger.outstanding_selections(order), payment.id)
        await db.commit()

        assert order.stato == "PAGATO"
        assert order.stato_pagamento == "COMPLETAMENTE_PAGATO"
        assert order.closed_at is not None

        await ledger.reverse_allocation(db, payment.id)
        await db.commit()
        order = await ledger.load_order(db, created.id)
        assert order.stato == "CONSEGNATO"
        assert order.closed_at is None

    async def test_sovra_allocazione_non_modifica_righe(self, db, make_order):
        """Test nessuna riga toccata se una selezione eccede."""
        created = await make_order(lines=(("Pizza", "8.00", 2), ("Birra", "5.00", 1)))
        ledger = LedgerService()
        order = await ledger.load_order(db, created.id, for_update=True)
        pizza, beer = order.lines
        payment = await add_payment(db, order.id, 1300)

        with pytest.raises(OverAllocationError):
            await ledger.allocate_payment(
                db,
                order,
                [LineSelection(line_id=pizza.id, quantity=1), LineSelection(line_id=beer.id, quantity=2)],
                payment.id,
            )
        assert pizza.paid_quantity == 0
        assert beer.paid_quantity == 0

    async def test_pagamento_gia_allocato(self, db, make_order):
        """Test lo stesso pagamento non può essere allocato due volte."""
        created = await make_order(lines=(("Pizza", "8.00", 2),))
        ledger = LedgerService()
        order = await ledger.load_order(db, created.id, for_update=True)
        line_id = order.lines[0].id
        payment = await add_payment(db, order.id, 800)
        await ledger.allocate_payment(db, order, [LineSelection(line_id=line_id, quantity=1)], payment.id)

        with pytest.raises(BusinessValidationError):
            await ledger.allocate_payment(db, order, [LineSelection(line_id=line_id, quantity=1)], payment.id)

    async def test_verify_order_rileva_incoerenza(self, db, make_order):
        """Test quantità pagata senza allocazione segnalata."""
        created = await make_order()
        ledger = LedgerService()
        order = await ledger.load_order(db, created.id, for_update=True)
        order.lines[0].paid_quantity = 1
        await db.commit()

        issues = await ledger.verify_order(db, created.id)
        assert any("allocate 0" in issue for issue in issues)
