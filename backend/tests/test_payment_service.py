"""
Tests per PaymentService e per il facade CassaService.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from cassa.core.exceptions import (
    AlreadyPaidError,
    BusinessValidationError,
    ConflictError,
    OverAllocationError,
)
from cassa.schemas.payment import LineSelection, MultiOrderLeg, PaymentMethod
from cassa.services.cassa_service import CassaService
from cassa.services.ledger_service import LedgerService
from cassa.services.payment_service import PaymentService


class FailingLedger(LedgerService):
    """Ledger che rifiuta le allocazioni di una specifica ordinazione."""

    def __init__(self, failing_order_id):
        self.failing_order_id = failing_order_id

    async def allocate_payment(self, db, order, selections, payment_id, payer_name=None):
        if order.id == self.failing_order_id:
            raise ConflictError("Allocazione rifiutata")
        return await super().allocate_payment(db, order, selections, payment_id, payer_name)


@pytest.fixture
def payment_service() -> PaymentService:
    return PaymentService()


# ============================================================
# Pagamento completo
# ============================================================


class TestPayOrder:
    """Tests per pay_order."""

    async def test_paga_residuo(self, db, make_order, payment_service, order_service):
        """Test pagamento completo chiude l'ordinazione."""
        order = await make_order()
        payment = await payment_service.pay_order(db, order.id, 1600, PaymentMethod.CONTANTI, "Anna")

        assert payment.amount_cents == 1600
        assert payment.kind == "COMPLETO"
        assert payment.status == "COMPLETATO"
        refreshed = await order_service.get_by_id(db, order.id)
        assert refreshed.stato == "PAGATO"
        assert refreshed.remaining_cents == 0
        assert refreshed.lines[0].paid_by == "Anna"

    async def test_tolleranza_un_centesimo(self, db, make_order, payment_service):
        """Test importo entro un centesimo dal residuo accettato."""
        order = await make_order()
        payment = await payment_service.pay_order(db, order.id, 1599, PaymentMethod.POS)
        assert payment.amount_cents == 1599

    async def test_importo_fuori_tolleranza(self, db, make_order, payment_service):
        """Test importo diverso dal residuo rifiutato."""
        order = await make_order()
        order_id = order.id
        with pytest.raises(BusinessValidationError) as exc_info:
            await payment_service.pay_order(db, order_id, 1500, PaymentMethod.CONTANTI)
        assert exc_info.value.extra["due_cents"] == 1600

    async def test_gia_pagata(self, db, make_order, payment_service):
        """Test secondo pagamento rifiutato con AlreadyPaidError."""
        order = await make_order()
        order_id = order.id
        await payment_service.pay_order(db, order_id, 1600, PaymentMethod.CONTANTI)
        with pytest.raises(AlreadyPaidError):
            await payment_service.pay_order(db, order_id, 1600, PaymentMethod.CONTANTI)

    async def test_non_consegnata(self, db, make_order, payment_service):
        """Test ordinazione non consegnata non pagabile."""
        order = await make_order(deliver=False)
        order_id = order.id
        with pytest.raises(BusinessValidationError):
            await payment_service.pay_order(db, order_id, 1600, PaymentMethod.CONTANTI)

    async def test_scontrino_fallito_non_annulla(self, db, make_order, order_service):
        """Test errore dello scontrino registrato, pagamento confermato."""
        receipts = AsyncMock()
        receipts.issue.side_effect = RuntimeError("stampante offline")
        service = PaymentService(receipts=receipts)
        order = await make_order()

        payment = await service.pay_order(db, order.id, 1600, PaymentMethod.CONTANTI)

        receipts.issue.assert_awaited_once()
        assert payment.status == "COMPLETATO"
        assert (await order_service.get_by_id(db, order.id)).stato == "PAGATO"


# ============================================================
# Pagamento parziale
# ============================================================


class TestPayPartial:
    """Tests per pay_partial."""

    async def test_scenario_espresso(self, db, make_order, payment_service, order_service):
        """Test 1 espresso su (2 espresso + 1 cornetto): residuo 2.70."""
        order = await make_order(lines=(("Espresso", "1.50", 2), ("Cornetto", "1.20", 1)))
        espresso = order.lines[0]

        payment = await payment_service.pay_partial(
            db, order.id, [LineSelection(line_id=espresso.id, quantity=1)], PaymentMethod.CONTANTI, "Luca"
        )

        assert payment.amount_cents == 150
        assert payment.kind == "PARZIALE"
        refreshed = await order_service.get_by_id(db, order.id)
        assert refreshed.total_cents == 420
        assert refreshed.stato_pagamento == "PARZIALMENTE_PAGATO"
        assert refreshed.remaining_cents == 270

    async def test_sovra_allocazione(self, db, make_order, payment_service, order_service):
        """Test quantità oltre il residuo: errore e nessuna modifica."""
        order = await make_order(lines=(("Espresso", "1.50", 2),))
        order_id, line_id = order.id, order.lines[0].id

        with pytest.raises(OverAllocationError):
            await payment_service.pay_partial(
                db, order_id, [LineSelection(line_id=line_id, quantity=3)], PaymentMethod.CONTANTI
            )

        refreshed = await order_service.get_by_id(db, order_id)
        assert refreshed.paid_cents == 0
        assert await order_service.get_payments(db, order_id) == []

    async def test_importo_diverso_dalle_righe(self, db, make_order, payment_service):
        """Test importo esplicito che non corrisponde alle righe."""
        order = await make_order(lines=(("Espresso", "1.50", 2),))
        order_id, line_id = order.id, order.lines[0].id
        with pytest.raises(BusinessValidationError):
            await payment_service.pay_partial(
                db,
                order_id,
                [LineSelection(line_id=line_id, quantity=1)],
                PaymentMethod.CONTANTI,
                amount_cents=200,
            )

    async def test_parziali_fino_al_saldo(self, db, make_order, payment_service, order_service):
        """Test somma dei parziali pari al totale chiude l'ordinazione."""
        order = await make_order(lines=(("Espresso", "1.50", 2),))
        line_id = order.lines[0].id
        for payer in ("Anna", "Luca"):
            await payment_service.pay_partial(
                db, order.id, [LineSelection(line_id=line_id, quantity=1)], PaymentMethod.CONTANTI, payer
            )
        refreshed = await order_service.get_by_id(db, order.id)
        assert refreshed.stato == "PAGATO"
        assert refreshed.lines[0].paid_by == "Anna, Luca"

    async def test_due_casse_stessa_riga(self, db, session_factory, make_order, order_service):
        """Test la cassa con la vista vecchia non paga l'unità già incassata da un'altra."""
        order = await make_order(lines=(("Birra", "5.00", 2), ("Pizza", "8.00", 1)))
        order_id, beer_id = order.id, order.lines[0].id
        one_beer = [LineSelection(line_id=beer_id, quantity=1)]
        await PaymentService().pay_partial(db, order_id, one_beer, PaymentMethod.CONTANTI, "Anna")

        async with session_factory() as stale, session_factory() as other:
            cassa_a = PaymentService()
            cassa_b = PaymentService()

            seen = await cassa_a.ledger.load_order(stale, order_id)
            assert seen.lines[0].remaining_quantity == 1

            await cassa_b.pay_partial(other, order_id, one_beer, PaymentMethod.POS, "Luca")

            # La sessione vecchia ha ancora in memoria l'unità residua
            assert seen.lines[0].remaining_quantity == 1
            with pytest.raises(OverAllocationError):
                await cassa_a.pay_partial(stale, order_id, one_beer, PaymentMethod.CONTANTI, "Paolo")

        refreshed = await order_service.get_by_id(db, order_id)
        assert refreshed.lines[0].paid_quantity == 2
        assert refreshed.lines[0].paid_by == "Anna, Luca"
        assert refreshed.remaining_cents == 800
        assert len(await order_service.get_payments(db, order_id)) == 2


# ============================================================
# Pagamento tavolo e multi-ordine
# ============================================================


class TestPayTable:
    """Tests per pay_table (non atomico)."""

    async def test_scenario_tavolo(self, db, make_order, payment_service, order_service):
        """Test residui {5.00, 0.00, 3.50}: due pagamenti, tavolo saldato."""
        first = await make_order(lines=(("Pizza", "5.00", 1),), table_key="T2")
        paid = await make_order(lines=(("Acqua", "2.00", 1),), table_key="T2")
        third = await make_order(lines=(("Birra", "3.50", 1),), table_key="T2")
        await payment_service.pay_order(db, paid.id, 200, PaymentMethod.CONTANTI)
        paid_id = paid.id
        before = len(await order_service.get_payments(db, paid_id))

        outcome = await payment_service.pay_table(db, "T2", PaymentMethod.POS)

        assert outcome.all_ok
        assert sorted(leg.payment.amount_cents for leg in outcome.legs) == [350, 500]
        assert {leg.order_id for leg in outcome.legs} == {first.id, third.id}
        assert outcome.total_paid_cents == 850
        assert len(await order_service.get_payments(db, paid_id)) == before
        groups = await order_service.get_table_groups(db)
        assert all(g.table_key != "T2" for g in groups)

    async def test_ordinazione_fallita_non_blocca_le_altre(self, db, make_order, order_service):
        """Test le ordinazioni pagate restano pagate se una fallisce."""
        first = await make_order(lines=(("Pizza", "5.00", 1),), table_key="T4")
        second = await make_order(lines=(("Birra", "3.50", 1),), table_key="T4")
        first_id, second_id = first.id, second.id
        service = PaymentService(ledger=FailingLedger(second_id))

        outcome = await service.pay_table(db, "T4", PaymentMethod.CONTANTI)

        assert not outcome.all_ok
        assert outcome.paid_count == 1
        failed = next(leg for leg in outcome.legs if not leg.ok)
        assert failed.order_id == second_id
        assert failed.error_code == "CONFLICT_STATE"
        assert (await order_service.get_by_id(db, first_id)).stato == "PAGATO"
        assert (await order_service.get_by_id(db, second_id)).remaining_cents == 350
        assert await order_service.get_payments(db, second_id) == []

    async def test_tavolo_gia_pagato(self, db, make_order, payment_service):
        """Test tavolo senza residui."""
        order = await make_order(table_key="T5")
        await payment_service.pay_order(db, order.id, 1600, PaymentMethod.CONTANTI)
        with pytest.raises(AlreadyPaidError):
            await payment_service.pay_table(db, "T5", PaymentMethod.CONTANTI)

    async def test_tavolo_vuoto(self, db, payment_service):
        """Test tavolo senza ordinazioni consegnate."""
        with pytest.raises(BusinessValidationError):
            await payment_service.pay_table(db, "T7", PaymentMethod.CONTANTI)

    async def test_multi_ordine(self, db, make_order, payment_service, order_service):
        """Test un pagatore salda righe di due ordinazioni."""
        first = await make_order(lines=(("Espresso", "1.50", 2),), table_key="T1")
        second = await make_order(lines=(("Cornetto", "1.20", 3),), table_key="T1")

        outcome = await payment_service.pay_multi_order_partial(
            db,
            [
                MultiOrderLeg(order_id=first.id, selections=[LineSelection(line_id=first.lines[0].id, quantity=1)]),
                MultiOrderLeg(order_id=second.id, selections=[LineSelection(line_id=second.lines[0].id, quantity=2)]),
            ],
            PaymentMethod.CONTANTI,
            "Giulia",
        )

        assert outcome.all_ok
        assert outcome.total_paid_cents == 150 + 240
        assert (await order_service.get_by_id(db, second.id)).remaining_cents == 120


# ============================================================
# Annullamento
# ============================================================


class TestCancelPayment:
    """Tests per cancel_payment."""

    async def test_annullamento_idempotente(self, db, make_order, payment_service, order_service):
        """Test il secondo annullamento non modifica nulla."""
        order = await make_order()
        payment = await payment_service.pay_order(db, order.id, 1600, PaymentMethod.CONTANTI)

        cancelled = await payment_service.cancel_payment(db, order.id, "errore di battitura")
        assert cancelled.id == payment.id
        assert cancelled.status == "ANNULLATO"
        refreshed = await order_service.get_by_id(db, order.id)
        assert refreshed.stato == "CONSEGNATO"
        assert refreshed.stato_pagamento == "NON_PAGATO"
        assert refreshed.remaining_cents == 1600

        again = await payment_service.cancel_payment(db, order.id)
        assert again.status == "ANNULLATO"
        assert again.cancel_reason == "errore di battitura"
        assert (await order_service.get_by_id(db, order.id)).remaining_cents == 1600

    async def test_annulla_parziale_specifico(self, db, make_order, payment_service, order_service):
        """Test annullamento di un parziale lascia intatti gli altri."""
        order = await make_order(lines=(("Espresso", "1.50", 2),))
        line_id = order.lines[0].id
        first = await payment_service.pay_partial(
            db, order.id, [LineSelection(line_id=line_id, quantity=1)], PaymentMethod.CONTANTI, "Anna"
        )
        await payment_service.pay_partial(
            db, order.id, [LineSelection(line_id=line_id, quantity=1)], PaymentMethod.CONTANTI, "Luca"
        )

        await payment_service.cancel_payment_by_id(db, order.id, first.id)

        refreshed = await order_service.get_by_id(db, order.id)
        assert refreshed.lines[0].paid_quantity == 1
        assert refreshed.lines[0].paid_by == "Luca"
        assert refreshed.stato_pagamento == "PARZIALMENTE_PAGATO"

    async def test_nessun_pagamento(self, db, make_order, payment_service):
        """Test annullamento senza pagamenti."""
        order = await make_order()
        order_id = order.id
        with pytest.raises(BusinessValidationError):
            await payment_service.cancel_payment(db, order_id)


# ============================================================
# Facade
# ============================================================


class TestCassaServiceFacade:
    """Tests per il confine Result di CassaService."""

    async def test_pay_order_ok(self, db, make_order):
        """Test importo in euro convertito e Result ok."""
        order = await make_order()
        result = await CassaService().pay_order(db, order.id, Decimal("16.00"), PaymentMethod.MISTO)
        assert result.ok
        assert result.value.amount_cents == 1600

    async def test_errore_di_dominio_in_result(self, db, make_order):
        """Test AlreadyPaidError restituito come Result, non sollevato."""
        cassa = CassaService()
        order = await make_order()
        order_id = order.id
        await cassa.pay_order(db, order_id, "16", PaymentMethod.CONTANTI)

        result = await cassa.pay_order(db, order_id, "16", PaymentMethod.CONTANTI)

        assert not result.ok
        assert result.error_code == "ALREADY_PAID"
        with pytest.raises(AlreadyPaidError):
            result.unwrap()

    async def test_importo_non_valido(self, db, make_order):
        """Test importo non numerico come ValidationError."""
        order = await make_order()
        result = await CassaService().pay_order(db, order.id, "dieci", PaymentMethod.CONTANTI)
        assert result.error_code == "BUSINESS_VALIDATION_ERROR"
