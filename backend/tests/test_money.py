"""
Unit tests per l'aritmetica monetaria in centesimi.
"""

from decimal import Decimal

import pytest

from cassa.core.exceptions import BusinessValidationError
from cassa.core.money import format_euro, from_cents, to_cents, within_tolerance


# ============================================================
# Conversione euro -> centesimi
# ============================================================


class TestToCents:
    """Tests per to_cents."""

    @pytest.mark.parametrize(
        "amount,expected",
        [
            (Decimal("12.50"), 1250),
            ("3.10", 310),
            (7, 700),
            (0.1 + 0.2, 30),
            (Decimal("0.005"), 1),
            (Decimal("2.344"), 234),
        ],
    )
    def test_converte_importi(self, amount, expected):
        """Test conversione con arrotondamento al centesimo."""
        assert to_cents(amount) == expected

    @pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity", True])
    def test_importo_non_valido(self, amount):
        """Test importi non numerici rifiutati con errore di dominio."""
        with pytest.raises(BusinessValidationError):
            to_cents(amount)


class TestFromCents:
    """Tests per from_cents e format_euro."""

    def test_due_decimali(self):
        """Test risultato sempre con due decimali."""
        assert from_cents(1250) == Decimal("12.50")
        assert str(from_cents(5)) == "0.05"

    def test_format_euro(self):
        """Test formato per log e messaggi."""
        assert format_euro(1999) == "€19.99"


class TestTolerance:
    """Tests per la tolleranza di un centesimo."""

    def test_entro_tolleranza(self):
        """Test differenza di un centesimo accettata."""
        assert within_tolerance(1000, 1001)
        assert within_tolerance(1001, 1000)

    def test_fuori_tolleranza(self):
        """Test differenza di due centesimi rifiutata."""
        assert not within_tolerance(1000, 1002)

    def test_tolleranza_zero(self):
        """Test tolleranza configurabile."""
        assert not within_tolerance(1000, 1001, tolerance_cents=0)
