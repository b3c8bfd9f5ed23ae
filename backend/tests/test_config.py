"""
Tests per Settings.
"""

import pytest
from pydantic import ValidationError

from cassa.core.config import Settings

PRODUCTION = {
    "app_env": "production",
    "database_url": "postgresql+asyncpg://cassa:segreta@db:5432/cassa",
    "cors_origins": ["https://cassa.example.it"],
}


# ============================================================
# Validatori
# ============================================================


class TestSettings:
    """Tests per i validatori di Settings."""

    def test_produzione_valida(self):
        settings = Settings(**PRODUCTION)
        assert settings.is_production

    def test_sviluppo_senza_controlli(self):
        """Test in sviluppo le credenziali di default sono ammesse."""
        settings = Settings(app_env="development", debug=True)
        assert not settings.is_production
        assert "changeme" in settings.database_url

    @pytest.mark.parametrize(
        "override",
        [
            {"debug": True},
            {"database_url": "postgresql+asyncpg://cassa_user:changeme@db:5432/cassa"},
            {"cors_origins": ["http://localhost:3000"]},
        ],
    )
    def test_produzione_non_valida(self, override):
        """Test debug, password di default e origini locali rifiutati in produzione."""
        with pytest.raises(ValidationError, match="produzione"):
            Settings(**{**PRODUCTION, **override})

    def test_max_wait_inferiore_al_debounce(self):
        with pytest.raises(ValidationError, match="sync_debounce_max_wait_seconds"):
            Settings(sync_debounce_seconds=1.0, sync_debounce_max_wait_seconds=0.5)

    def test_tipi_notifica_da_stringa(self):
        """Test lista di tipi di notifica da variabile d'ambiente."""
        settings = Settings(sync_notification_kinds="order_paid, debt_created")
        assert settings.sync_notification_kinds == ["order_paid", "debt_created"]
