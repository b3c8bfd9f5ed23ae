"""
Sincronizzazione real-time della vista cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

from cassa.sync.reconciliation import (
    ReconciliationSync,
    SyncState,
    ViewBucket,
    database_snapshot_fetcher,
)

__all__ = [
    "ReconciliationSync",
    "SyncState",
    "ViewBucket",
    "database_snapshot_fetcher",
]
