"""
Cassa - Riconciliazione Pagamenti Ristorazione
Backend FastAPI per la gestione della cassa: pagamenti per riga,
conti tavolo, debiti clienti, conti scalari e sincronizzazione real-time.
"""

__version__ = "1.0.0"
