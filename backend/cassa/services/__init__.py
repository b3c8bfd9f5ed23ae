"""
Servizi di dominio della cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""
