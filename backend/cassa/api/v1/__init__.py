"""
API v1 Routes
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from cassa.api.v1 import cash_register, debts, orders, payment_requests, payments, scalar_accounts

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(orders.customers_router)
api_v1_router.include_router(orders.router)
api_v1_router.include_router(payments.router)
api_v1_router.include_router(payment_requests.router)
api_v1_router.include_router(debts.router)
api_v1_router.include_router(scalar_accounts.router)
api_v1_router.include_router(cash_register.router)

# Esportazione
__all__ = ["api_v1_router"]
