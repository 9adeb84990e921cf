from fastapi import APIRouter

from backend.app.api.v1.endpoints import (
    cash_accounts,
    cash_registers,
    customers,
    fiscal,
    petty_cash,
    purchase_orders,
    quotes,
    sales,
    supplier_payments,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(sales.router, prefix="/sales", tags=["sales"])
api_router.include_router(quotes.router, prefix="/quotes", tags=["quotes"])
api_router.include_router(customers.router, prefix="/customers", tags=["customers"])
api_router.include_router(cash_accounts.router, prefix="/cash-accounts", tags=["treasury"])
api_router.include_router(cash_registers.router, prefix="/cash-registers", tags=["treasury"])
api_router.include_router(petty_cash.router, prefix="/petty-cash", tags=["treasury"])
api_router.include_router(
    purchase_orders.router, prefix="/purchase-orders", tags=["purchase-orders"]
)
api_router.include_router(
    supplier_payments.router, prefix="/supplier-payments", tags=["suppliers"]
)
api_router.include_router(
    supplier_payments.invoices_router, prefix="/supplier-invoices", tags=["suppliers"]
)
api_router.include_router(fiscal.router, prefix="/fiscal", tags=["fiscal"])
