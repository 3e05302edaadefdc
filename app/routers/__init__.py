"""
BikeShop Service Hub - Routers Package

FastAPI route handlers.

Routers:
- quotations: Quotation lifecycle (create, update, send, approve, reject)
- invoices: Invoices, payments and cancellation
"""

from app.routers import (
    quotations,
    invoices,
)

__all__ = [
    "quotations",
    "invoices",
]
