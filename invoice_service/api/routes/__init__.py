"""API routes package."""
from invoice_service.api.routes import invoices

__all__ = ["invoices"]
