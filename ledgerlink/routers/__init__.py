"""API routers package."""

from ledgerlink.routers import pending_transfers, transfers

__all__ = [
    "pending_transfers",
    "transfers",
]
