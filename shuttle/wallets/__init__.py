"""
Wallet Module

Students pay for shuttle rides from a points wallet. Every movement is written
to an append-only ledger, and the student's cached balance is updated in the
same transaction.

Key Components:
- service.py: WalletService with guarded debits, credits and idempotent allocation
- router.py: admin wallet management and the student wallet endpoints
- schemas.py: Pydantic models for allocations, recharges and ledger views
"""

from .router import admin_router, student_router
from .service import WalletService
from .schemas import (
    TransactionType, AllocationRequest, AllocationResponse, BulkAllocationRequest,
    RechargeRequest, ReconciliationReport, WalletTransactionView
)

__all__ = [
    "admin_router",
    "student_router",
    "WalletService",
    "TransactionType",
    "AllocationRequest",
    "AllocationResponse",
    "BulkAllocationRequest",
    "RechargeRequest",
    "ReconciliationReport",
    "WalletTransactionView"
]
