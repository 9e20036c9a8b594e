from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from shuttle.auth.dependencies import get_session_context, require_admin
from shuttle.auth.schemas import SessionContext
from shuttle.database import get_db
from shuttle.exceptions import PermissionDeniedError
from shuttle.wallets.schemas import (
    AllocationRequest, AllocationResponse, BulkAllocationRequest, BulkAllocationResponse,
    RechargeRequest, RechargeResponse, ReconciliationReport, TransactionType,
    WalletList, WalletSummary, WalletTransactionList
)
from shuttle.wallets.service import WalletService

admin_router = APIRouter()
student_router = APIRouter()

def _summary(student) -> WalletSummary:
    return WalletSummary(
        student_id=student.id,
        student_code=student.student_code,
        name=student.name,
        email=student.email,
        wallet_balance=student.wallet_balance,
    )

# Admin wallet management
@admin_router.get("", response_model=WalletList)
def list_wallets(
    search: Optional[str] = Query(None, description="Search by name, code or email"),
    db: Session = Depends(get_db),
    admin: SessionContext = Depends(require_admin)
):
    """All student wallets with their cached balance"""
    students = WalletService(db).list_wallets(search)
    return WalletList(wallets=[_summary(s) for s in students], total=len(students))

@admin_router.get("/transactions", response_model=WalletTransactionList)
def list_all_transactions(
    student_code: Optional[str] = Query(None, description="Filter by student code"),
    type: Optional[TransactionType] = Query(None, description="Filter by transaction type"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: SessionContext = Depends(require_admin)
):
    """Ledger entries across all students, newest first"""
    service = WalletService(db)
    student_id = service.get_student(student_code).id if student_code else None
    transactions, total = service.list_transactions(student_id, type, limit, offset)
    return WalletTransactionList(transactions=transactions, total=total, limit=limit, offset=offset)

@admin_router.post("/allocate", response_model=AllocationResponse)
def allocate_points(
    request: AllocationRequest,
    db: Session = Depends(get_db),
    admin: SessionContext = Depends(require_admin)
):
    """Credit, debit or refund a student's wallet; safe to retry with the same reference"""
    new_balance, applied = WalletService(db).allocate_once(
        student_code=request.student_code,
        transaction_type=request.type,
        amount=request.amount,
        description=request.description,
        reference=request.reference,
        processed_by=request.processed_by or admin.user_id,
    )
    return AllocationResponse(new_balance=new_balance, replayed=not applied)

@admin_router.post("/bulk-allocate", response_model=BulkAllocationResponse)
def bulk_allocate_points(
    request: BulkAllocationRequest,
    db: Session = Depends(get_db),
    admin: SessionContext = Depends(require_admin)
):
    """Credit every active student the same amount"""
    total, applied, replayed = WalletService(db).bulk_allocate(
        amount=request.amount,
        description=request.description,
        reference=request.reference,
        processed_by=admin.user_id,
    )
    return BulkAllocationResponse(total_students=total, applied=applied, replayed=replayed)

@admin_router.get("/{student_code}/reconcile", response_model=ReconciliationReport)
def reconcile_wallet(
    student_code: str,
    db: Session = Depends(get_db),
    admin: SessionContext = Depends(require_admin)
):
    """Compare the cached balance against the ledger"""
    student, cached, ledger = WalletService(db).reconcile(student_code)
    return ReconciliationReport(
        student_code=student.student_code,
        cached_balance=cached,
        ledger_balance=ledger,
        consistent=cached == ledger,
    )

# Student wallet
def _resolve_student(service: WalletService, context: SessionContext, student_id: Optional[str]):
    identifier = student_id or context.student_id
    if not identifier:
        raise PermissionDeniedError("No student is associated with this session")
    student = service.get_student(identifier)
    if not context.can_act_for(student.id, student.student_code):
        raise PermissionDeniedError("Cannot access another student's wallet")
    return student

@student_router.get("", response_model=WalletSummary)
def get_my_wallet(
    student_id: Optional[str] = Query(None, description="Admins may inspect any student"),
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context)
):
    """Wallet balance for the signed-in student"""
    return _summary(_resolve_student(WalletService(db), context, student_id))

@student_router.get("/transactions", response_model=WalletTransactionList)
def get_my_transactions(
    student_id: Optional[str] = Query(None, description="Admins may inspect any student"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context)
):
    """Wallet history, newest first"""
    service = WalletService(db)
    student = _resolve_student(service, context, student_id)
    transactions, total = service.list_transactions(student.id, None, limit, offset)
    return WalletTransactionList(transactions=transactions, total=total, limit=limit, offset=offset)

@student_router.post("/recharge", response_model=RechargeResponse)
def recharge_wallet(
    request: RechargeRequest,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context)
):
    """Credit a completed gateway payment to the signed-in student's wallet"""
    service = WalletService(db)
    student = _resolve_student(service, context, None)
    balance = service.recharge(student.id, request.amount, request.razorpay_payment_id)
    return RechargeResponse(wallet_balance=balance)
