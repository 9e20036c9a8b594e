from typing import List, Optional, Tuple
from datetime import datetime
from decimal import Decimal
import logging
import secrets

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shuttle.exceptions import (
    DuplicateReferenceError, InsufficientBalanceError, InvalidAllocationError, NotFoundError
)
from shuttle.models import Student, WalletTransaction
from shuttle.wallets.schemas import TransactionType

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

def to_points(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


class WalletService:
    """Append-only wallet ledger with a cached balance per student"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_student(self, identifier: str, lock: bool = False) -> Student:
        """Student by internal id or student code; optionally row-locked"""
        query = self.db.query(Student).filter(
            or_(Student.id == identifier, Student.student_code == identifier)
        )
        if lock:
            # Refresh a row the session may already hold
            query = query.with_for_update().populate_existing()
        student = query.first()
        if not student:
            raise NotFoundError(f"Student {identifier} not found")
        return student

    def find_by_reference(self, reference: str) -> Optional[WalletTransaction]:
        return self.db.query(WalletTransaction).filter(
            WalletTransaction.reference == reference
        ).first()

    def ledger_balance(self, student_id: str) -> Decimal:
        """Balance derived from the ledger: credits + refunds - debits"""
        totals = dict(
            self.db.query(WalletTransaction.type, func.sum(WalletTransaction.amount))
            .filter(WalletTransaction.student_id == student_id)
            .group_by(WalletTransaction.type)
            .all()
        )
        credits = to_points(totals.get(TransactionType.CREDIT.value))
        refunds = to_points(totals.get(TransactionType.REFUND.value))
        debits = to_points(totals.get(TransactionType.DEBIT.value))
        return credits + refunds - debits

    def reconcile(self, identifier: str) -> Tuple[Student, Decimal, Decimal]:
        """Cached and ledger balance for a student"""
        student = self.get_student(identifier)
        return student, to_points(student.wallet_balance), self.ledger_balance(student.id)

    def list_transactions(
        self,
        student_id: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[WalletTransaction], int]:
        query = self.db.query(WalletTransaction)
        if student_id:
            query = query.filter(WalletTransaction.student_id == student_id)
        if transaction_type:
            query = query.filter(WalletTransaction.type == transaction_type.value)

        total = query.count()
        transactions = query.order_by(
            WalletTransaction.created_at.desc(), WalletTransaction.id
        ).offset(offset).limit(limit).all()
        return transactions, total

    def list_wallets(self, search: Optional[str] = None) -> List[Student]:
        query = self.db.query(Student)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Student.name.ilike(pattern),
                Student.student_code.ilike(pattern),
                Student.email.ilike(pattern),
            ))
        return query.order_by(Student.student_code).all()

    # ------------------------------------------------------------------
    # Building blocks; callers own the transaction
    # ------------------------------------------------------------------
    def apply_debit(self, student: Student, amount: Decimal):
        """Decrement the cached balance only if it still covers ``amount``"""
        result = self.db.execute(
            update(Student)
            .where(Student.id == student.id, Student.wallet_balance >= amount)
            .values(wallet_balance=Student.wallet_balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientBalanceError(
                f"Wallet balance is insufficient for a charge of {amount} points"
            )

    def apply_credit(self, student: Student, amount: Decimal):
        self.db.execute(
            update(Student)
            .where(Student.id == student.id)
            .values(wallet_balance=Student.wallet_balance + amount)
            .execution_options(synchronize_session=False)
        )

    def record_transaction(
        self,
        student: Student,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        reference: str,
        booking_id: Optional[str] = None,
        processed_by: Optional[str] = None
    ) -> WalletTransaction:
        transaction = WalletTransaction(
            student_id=student.id,
            type=transaction_type.value,
            amount=amount,
            booking_id=booking_id,
            description=description,
            reference=reference,
            processed_by=processed_by,
        )
        self.db.add(transaction)
        return transaction

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def allocate(
        self,
        student_code: str,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        reference: Optional[str] = None,
        processed_by: Optional[str] = None
    ) -> Decimal:
        """Credit, debit or refund a wallet; returns the new balance"""
        balance, _ = self.allocate_once(
            student_code, transaction_type, amount, description, reference, processed_by
        )
        return balance

    def allocate_once(
        self,
        student_code: str,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        reference: Optional[str] = None,
        processed_by: Optional[str] = None
    ) -> Tuple[Decimal, bool]:
        """
        Apply a wallet movement at most once per ``reference``.

        Returns the balance and whether the movement was applied now. Replaying a
        reference with the same student, type and amount is a no-op; replaying it
        with anything else raises DuplicateReferenceError.
        """
        transaction_type = self._coerce_type(transaction_type)
        amount = to_points(amount)
        if amount <= 0:
            raise InvalidAllocationError("Amount must be greater than zero")
        if not description or not description.strip():
            raise InvalidAllocationError("A description is required")
        reference = reference or self._generate_reference()

        try:
            student = self.get_student(student_code, lock=True)

            existing = self.find_by_reference(reference)
            if existing is not None:
                self._check_replay(existing, student, transaction_type, amount)
                self.db.rollback()
                return to_points(student.wallet_balance), False

            if transaction_type == TransactionType.DEBIT:
                if to_points(student.wallet_balance) < amount:
                    raise InsufficientBalanceError(
                        f"Student {student.student_code} has {to_points(student.wallet_balance)} points, "
                        f"cannot debit {amount}"
                    )
                self.apply_debit(student, amount)
            else:
                self.apply_credit(student, amount)

            self.record_transaction(
                student, transaction_type, amount, description.strip(), reference,
                processed_by=processed_by
            )
            self.db.commit()
        except IntegrityError:
            # Concurrent request committed the same reference first
            self.db.rollback()
            existing = self.find_by_reference(reference)
            if existing is None:
                raise
            student = self.get_student(student_code)
            self._check_replay(existing, student, transaction_type, amount)
            return to_points(student.wallet_balance), False
        except InsufficientBalanceError:
            self.db.rollback()
            logger.warning(
                "Rejected %s of %s for %s: insufficient balance",
                transaction_type.value, amount, student_code
            )
            raise
        except Exception:
            self.db.rollback()
            raise

        balance = to_points(student.wallet_balance)
        logger.info(
            "Wallet %s of %s for %s (ref %s), balance now %s",
            transaction_type.value, amount, student.student_code, reference, balance
        )
        return balance, True

    def bulk_allocate(
        self,
        amount: Decimal,
        description: str,
        reference: str,
        processed_by: Optional[str] = None
    ) -> Tuple[int, int, int]:
        """Credit every active student; returns (students, applied, replayed)"""
        codes = [
            code for (code,) in self.db.query(Student.student_code)
            .filter(Student.is_active == True)
            .order_by(Student.student_code)
            .all()
        ]

        applied = 0
        for code in codes:
            _, was_applied = self.allocate_once(
                code, TransactionType.CREDIT, amount, description,
                f"{reference}:{code}", processed_by
            )
            applied += int(was_applied)

        logger.info("Bulk allocation %s: %d of %d students credited", reference, applied, len(codes))
        return len(codes), applied, len(codes) - applied

    def recharge(self, student_identifier: str, amount: Decimal, payment_id: str) -> Decimal:
        """Credit a confirmed gateway payment; the payment id is the idempotency key"""
        student = self.get_student(student_identifier)
        return self.allocate(
            student.student_code,
            TransactionType.CREDIT,
            amount,
            "Wallet recharge",
            reference=f"RECHARGE_{payment_id}",
            processed_by=None,
        )

    def _check_replay(
        self,
        existing: WalletTransaction,
        student: Student,
        transaction_type: TransactionType,
        amount: Decimal
    ):
        same_payload = (
            existing.student_id == student.id
            and existing.type == transaction_type.value
            and to_points(existing.amount) == amount
        )
        if not same_payload:
            self.db.rollback()
            logger.warning("Reference %s replayed with a different payload", existing.reference)
            raise DuplicateReferenceError(
                f"Reference {existing.reference} was already used for a different transaction"
            )
        logger.info("Reference %s already applied, skipping", existing.reference)

    @staticmethod
    def _coerce_type(transaction_type) -> TransactionType:
        try:
            return TransactionType(transaction_type)
        except ValueError:
            raise InvalidAllocationError(f"Unknown transaction type: {transaction_type}")

    @staticmethod
    def _generate_reference() -> str:
        return f"ALLOC_{datetime.now().strftime('%Y%m%d%H%M%S')}_{secrets.token_hex(4)}"
