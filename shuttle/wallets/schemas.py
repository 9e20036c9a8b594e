from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

from shuttle.schemas import Money

class TransactionType(str, Enum):
    """Wallet transaction type; amounts are magnitudes, the type gives the sign"""
    CREDIT = "credit"
    DEBIT = "debit"
    REFUND = "refund"

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

# Requests
class AllocationRequest(CamelModel):
    """Admin credit/debit/refund against a student's wallet"""
    student_code: str
    type: TransactionType
    amount: Decimal = Field(gt=0)
    description: str = Field(min_length=1)
    reference: Optional[str] = Field(None, max_length=128)
    processed_by: Optional[str] = None

class BulkAllocationRequest(CamelModel):
    amount: Decimal = Field(gt=0)
    description: str = Field(min_length=1)
    reference: str = Field(min_length=1, max_length=96)

class RechargeRequest(CamelModel):
    """Payment gateway confirmation for a wallet top-up"""
    amount: Decimal = Field(gt=0)
    razorpay_payment_id: str = Field(min_length=1, max_length=100)

# Responses
class AllocationResponse(CamelModel):
    success: bool = True
    new_balance: Money
    replayed: bool = False

class BulkAllocationResponse(CamelModel):
    success: bool = True
    total_students: int
    applied: int
    replayed: int

class RechargeResponse(CamelModel):
    success: bool = True
    wallet_balance: Money

class WalletTransactionView(CamelModel):
    id: str
    student_id: str
    type: TransactionType
    amount: Money
    booking_id: Optional[str] = None
    description: str
    reference: Optional[str] = None
    processed_by: Optional[str] = None
    created_at: Optional[datetime] = None

class WalletTransactionList(CamelModel):
    transactions: List[WalletTransactionView]
    total: int
    limit: int
    offset: int

class WalletSummary(CamelModel):
    student_id: str
    student_code: str
    name: str
    email: str
    wallet_balance: Money

class WalletList(CamelModel):
    wallets: List[WalletSummary]
    total: int

class ReconciliationReport(CamelModel):
    student_code: str
    cached_balance: Money
    ledger_balance: Money
    consistent: bool
