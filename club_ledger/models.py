"""
Club Ledger Records

Members, loans, ledger transactions and communication logs. Field
validation lives here; cross-record rules (one active loan per member,
contribution totals matching the ledger) are enforced by the ledger engine.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Optional
from enum import Enum

from .currency import Money
from .storage import StorageRecord


class MemberStatus(Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class LoanStatus(Enum):
    """Loan lifecycle states; PAID and DEFAULTED are terminal"""
    ACTIVE = "ACTIVE"
    PAID = "PAID"
    DEFAULTED = "DEFAULTED"


class TransactionType(Enum):
    CONTRIBUTION = "CONTRIBUTION"
    LOAN_DISBURSAL = "LOAN_DISBURSAL"
    LOAN_REPAYMENT = "LOAN_REPAYMENT"
    FEE = "FEE"
    DISTRIBUTION = "DISTRIBUTION"


class CommunicationType(Enum):
    SYSTEM = "System"
    NOTE = "Note"
    EMAIL = "Email"
    SMS = "SMS"


class CommunicationDirection(Enum):
    INBOUND = "Inbound"
    OUTBOUND = "Outbound"


@dataclass
class Member(StorageRecord):
    """
    Club member.

    ``total_contribution`` is a cache of the member's CONTRIBUTION ledger
    entries and ``active_loan_id`` points at the member's single ACTIVE loan.
    Both are written only by the ledger engine.
    """
    name: str
    total_contribution: Money
    join_date: date
    account_status: MemberStatus = MemberStatus.ACTIVE
    nickname: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    beneficiary: str = ""
    active_loan_id: Optional[str] = None
    last_loan_paid_date: Optional[date] = None
    auto_pay: bool = False

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Member name is required")
        if self.total_contribution.is_negative():
            raise ValueError("Total contribution cannot be negative")

    @property
    def is_active(self) -> bool:
        return self.account_status == MemberStatus.ACTIVE

    @property
    def has_active_loan(self) -> bool:
        return self.active_loan_id is not None


@dataclass
class Loan(StorageRecord):
    """Member loan; the balance only ever goes down"""
    borrower_id: str
    original_amount: Money
    remaining_balance: Money
    term_months: int
    start_date: date
    next_payment_due: date
    status: LoanStatus = LoanStatus.ACTIVE
    cosigner_id: Optional[str] = None
    issued_by: Optional[str] = None

    def __post_init__(self):
        if not self.original_amount.is_positive():
            raise ValueError("Loan amount must be positive")
        if self.term_months <= 0:
            raise ValueError("Loan term must be at least one month")
        if self.remaining_balance.is_negative() or self.remaining_balance > self.original_amount:
            raise ValueError(
                f"Remaining balance {self.remaining_balance.to_string()} is outside "
                f"[0, {self.original_amount.to_string()}]"
            )

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in (LoanStatus.PAID, LoanStatus.DEFAULTED)

    @property
    def monthly_due(self) -> Money:
        """Nominal monthly instalment: original amount spread evenly over the term"""
        return self.original_amount / Decimal(self.term_months)

    @property
    def amount_repaid(self) -> Money:
        return self.original_amount - self.remaining_balance


@dataclass
class Transaction(StorageRecord):
    """Immutable ledger entry; the sign of the amount is implied by the type"""
    member_id: str
    transaction_type: TransactionType
    amount: Money
    date: date
    description: str = ""
    loan_id: Optional[str] = None
    payment_method: Optional[str] = None
    received_by: Optional[str] = None

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValueError("Transaction amount must be positive")

    @property
    def is_credit(self) -> bool:
        """Money flowing into the club fund"""
        return self.transaction_type in (TransactionType.CONTRIBUTION, TransactionType.LOAN_REPAYMENT)


@dataclass
class CommunicationLog(StorageRecord):
    member_id: str
    communication_type: CommunicationType
    content: str
    date: date
    direction: CommunicationDirection = CommunicationDirection.OUTBOUND
    admin_id: Optional[str] = None
