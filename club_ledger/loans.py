"""
Loan Module

Loan repository: lookups by id, borrower and cosigner, the active-loan
queue ordered by next payment due date, and admin edits of non-financial
loan details. Balance and status changes go through the ledger engine.
"""

from datetime import date
from typing import List, Optional
import calendar

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .members import MemberManager
from .models import Loan, LoanStatus
from .serializers import loan_to_dict, loan_from_dict
from .errors import ValidationError, NotFoundError, InvalidStateError


def add_months(start_date: date, months: int) -> date:
    """Same day-of-month N months later, clamped to the month's last day"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class LoanManager:
    """
    Stores and retrieves member loans
    """

    def __init__(self, storage: StorageInterface, member_manager: MemberManager,
                 audit_trail: AuditTrail):
        self.storage = storage
        self.member_manager = member_manager
        self.audit_trail = audit_trail
        self.loans_table = "loans"

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        return loan_from_dict(data) if data else None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("loan", loan_id)
        return loan

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        """All loans, newest first, optionally restricted to one status"""
        if status:
            records = self.storage.find(self.loans_table, {'status': status.value})
        else:
            records = self.storage.load_all(self.loans_table)
        loans = [loan_from_dict(data) for data in records]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    def get_member_loans(self, member_id: str) -> List[Loan]:
        """Loans where the member is the borrower or the cosigner, newest first"""
        return [
            loan for loan in self.list_loans()
            if loan.borrower_id == member_id or loan.cosigner_id == member_id
        ]

    def get_active_loans(self, borrower_id: Optional[str] = None) -> List[Loan]:
        """ACTIVE loans ordered by next payment due date, soonest first"""
        filters = {'status': LoanStatus.ACTIVE.value}
        if borrower_id:
            filters['borrower_id'] = borrower_id
        loans = [loan_from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda loan: (loan.next_payment_due, loan.id))
        return loans

    def update_loan_details(
        self,
        loan_id: str,
        next_payment_due: Optional[date] = None,
        cosigner_id: Optional[str] = None,
        issued_by: Optional[str] = None
    ) -> Loan:
        """
        Edit scheduling and paperwork fields of an active loan.

        Amounts and status are not editable here.

        Raises:
            NotFoundError: Unknown loan or cosigner
            InvalidStateError: Loan is PAID or DEFAULTED
            ValidationError: Cosigner is the borrower
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if loan.is_terminal:
                raise InvalidStateError(
                    f"Loan {loan_id} is {loan.status.value} and can no longer be edited",
                    {"loan_id": loan_id, "status": loan.status.value}
                )

            changed = []
            if next_payment_due is not None:
                loan.next_payment_due = next_payment_due
                changed.append('next_payment_due')
            if cosigner_id is not None:
                if cosigner_id == loan.borrower_id:
                    raise ValidationError("A borrower cannot cosign their own loan")
                self.member_manager.require_member(cosigner_id)
                loan.cosigner_id = cosigner_id
                changed.append('cosigner_id')
            if issued_by is not None:
                loan.issued_by = issued_by
                changed.append('issued_by')

            if changed:
                loan.touch()
                self.save_loan(loan)
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_UPDATED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={"fields": changed}
                )

        return loan

    def save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, loan_to_dict(loan))
