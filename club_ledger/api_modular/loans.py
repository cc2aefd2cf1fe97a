"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import ClubSystem, get_club_system
from .schemas import (
    CreateLoanRequest,
    UpdateLoanRequest,
    LoanPaymentRequest,
    DefaultLoanRequest,
    loan_response,
)
from ..models import LoanStatus
from ..errors import ValidationError


router = APIRouter()


@router.get("")
async def list_loans(
    status: Optional[str] = None,
    system: ClubSystem = Depends(get_club_system)
):
    """All loans, newest first"""
    loan_status = None
    if status:
        try:
            loan_status = LoanStatus(status.upper())
        except ValueError:
            raise ValidationError(f"Unknown loan status: {status}")
    loans = system.loan_manager.list_loans(status=loan_status)
    return {"loans": [loan_response(loan) for loan in loans]}


@router.get("/active")
async def list_active_loans(system: ClubSystem = Depends(get_club_system)):
    """ACTIVE loans ordered by next payment due date"""
    loans = system.loan_manager.get_active_loans()
    return {"loans": [loan_response(loan) for loan in loans]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def originate_loan(
    request: CreateLoanRequest,
    system: ClubSystem = Depends(get_club_system)
):
    """Originate a loan and record its disbursal"""
    loan = system.ledger.originate_loan(
        borrower_id=request.borrower_id,
        original_amount=request.original_amount.to_money(),
        term_months=request.term_months,
        start_date=request.start_date,
        cosigner_id=request.cosigner_id,
        issued_by=request.issued_by
    )
    return loan_response(loan)


@router.get("/{loan_id}")
async def get_loan(loan_id: str, system: ClubSystem = Depends(get_club_system)):
    """Get loan by ID"""
    return loan_response(system.loan_manager.require_loan(loan_id))


@router.put("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    system: ClubSystem = Depends(get_club_system)
):
    """Edit the schedule, cosigner or issuing admin of an active loan"""
    loan = system.loan_manager.update_loan_details(
        loan_id,
        next_payment_due=request.next_payment_due,
        cosigner_id=request.cosigner_id,
        issued_by=request.issued_by
    )
    return loan_response(loan)


@router.post("/{loan_id}/payment")
async def make_loan_payment(
    loan_id: str,
    request: LoanPaymentRequest,
    system: ClubSystem = Depends(get_club_system)
):
    """Apply a repayment to a loan"""
    loan = system.ledger.apply_loan_payment(
        loan_id,
        request.amount.to_money(),
        payment_date=request.payment_date,
        payment_method=request.payment_method,
        received_by=request.received_by
    )
    return loan_response(loan)


@router.post("/{loan_id}/default")
async def mark_loan_defaulted(
    loan_id: str,
    request: Optional[DefaultLoanRequest] = None,
    system: ClubSystem = Depends(get_club_system)
):
    """Mark an active loan as defaulted"""
    loan = system.ledger.mark_loan_defaulted(loan_id, user_id=request.user_id if request else None)
    return loan_response(loan)
