"""
Ledger transaction endpoints

Entries are append-only: there is no update or delete.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import ClubSystem, get_club_system
from .schemas import CreateTransactionRequest, transaction_response
from ..models import TransactionType
from ..errors import ValidationError


router = APIRouter()


@router.get("")
async def list_transactions(
    member_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    transaction_type: Optional[str] = None,
    system: ClubSystem = Depends(get_club_system)
):
    """Ledger entries, newest first"""
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")
    wanted_type = None
    if transaction_type:
        try:
            wanted_type = TransactionType(transaction_type.upper())
        except ValueError:
            raise ValidationError(f"Unknown transaction type: {transaction_type}")

    transactions = system.transaction_ledger.list_transactions(
        member_id=member_id,
        start_date=start_date,
        end_date=end_date,
        transaction_type=wanted_type
    )
    return {"transactions": [transaction_response(t) for t in transactions]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    request: CreateTransactionRequest,
    system: ClubSystem = Depends(get_club_system)
):
    """Record a contribution, fee or distribution"""
    transaction = system.ledger.record_transaction(
        member_id=request.member_id,
        transaction_type=request.transaction_type.upper(),
        amount=request.amount.to_money(),
        transaction_date=request.transaction_date,
        description=request.description,
        payment_method=request.payment_method,
        received_by=request.received_by
    )
    return transaction_response(transaction)


@router.get("/{transaction_id}")
async def get_transaction(transaction_id: str, system: ClubSystem = Depends(get_club_system)):
    """Get ledger entry by ID"""
    return transaction_response(system.transaction_ledger.require_transaction(transaction_id))
