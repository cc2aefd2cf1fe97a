"""
Member management endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import ClubSystem, get_club_system
from .schemas import (
    CreateMemberRequest,
    UpdateMemberRequest,
    ContributionRequest,
    CreateCommunicationRequest,
    MoneyModel,
    member_response,
    loan_response,
    transaction_response,
    communication_response,
)
from ..dashboard import contributions_by_year


router = APIRouter()


@router.get("")
async def list_members(
    q: Optional[str] = None,
    status: Optional[str] = None,
    joined_from: Optional[date] = None,
    joined_to: Optional[date] = None,
    system: ClubSystem = Depends(get_club_system)
):
    """List members, optionally searched and filtered"""
    members = system.member_manager.search_members(
        query=q, status=status, joined_from=joined_from, joined_to=joined_to
    )
    return {"members": [member_response(m) for m in members]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_member(
    request: CreateMemberRequest,
    system: ClubSystem = Depends(get_club_system)
):
    """Register a new member"""
    member = system.member_manager.create_member(
        name=request.name,
        member_id=request.member_id,
        nickname=request.nickname,
        email=request.email,
        phone=request.phone,
        address=request.address,
        city=request.city,
        state=request.state,
        zip_code=request.zip_code,
        beneficiary=request.beneficiary,
        join_date=request.join_date,
        account_status=request.account_status,
        auto_pay=request.auto_pay
    )
    return member_response(member)


@router.get("/{member_id}")
async def get_member(member_id: str, system: ClubSystem = Depends(get_club_system)):
    """Get member by ID"""
    return member_response(system.member_manager.require_member(member_id))


@router.put("/{member_id}")
async def update_member(
    member_id: str,
    request: UpdateMemberRequest,
    system: ClubSystem = Depends(get_club_system)
):
    """Update member profile or account status"""
    member = system.member_manager.update_member(
        member_id, **request.model_dump(exclude_unset=True)
    )
    return member_response(member)


@router.delete("/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_member(member_id: str, system: ClubSystem = Depends(get_club_system)):
    """Delete a member without an active loan"""
    system.member_manager.delete_member(member_id)


@router.get("/{member_id}/loans")
async def get_member_loans(member_id: str, system: ClubSystem = Depends(get_club_system)):
    """Loans where the member is borrower or cosigner"""
    system.member_manager.require_member(member_id)
    loans = system.loan_manager.get_member_loans(member_id)
    return {"loans": [loan_response(loan) for loan in loans]}


@router.get("/{member_id}/transactions")
async def get_member_transactions(member_id: str, system: ClubSystem = Depends(get_club_system)):
    """Member ledger history, newest first"""
    system.member_manager.require_member(member_id)
    transactions = system.transaction_ledger.list_transactions(member_id=member_id)
    return {"transactions": [transaction_response(t) for t in transactions]}


@router.post("/{member_id}/contributions", status_code=status.HTTP_201_CREATED)
async def record_contribution(
    member_id: str,
    request: ContributionRequest,
    system: ClubSystem = Depends(get_club_system)
):
    """Record a contribution from the member"""
    transaction = system.ledger.record_contribution(
        member_id,
        request.amount.to_money(),
        contribution_date=request.contribution_date,
        description=request.description,
        payment_method=request.payment_method,
        received_by=request.received_by
    )
    member = system.member_manager.require_member(member_id)
    return {
        "transaction": transaction_response(transaction),
        "total_contribution": MoneyModel.from_money(member.total_contribution).model_dump()
    }


@router.get("/{member_id}/contributions/yearly")
async def get_yearly_contributions(member_id: str, system: ClubSystem = Depends(get_club_system)):
    """Contribution totals per year for the member"""
    system.member_manager.require_member(member_id)
    transactions = system.transaction_ledger.list_transactions(member_id=member_id)
    history = contributions_by_year(transactions, member_id=member_id, currency=system.currency)
    return {
        "member_id": member_id,
        "years": [
            {
                "year": row["year"],
                "total": MoneyModel.from_money(row["total"]).model_dump(),
                "count": row["count"]
            }
            for row in history
        ]
    }


@router.get("/{member_id}/communications")
async def get_member_communications(member_id: str, system: ClubSystem = Depends(get_club_system)):
    """Communication history for the member"""
    logs = system.communication_manager.get_member_communications(member_id)
    return {"communications": [communication_response(log) for log in logs]}


@router.post("/{member_id}/communications", status_code=status.HTTP_201_CREATED)
async def log_member_communication(
    member_id: str,
    request: CreateCommunicationRequest,
    system: ClubSystem = Depends(get_club_system)
):
    """Record a note, email, SMS or system message for the member"""
    log = system.communication_manager.log_communication(
        member_id=member_id,
        communication_type=request.communication_type,
        content=request.content,
        direction=request.direction,
        log_date=request.log_date,
        admin_id=request.admin_id
    )
    return communication_response(log)
