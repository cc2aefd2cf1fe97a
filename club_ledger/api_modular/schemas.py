"""
Pydantic schemas for API requests and responses
"""

from decimal import InvalidOperation
from datetime import date
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field

from ..currency import Money, Currency, decimal_from_string
from ..models import Member, Loan, Transaction, CommunicationLog
from ..dashboard import DashboardStats, LoanDue
from ..errors import ValidationError


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (USD, EUR, etc.)")

    def to_money(self) -> Money:
        try:
            return Money(decimal_from_string(self.amount), Currency.from_code(self.currency))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid money value {self.amount} {self.currency}: {e}")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


# Member schemas
class CreateMemberRequest(BaseModel):
    name: str
    member_id: Optional[str] = Field(None, description="Club-assigned id; generated when omitted")
    nickname: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    beneficiary: str = ""
    join_date: Optional[date] = None
    account_status: str = Field("Active", description="Active or Inactive")
    auto_pay: bool = False


class UpdateMemberRequest(BaseModel):
    name: Optional[str] = None
    nickname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    beneficiary: Optional[str] = None
    join_date: Optional[date] = None
    account_status: Optional[str] = None
    auto_pay: Optional[bool] = None


class ContributionRequest(BaseModel):
    amount: MoneyModel
    contribution_date: Optional[date] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    received_by: Optional[str] = None


class CreateCommunicationRequest(BaseModel):
    communication_type: str = Field(..., description="System, Note, Email or SMS")
    content: str
    direction: str = Field("Outbound", description="Inbound or Outbound")
    log_date: Optional[date] = None
    admin_id: Optional[str] = None


# Loan schemas
class CreateLoanRequest(BaseModel):
    borrower_id: str
    original_amount: MoneyModel
    term_months: int = Field(..., description="Repayment term in months")
    start_date: Optional[date] = None
    cosigner_id: Optional[str] = None
    issued_by: Optional[str] = None


class UpdateLoanRequest(BaseModel):
    next_payment_due: Optional[date] = None
    cosigner_id: Optional[str] = None
    issued_by: Optional[str] = None


class LoanPaymentRequest(BaseModel):
    amount: MoneyModel
    payment_date: Optional[date] = None
    payment_method: Optional[str] = None
    received_by: Optional[str] = None


class DefaultLoanRequest(BaseModel):
    user_id: Optional[str] = None


# Transaction schemas
class CreateTransactionRequest(BaseModel):
    member_id: str
    transaction_type: str = Field(..., description="CONTRIBUTION, FEE or DISTRIBUTION")
    amount: MoneyModel
    transaction_date: Optional[date] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    received_by: Optional[str] = None


# Admin schemas
class ImportRequest(BaseModel):
    format_version: int = 1
    exported_at: Optional[str] = None
    tables: Dict[str, List[Dict[str, Any]]]
    user_id: Optional[str] = None


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def member_response(member: Member) -> Dict[str, Any]:
    return {
        "id": member.id,
        "name": member.name,
        "nickname": member.nickname,
        "email": member.email,
        "phone": member.phone,
        "address": member.address,
        "city": member.city,
        "state": member.state,
        "zip_code": member.zip_code,
        "beneficiary": member.beneficiary,
        "join_date": member.join_date.isoformat(),
        "account_status": member.account_status.value,
        "total_contribution": MoneyModel.from_money(member.total_contribution).model_dump(),
        "active_loan_id": member.active_loan_id,
        "last_loan_paid_date": _iso(member.last_loan_paid_date),
        "auto_pay": member.auto_pay,
        "created_at": member.created_at.isoformat(),
        "updated_at": member.updated_at.isoformat(),
    }


def loan_response(loan: Loan) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "borrower_id": loan.borrower_id,
        "cosigner_id": loan.cosigner_id,
        "original_amount": MoneyModel.from_money(loan.original_amount).model_dump(),
        "remaining_balance": MoneyModel.from_money(loan.remaining_balance).model_dump(),
        "monthly_due": MoneyModel.from_money(loan.monthly_due).model_dump(),
        "term_months": loan.term_months,
        "start_date": loan.start_date.isoformat(),
        "next_payment_due": loan.next_payment_due.isoformat(),
        "status": loan.status.value,
        "issued_by": loan.issued_by,
        "created_at": loan.created_at.isoformat(),
    }


def transaction_response(transaction: Transaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "member_id": transaction.member_id,
        "type": transaction.transaction_type.value,
        "amount": MoneyModel.from_money(transaction.amount).model_dump(),
        "date": transaction.date.isoformat(),
        "description": transaction.description,
        "loan_id": transaction.loan_id,
        "payment_method": transaction.payment_method,
        "received_by": transaction.received_by,
        "created_at": transaction.created_at.isoformat(),
    }


def communication_response(log: CommunicationLog) -> Dict[str, Any]:
    return {
        "id": log.id,
        "member_id": log.member_id,
        "type": log.communication_type.value,
        "direction": log.direction.value,
        "content": log.content,
        "date": log.date.isoformat(),
        "admin_id": log.admin_id,
    }


def loan_due_response(due: LoanDue) -> Dict[str, Any]:
    return {
        "loan_id": due.loan_id,
        "borrower_id": due.borrower_id,
        "next_payment_due": due.next_payment_due.isoformat(),
        "monthly_due": MoneyModel.from_money(due.monthly_due).model_dump(),
        "remaining_balance": MoneyModel.from_money(due.remaining_balance).model_dump(),
        "is_overdue": due.is_overdue,
    }


def dashboard_response(stats: DashboardStats) -> Dict[str, Any]:
    return {
        "as_of": stats.as_of.isoformat() if stats.as_of else None,
        "total_member_count": stats.total_member_count,
        "active_member_count": stats.active_member_count,
        "inactive_member_count": stats.inactive_member_count,
        "active_loan_count": stats.active_loan_count,
        "total_fund": MoneyModel.from_money(stats.total_fund).model_dump(),
        "total_disbursed": MoneyModel.from_money(stats.total_disbursed).model_dump(),
        "available_to_lend": MoneyModel.from_money(stats.available_to_lend).model_dump(),
        "average_loan_size": MoneyModel.from_money(stats.average_loan_size).model_dump(),
        "liquidity_ratio": str(stats.liquidity_ratio) if stats.liquidity_ratio is not None else None,
        "monthly_contributions": MoneyModel.from_money(stats.monthly_contributions).model_dump(),
        "loan_dues": [loan_due_response(due) for due in stats.loan_dues],
        "unpaid_members": [
            {"id": m.id, "name": m.name, "nickname": m.nickname} for m in stats.unpaid_members
        ],
    }


def financial_report_response(report: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "start_date": report["start_date"].isoformat() if report["start_date"] else None,
        "end_date": report["end_date"].isoformat() if report["end_date"] else None,
        "by_type": {
            name: {"total": MoneyModel.from_money(row["total"]).model_dump(), "count": row["count"]}
            for name, row in report["by_type"].items()
        },
        "transaction_count": report["transaction_count"],
        "total_inflow": MoneyModel.from_money(report["total_inflow"]).model_dump(),
        "total_outflow": MoneyModel.from_money(report["total_outflow"]).model_dump(),
        "net_cash_flow": MoneyModel.from_money(report["net_cash_flow"]).model_dump(),
    }
