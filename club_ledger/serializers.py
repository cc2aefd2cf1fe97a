"""
Storage serialization boundary

Explicit record <-> storage dict conversions, one pair per entity. Money is
stored as ``<field>_amount`` (Decimal string) plus ``<field>_currency``;
dates and datetimes as ISO strings; enums by value.
"""

from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Any, Dict, Optional

from .currency import Money, Currency
from .models import (
    Member, MemberStatus, Loan, LoanStatus, Transaction, TransactionType,
    CommunicationLog, CommunicationType, CommunicationDirection
)


def _money_fields(prefix: str, money: Money) -> Dict[str, str]:
    return {
        f'{prefix}_amount': str(money.amount),
        f'{prefix}_currency': money.currency.code,
    }


def _get_money(data: Dict[str, Any], prefix: str) -> Money:
    raw = data[f'{prefix}_amount']
    try:
        amount = Decimal(raw)
    except (InvalidOperation, TypeError):
        raise ValueError(f"{prefix}_amount is not a number: {raw!r}")
    if not amount.is_finite():
        raise ValueError(f"{prefix}_amount is not finite: {raw!r}")
    return Money(amount, Currency[data[f'{prefix}_currency']])


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _get_date(data: Dict[str, Any], field: str) -> Optional[date]:
    value = data.get(field)
    return date.fromisoformat(value) if value else None


def _timestamps(data: Dict[str, Any]) -> Dict[str, datetime]:
    return {
        'created_at': datetime.fromisoformat(data['created_at']),
        'updated_at': datetime.fromisoformat(data['updated_at']),
    }


def member_to_dict(member: Member) -> Dict[str, Any]:
    result = {
        'id': member.id,
        'created_at': member.created_at.isoformat(),
        'updated_at': member.updated_at.isoformat(),
        'name': member.name,
        'nickname': member.nickname,
        'email': member.email,
        'phone': member.phone,
        'address': member.address,
        'city': member.city,
        'state': member.state,
        'zip_code': member.zip_code,
        'beneficiary': member.beneficiary,
        'join_date': member.join_date.isoformat(),
        'account_status': member.account_status.value,
        'active_loan_id': member.active_loan_id,
        'last_loan_paid_date': _iso(member.last_loan_paid_date),
        'auto_pay': member.auto_pay,
    }
    result.update(_money_fields('total_contribution', member.total_contribution))
    return result


def member_from_dict(data: Dict[str, Any]) -> Member:
    return Member(
        id=data['id'],
        **_timestamps(data),
        name=data['name'],
        nickname=data.get('nickname') or "",
        email=data.get('email') or "",
        phone=data.get('phone') or "",
        address=data.get('address') or "",
        city=data.get('city'),
        state=data.get('state'),
        zip_code=data.get('zip_code'),
        beneficiary=data.get('beneficiary') or "",
        join_date=date.fromisoformat(data['join_date']),
        account_status=MemberStatus(data['account_status']),
        total_contribution=_get_money(data, 'total_contribution'),
        active_loan_id=data.get('active_loan_id'),
        last_loan_paid_date=_get_date(data, 'last_loan_paid_date'),
        auto_pay=bool(data.get('auto_pay', False)),
    )


def loan_to_dict(loan: Loan) -> Dict[str, Any]:
    result = {
        'id': loan.id,
        'created_at': loan.created_at.isoformat(),
        'updated_at': loan.updated_at.isoformat(),
        'borrower_id': loan.borrower_id,
        'cosigner_id': loan.cosigner_id,
        'term_months': loan.term_months,
        'status': loan.status.value,
        'start_date': loan.start_date.isoformat(),
        'next_payment_due': loan.next_payment_due.isoformat(),
        'issued_by': loan.issued_by,
    }
    result.update(_money_fields('original_amount', loan.original_amount))
    result.update(_money_fields('remaining_balance', loan.remaining_balance))
    return result


def loan_from_dict(data: Dict[str, Any]) -> Loan:
    return Loan(
        id=data['id'],
        **_timestamps(data),
        borrower_id=data['borrower_id'],
        cosigner_id=data.get('cosigner_id'),
        original_amount=_get_money(data, 'original_amount'),
        remaining_balance=_get_money(data, 'remaining_balance'),
        term_months=int(data['term_months']),
        status=LoanStatus(data['status']),
        start_date=date.fromisoformat(data['start_date']),
        next_payment_due=date.fromisoformat(data['next_payment_due']),
        issued_by=data.get('issued_by'),
    )


def transaction_to_dict(transaction: Transaction) -> Dict[str, Any]:
    result = {
        'id': transaction.id,
        'created_at': transaction.created_at.isoformat(),
        'updated_at': transaction.updated_at.isoformat(),
        'member_id': transaction.member_id,
        'type': transaction.transaction_type.value,
        'date': transaction.date.isoformat(),
        'description': transaction.description,
        'loan_id': transaction.loan_id,
        'payment_method': transaction.payment_method,
        'received_by': transaction.received_by,
    }
    result.update(_money_fields('amount', transaction.amount))
    return result


def transaction_from_dict(data: Dict[str, Any]) -> Transaction:
    return Transaction(
        id=data['id'],
        **_timestamps(data),
        member_id=data['member_id'],
        transaction_type=TransactionType(data['type']),
        amount=_get_money(data, 'amount'),
        date=date.fromisoformat(data['date']),
        description=data.get('description') or "",
        loan_id=data.get('loan_id'),
        payment_method=data.get('payment_method'),
        received_by=data.get('received_by'),
    )


def communication_to_dict(log: CommunicationLog) -> Dict[str, Any]:
    return {
        'id': log.id,
        'created_at': log.created_at.isoformat(),
        'updated_at': log.updated_at.isoformat(),
        'member_id': log.member_id,
        'type': log.communication_type.value,
        'content': log.content,
        'date': log.date.isoformat(),
        'direction': log.direction.value,
        'admin_id': log.admin_id,
    }


def communication_from_dict(data: Dict[str, Any]) -> CommunicationLog:
    return CommunicationLog(
        id=data['id'],
        **_timestamps(data),
        member_id=data['member_id'],
        communication_type=CommunicationType(data['type']),
        content=data['content'],
        date=date.fromisoformat(data['date']),
        direction=CommunicationDirection(data['direction']),
        admin_id=data.get('admin_id'),
    )
