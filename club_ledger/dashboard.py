"""
Dashboard aggregates.

Pure functions over already-loaded members, loans and transactions. Nothing
here reads storage or the clock unless ``now`` is omitted, so results depend
only on the arguments and never on their order.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Any

from .currency import Money, Currency
from .models import Member, Loan, Transaction, TransactionType


@dataclass(frozen=True)
class LoanDue:
    loan_id: str
    borrower_id: str
    next_payment_due: date
    monthly_due: Money
    remaining_balance: Money
    is_overdue: bool


@dataclass
class DashboardStats:
    total_member_count: int
    active_member_count: int
    inactive_member_count: int
    active_loan_count: int
    total_fund: Money
    total_disbursed: Money
    available_to_lend: Money
    average_loan_size: Money
    liquidity_ratio: Optional[Decimal]
    monthly_contributions: Money
    loan_dues: List[LoanDue] = field(default_factory=list)
    unpaid_members: List[Member] = field(default_factory=list)
    as_of: Optional[datetime] = None


def compute_dashboard_aggregates(
    members: Iterable[Member],
    loans: Iterable[Loan],
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
    currency: Currency = Currency.USD
) -> DashboardStats:
    """
    Compute the dashboard figures.

    Args:
        members: Every member
        loans: Every loan, any status
        transactions: Ledger entries (at least the current month's)
        now: Reference time for "overdue" and "this month"; defaults to UTC now
        currency: Club currency, used for zero totals

    Returns:
        DashboardStats. ``loan_dues`` is sorted by next payment due date and
        ``unpaid_members`` lists Active members with no contribution dated in
        the calendar month of ``now``; ``monthly_contributions`` sums the
        CONTRIBUTION entries of that month.
    """
    now = now or datetime.now(timezone.utc)
    today = now.date()
    members = list(members)
    loans = list(loans)
    transactions = list(transactions)

    zero = Money.zero(currency)
    active_members = [m for m in members if m.is_active]
    active_loans = [loan for loan in loans if loan.is_active]

    total_fund = sum((m.total_contribution for m in members), zero)
    total_disbursed = sum((loan.original_amount for loan in active_loans), zero)
    outstanding = sum((loan.remaining_balance for loan in active_loans), zero)
    available_to_lend = total_fund - outstanding

    average_loan_size = total_disbursed / len(active_loans) if active_loans else zero
    liquidity_ratio = None
    if not total_fund.is_zero():
        liquidity_ratio = (available_to_lend.amount / total_fund.amount).quantize(Decimal('0.0001'))

    loan_dues = sorted(
        (
            LoanDue(
                loan_id=loan.id,
                borrower_id=loan.borrower_id,
                next_payment_due=loan.next_payment_due,
                monthly_due=loan.monthly_due,
                remaining_balance=loan.remaining_balance,
                is_overdue=loan.next_payment_due < today
            )
            for loan in active_loans
        ),
        key=lambda due: (due.next_payment_due, due.loan_id)
    )

    this_month = [
        t for t in transactions
        if t.transaction_type == TransactionType.CONTRIBUTION
        and t.date.year == today.year and t.date.month == today.month
    ]
    monthly_contributions = sum((t.amount for t in this_month), zero)
    paid_this_month = {t.member_id for t in this_month}
    unpaid_members = sorted(
        (m for m in active_members if m.id not in paid_this_month),
        key=lambda m: (m.name.lower(), m.id)
    )

    return DashboardStats(
        total_member_count=len(members),
        active_member_count=len(active_members),
        inactive_member_count=len(members) - len(active_members),
        active_loan_count=len(active_loans),
        total_fund=total_fund,
        total_disbursed=total_disbursed,
        available_to_lend=available_to_lend,
        average_loan_size=average_loan_size,
        liquidity_ratio=liquidity_ratio,
        monthly_contributions=monthly_contributions,
        loan_dues=loan_dues,
        unpaid_members=unpaid_members,
        as_of=now
    )


def contributions_by_year(
    transactions: Iterable[Transaction],
    member_id: Optional[str] = None,
    currency: Currency = Currency.USD
) -> List[Dict[str, Any]]:
    """
    Yearly contribution history, most recent year first.

    Each row has ``year``, ``total`` (Money) and ``count``.
    """
    totals: Dict[int, Money] = defaultdict(lambda: Money.zero(currency))
    counts: Dict[int, int] = defaultdict(int)
    for t in transactions:
        if t.transaction_type != TransactionType.CONTRIBUTION:
            continue
        if member_id and t.member_id != member_id:
            continue
        totals[t.date.year] += t.amount
        counts[t.date.year] += 1

    return [
        {'year': year, 'total': totals[year], 'count': counts[year]}
        for year in sorted(totals, reverse=True)
    ]


def financial_report(
    transactions: Iterable[Transaction],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    currency: Currency = Currency.USD
) -> Dict[str, Any]:
    """
    Totals per transaction type over an inclusive date range.

    Every type appears in ``by_type`` even when it has no entries.
    ``net_cash_flow`` is money into the fund (contributions and repayments)
    less money out of it (disbursals, fees and distributions).
    """
    totals: Dict[TransactionType, Money] = {t: Money.zero(currency) for t in TransactionType}
    counts: Dict[TransactionType, int] = {t: 0 for t in TransactionType}
    inflow = Money.zero(currency)
    outflow = Money.zero(currency)
    for t in transactions:
        if start_date and t.date < start_date:
            continue
        if end_date and t.date > end_date:
            continue
        totals[t.transaction_type] += t.amount
        counts[t.transaction_type] += 1
        if t.is_credit:
            inflow += t.amount
        else:
            outflow += t.amount

    return {
        'start_date': start_date,
        'end_date': end_date,
        'by_type': {
            t.value: {'total': totals[t], 'count': counts[t]} for t in TransactionType
        },
        'transaction_count': sum(counts.values()),
        'total_inflow': inflow,
        'total_outflow': outflow,
        'net_cash_flow': inflow - outflow,
    }
