"""
Test suite for dashboard aggregates

Tests fund totals, loan dues and unpaid-this-month detection, and that the
computation is pure and independent of input order.
"""

import random
from decimal import Decimal
from datetime import date, datetime, timezone

from club_ledger.currency import Money, Currency
from club_ledger.models import (
    Member, MemberStatus, Loan, LoanStatus, Transaction, TransactionType
)
from club_ledger.dashboard import (
    compute_dashboard_aggregates, contributions_by_year, financial_report
)


NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def usd(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.USD)


def member(member_id, total, status=MemberStatus.ACTIVE, name=None):
    return Member(
        id=member_id, created_at=NOW, updated_at=NOW, name=name or member_id,
        total_contribution=usd(total), join_date=date(2023, 1, 1), account_status=status
    )


def loan(loan_id, borrower_id, original, remaining, due, status=LoanStatus.ACTIVE, term=10):
    return Loan(
        id=loan_id, created_at=NOW, updated_at=NOW, borrower_id=borrower_id,
        original_amount=usd(original), remaining_balance=usd(remaining), term_months=term,
        start_date=date(2023, 6, 1), next_payment_due=due, status=status
    )


def contribution(transaction_id, member_id, amount, on_date):
    return Transaction(
        id=transaction_id, created_at=NOW, updated_at=NOW, member_id=member_id,
        transaction_type=TransactionType.CONTRIBUTION, amount=usd(amount), date=on_date
    )


class TestDashboardAggregates:

    def setup_method(self):
        self.members = [
            member("M001", 1500, name="Ada"),
            member("M002", 800, name="Ben"),
            member("M003", 700, name="Chi"),
            member("M004", 200, status=MemberStatus.INACTIVE, name="Dee"),
        ]
        self.loans = [
            loan("L1", "M001", 1200, 700, date(2024, 3, 1)),
            loan("L2", "M002", 600, 600, date(2024, 4, 1), term=3),
            loan("L3", "M003", 1000, 0, date(2024, 1, 1), status=LoanStatus.PAID),
            loan("L4", "M004", 500, 300, date(2023, 12, 1), status=LoanStatus.DEFAULTED),
        ]
        self.transactions = [
            contribution("T1", "M001", 100, date(2024, 3, 2)),
            contribution("T2", "M002", 100, date(2024, 2, 28)),
            contribution("T3", "M003", 100, date(2023, 3, 10)),
            Transaction(
                id="T4", created_at=NOW, updated_at=NOW, member_id="M003",
                transaction_type=TransactionType.FEE, amount=usd(5), date=date(2024, 3, 3)
            ),
        ]

    def compute(self, members=None, loans=None, transactions=None):
        return compute_dashboard_aggregates(
            self.members if members is None else members,
            self.loans if loans is None else loans,
            self.transactions if transactions is None else transactions,
            now=NOW
        )

    def test_counts(self):
        stats = self.compute()
        assert stats.total_member_count == 4
        assert stats.active_member_count == 3
        assert stats.inactive_member_count == 1
        assert stats.active_loan_count == 2

    def test_fund_figures(self):
        stats = self.compute()
        assert stats.total_fund == usd(3200)
        assert stats.total_disbursed == usd(1800)
        assert stats.available_to_lend == usd(3200 - 700 - 600)
        assert stats.average_loan_size == usd(900)
        assert stats.liquidity_ratio == Decimal('0.5938')

    def test_loan_dues(self):
        dues = self.compute().loan_dues
        assert [d.loan_id for d in dues] == ["L1", "L2"]
        assert dues[0].is_overdue
        assert not dues[1].is_overdue
        assert dues[0].monthly_due == usd(120)
        assert dues[1].monthly_due == usd(200)

    def test_due_today_is_not_overdue(self):
        stats = self.compute(loans=[loan("L9", "M001", 100, 100, NOW.date())])
        assert not stats.loan_dues[0].is_overdue

    def test_unpaid_members(self):
        unpaid = self.compute().unpaid_members
        # M002 paid last month, M003 paid only a fee this month, M004 is inactive
        assert [m.id for m in unpaid] == ["M002", "M003"]

    def test_monthly_contributions(self):
        # Only T1 is a contribution dated in March 2024; T4 is a fee
        assert self.compute().monthly_contributions == usd(100)
        assert compute_dashboard_aggregates([], [], [], now=NOW).monthly_contributions == usd(0)

    def test_empty_club(self):
        stats = compute_dashboard_aggregates([], [], [], now=NOW)
        assert stats.total_fund == Money.zero(Currency.USD)
        assert stats.average_loan_size == Money.zero(Currency.USD)
        assert stats.liquidity_ratio is None
        assert stats.loan_dues == []
        assert stats.unpaid_members == []

    def test_pure_and_repeatable(self):
        assert self.compute() == self.compute()

    def test_order_independent(self):
        expected = self.compute()
        rng = random.Random(7)
        for _ in range(5):
            members = self.members[:]
            loans = self.loans[:]
            transactions = self.transactions[:]
            rng.shuffle(members)
            rng.shuffle(loans)
            rng.shuffle(transactions)
            assert self.compute(members, loans, transactions) == expected

    def test_inputs_not_modified(self):
        members_before = list(self.members)
        self.compute()
        assert self.members == members_before
        assert self.members[0].total_contribution == usd(1500)

    def test_accepts_iterators(self):
        stats = compute_dashboard_aggregates(
            iter(self.members), iter(self.loans), iter(self.transactions), now=NOW
        )
        assert stats == self.compute()


class TestContributionsByYear:

    def test_yearly_totals(self):
        transactions = [
            contribution("T1", "M001", 100, date(2023, 1, 5)),
            contribution("T2", "M001", 150, date(2023, 2, 5)),
            contribution("T3", "M001", 200, date(2024, 1, 5)),
            contribution("T4", "M002", 999, date(2024, 1, 5)),
        ]
        history = contributions_by_year(transactions, member_id="M001")

        assert history == [
            {"year": 2024, "total": usd(200), "count": 1},
            {"year": 2023, "total": usd(250), "count": 2},
        ]

    def test_club_wide(self):
        transactions = [
            contribution("T1", "M001", 100, date(2024, 1, 5)),
            contribution("T2", "M002", 50, date(2024, 3, 5)),
        ]
        assert contributions_by_year(transactions) == [
            {"year": 2024, "total": usd(150), "count": 2}
        ]

    def test_no_contributions(self):
        assert contributions_by_year([]) == []


def entry(transaction_id, transaction_type, amount, on_date, member_id="M001"):
    return Transaction(
        id=transaction_id, created_at=NOW, updated_at=NOW, member_id=member_id,
        transaction_type=transaction_type, amount=usd(amount), date=on_date
    )


class TestFinancialReport:

    def setup_method(self):
        self.transactions = [
            entry("T1", TransactionType.CONTRIBUTION, 500, date(2024, 1, 5)),
            entry("T2", TransactionType.CONTRIBUTION, 300, date(2024, 2, 5), member_id="M002"),
            entry("T3", TransactionType.LOAN_DISBURSAL, 400, date(2024, 2, 10)),
            entry("T4", TransactionType.LOAN_REPAYMENT, 100, date(2024, 3, 1)),
            entry("T5", TransactionType.FEE, 10, date(2024, 3, 31)),
            entry("T6", TransactionType.DISTRIBUTION, 50, date(2024, 4, 1)),
        ]

    def test_totals_per_type(self):
        report = financial_report(self.transactions)

        assert report["by_type"]["CONTRIBUTION"] == {"total": usd(800), "count": 2}
        assert report["by_type"]["LOAN_DISBURSAL"] == {"total": usd(400), "count": 1}
        assert report["transaction_count"] == 6
        assert report["total_inflow"] == usd(900)
        assert report["total_outflow"] == usd(460)
        assert report["net_cash_flow"] == usd(440)

    def test_date_range_is_inclusive(self):
        report = financial_report(self.transactions, date(2024, 2, 5), date(2024, 3, 31))

        assert report["transaction_count"] == 4
        assert report["by_type"]["CONTRIBUTION"] == {"total": usd(300), "count": 1}
        assert report["by_type"]["DISTRIBUTION"] == {"total": usd(0), "count": 0}
        assert report["net_cash_flow"] == usd(300 + 100 - 400 - 10)

    def test_empty_range(self):
        report = financial_report(self.transactions, date(2025, 1, 1), date(2025, 12, 31))
        assert report["transaction_count"] == 0
        assert set(report["by_type"]) == {t.value for t in TransactionType}
        assert report["net_cash_flow"] == usd(0)
