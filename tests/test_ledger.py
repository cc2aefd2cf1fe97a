"""
Test suite for the ledger consistency engine

Tests contributions, loan origination, repayments, defaults, the overpayment
policies, rollback of failed units of work, concurrent payments and the
consistency check / reconcile repair path.
"""

import pytest
import threading
from decimal import Decimal
from datetime import date

from club_ledger.currency import Money, Currency
from club_ledger.storage import InMemoryStorage, SQLiteStorage
from club_ledger.audit import AuditTrail, AuditEventType
from club_ledger.members import MemberManager
from club_ledger.loans import LoanManager
from club_ledger.transactions import TransactionLedger
from club_ledger.ledger import LedgerEngine
from club_ledger.models import LoanStatus, TransactionType
from club_ledger.errors import (
    ValidationError, NotFoundError, ConflictError, InvalidStateError
)


def usd(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.USD)


class LedgerTestCase:
    """Wires a ledger engine over fresh storage"""

    overpayment_policy = "absorb"

    def make_storage(self):
        return InMemoryStorage()

    def setup_method(self):
        self.storage = self.make_storage()
        self.audit_trail = AuditTrail(self.storage)
        self.member_manager = MemberManager(self.storage, self.audit_trail)
        self.loan_manager = LoanManager(self.storage, self.member_manager, self.audit_trail)
        self.transaction_ledger = TransactionLedger(self.storage)
        self.engine = LedgerEngine(
            self.storage, self.member_manager, self.loan_manager,
            self.transaction_ledger, self.audit_trail,
            currency=Currency.USD,
            overpayment_policy=self.overpayment_policy
        )
        self.member_manager.create_member(name="Ada Obi", member_id="M001", join_date=date(2023, 1, 1))
        self.member_manager.create_member(name="Ben Kamau", member_id="M002", join_date=date(2023, 1, 1))

    def transactions(self, transaction_type=None, member_id=None):
        return self.transaction_ledger.list_transactions(
            member_id=member_id, transaction_type=transaction_type
        )


class TestRecordContribution(LedgerTestCase):

    def test_contribution_scenario(self):
        """M001 contributes 500 on 2024-01-05"""
        transaction = self.engine.record_contribution("M001", 500, date(2024, 1, 5))

        member = self.member_manager.get_member("M001")
        assert member.total_contribution == usd(500)

        contributions = self.transactions(TransactionType.CONTRIBUTION)
        assert len(contributions) == 1
        assert contributions[0].id == transaction.id
        assert contributions[0].amount == usd(500)
        assert contributions[0].member_id == "M001"
        assert contributions[0].date == date(2024, 1, 5)

    def test_total_grows_by_each_amount(self):
        amounts = ["100.10", "250", "0.01", "1000.99"]
        expected = usd(0)
        for amount in amounts:
            before = self.member_manager.get_member("M001").total_contribution
            self.engine.record_contribution("M001", amount)
            after = self.member_manager.get_member("M001").total_contribution
            assert after == before + usd(amount)
            expected = expected + usd(amount)

        assert self.transaction_ledger.sum_contributions("M001") == expected
        assert len(self.transactions(TransactionType.CONTRIBUTION)) == len(amounts)

    def test_accepts_money_in_club_currency(self):
        self.engine.record_contribution("M001", usd("75.50"))
        assert self.member_manager.get_member("M001").total_contribution == usd("75.50")

    @pytest.mark.parametrize("amount", [0, -5, "0.00", "-1"])
    def test_non_positive_amount(self, amount):
        with pytest.raises(ValidationError):
            self.engine.record_contribution("M001", amount)
        assert self.transactions() == []

    @pytest.mark.parametrize("amount", ["12abc34", "1,5", "1O0", "1e3", "NaN"])
    def test_malformed_amount_rejected(self, amount):
        with pytest.raises(ValidationError, match="Invalid amount"):
            self.engine.record_contribution("M001", amount)
        assert self.member_manager.get_member("M001").total_contribution == usd(0)
        assert self.transactions() == []

    def test_grouped_amount_string_accepted(self):
        self.engine.record_contribution("M001", "$1,200.50")
        assert self.member_manager.get_member("M001").total_contribution == usd("1200.50")

    def test_float_and_foreign_currency_rejected(self):
        with pytest.raises(ValidationError):
            self.engine.record_contribution("M001", 10.5)
        with pytest.raises(ValidationError, match="USD"):
            self.engine.record_contribution("M001", Money(Decimal('10'), Currency.EUR))

    def test_unknown_member(self):
        with pytest.raises(NotFoundError):
            self.engine.record_contribution("M404", 500)
        assert self.transactions() == []

    def test_inactive_member(self):
        self.member_manager.update_member("M002", account_status="Inactive")
        with pytest.raises(InvalidStateError):
            self.engine.record_contribution("M002", 500)
        assert self.member_manager.get_member("M002").total_contribution == usd(0)
        assert self.transactions() == []

    def test_contribution_is_audited(self):
        transaction = self.engine.record_contribution("M001", 500)
        events = self.audit_trail.get_events_for_entity("member", "M001")
        assert events[-1].event_type == AuditEventType.CONTRIBUTION_RECORDED
        assert events[-1].metadata["transaction_id"] == transaction.id


class TestRecordTransaction(LedgerTestCase):

    def test_fee_and_distribution_leave_totals_alone(self):
        self.engine.record_contribution("M001", 500)
        fee = self.engine.record_transaction("M001", "FEE", 25, description="Late fee")
        distribution = self.engine.record_transaction("M001", TransactionType.DISTRIBUTION, 40)

        assert fee.transaction_type == TransactionType.FEE
        assert distribution.transaction_type == TransactionType.DISTRIBUTION
        assert self.member_manager.get_member("M001").total_contribution == usd(500)
        assert len(self.transactions(member_id="M001")) == 3

    def test_contribution_type_updates_total(self):
        self.engine.record_transaction("M001", "CONTRIBUTION", 120)
        assert self.member_manager.get_member("M001").total_contribution == usd(120)

    @pytest.mark.parametrize("transaction_type", ["LOAN_DISBURSAL", "LOAN_REPAYMENT"])
    def test_loan_entries_cannot_be_added_directly(self, transaction_type):
        with pytest.raises(ValidationError):
            self.engine.record_transaction("M001", transaction_type, 100)
        assert self.transactions() == []

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            self.engine.record_transaction("M001", "BONUS", 100)


class TestOriginateLoan(LedgerTestCase):

    def test_originate_loan(self):
        loan = self.engine.originate_loan("M001", 1200, 12, start_date=date(2024, 1, 31),
                                          cosigner_id="M002", issued_by="admin")

        assert loan.status == LoanStatus.ACTIVE
        assert loan.original_amount == usd(1200)
        assert loan.remaining_balance == usd(1200)
        assert loan.next_payment_due == date(2024, 2, 29)
        assert loan.monthly_due == usd(100)
        assert self.member_manager.get_member("M001").active_loan_id == loan.id

        disbursals = self.transactions(TransactionType.LOAN_DISBURSAL)
        assert len(disbursals) == 1
        assert disbursals[0].amount == usd(1200)
        assert disbursals[0].loan_id == loan.id
        assert disbursals[0].member_id == "M001"

    def test_second_active_loan_conflict(self):
        """Borrower with an active loan cannot take another; nothing is written"""
        self.engine.originate_loan("M001", 1200, 12)
        loans_before = self.loan_manager.list_loans()
        transactions_before = self.transactions()

        with pytest.raises(ConflictError):
            self.engine.originate_loan("M001", 500, 6)

        assert len(self.loan_manager.list_loans()) == len(loans_before)
        assert len(self.transactions()) == len(transactions_before)

    def test_conflict_from_active_loan_query(self):
        """An ACTIVE loan blocks a new one even if active_loan_id was lost"""
        loan = self.engine.originate_loan("M001", 1200, 12)
        member = self.member_manager.get_member("M001")
        member.active_loan_id = None
        self.member_manager.save_member(member)

        with pytest.raises(ConflictError) as excinfo:
            self.engine.originate_loan("M001", 500, 6)
        assert loan.id in excinfo.value.details["loan_ids"]

    def test_conflict_from_pointer_alone(self):
        member = self.member_manager.get_member("M001")
        member.active_loan_id = "LN-GHOST"
        self.member_manager.save_member(member)

        with pytest.raises(ConflictError):
            self.engine.originate_loan("M001", 500, 6)
        assert self.loan_manager.list_loans() == []
        assert self.transactions() == []

    def test_new_loan_after_payoff(self):
        first = self.engine.originate_loan("M001", 300, 3)
        self.engine.apply_loan_payment(first.id, 300)

        second = self.engine.originate_loan("M001", 600, 6)
        assert self.member_manager.get_member("M001").active_loan_id == second.id

    @pytest.mark.parametrize("amount,term", [(0, 12), (-100, 12), (1000, 0), (1000, -3), (1000, "12")])
    def test_invalid_amount_or_term(self, amount, term):
        with pytest.raises(ValidationError):
            self.engine.originate_loan("M001", amount, term)
        assert self.loan_manager.list_loans() == []

    def test_unknown_borrower(self):
        with pytest.raises(NotFoundError):
            self.engine.originate_loan("M404", 1000, 12)

    def test_bad_cosigner(self):
        with pytest.raises(ValidationError):
            self.engine.originate_loan("M001", 1000, 12, cosigner_id="M001")
        with pytest.raises(ValidationError):
            self.engine.originate_loan("M001", 1000, 12, cosigner_id="M404")
        assert self.member_manager.get_member("M001").active_loan_id is None
        assert self.transactions() == []


class TestApplyLoanPayment(LedgerTestCase):

    def setup_method(self):
        super().setup_method()
        self.loan = self.engine.originate_loan("M001", 1200, 12, start_date=date(2024, 1, 1))

    def test_full_payment_scenario(self):
        """L1 of 1200 paid with 1200"""
        loan = self.engine.apply_loan_payment(self.loan.id, 1200, payment_date=date(2024, 6, 1))

        assert loan.remaining_balance == usd(0)
        assert loan.status == LoanStatus.PAID
        borrower = self.member_manager.get_member("M001")
        assert borrower.active_loan_id is None
        assert borrower.last_loan_paid_date == date(2024, 6, 1)

        stored = self.loan_manager.get_loan(self.loan.id)
        assert stored.status == LoanStatus.PAID

    def test_overpayment_floors_balance_at_zero(self):
        """L2 with 100 left, paid with 150"""
        self.engine.apply_loan_payment(self.loan.id, 1100)
        loan = self.engine.apply_loan_payment(self.loan.id, 150)

        assert loan.remaining_balance == usd(0)
        assert loan.status == LoanStatus.PAID

        repayments = self.transactions(TransactionType.LOAN_REPAYMENT)
        overpaid = [t for t in repayments if t.amount == usd(150)][0]
        assert "absorbed" in overpaid.description
        assert self.loan.id in overpaid.description

    @pytest.mark.parametrize("amount", ["0.01", "100", "599.99", "1199.99"])
    def test_partial_payment(self, amount):
        loan = self.engine.apply_loan_payment(self.loan.id, amount)

        assert loan.status == LoanStatus.ACTIVE
        assert loan.remaining_balance == usd(1200) - usd(amount)
        assert self.member_manager.get_member("M001").active_loan_id == self.loan.id

    def test_payment_appends_repayment(self):
        self.engine.apply_loan_payment(self.loan.id, 200, payment_method="cash", received_by="admin")

        repayments = self.transactions(TransactionType.LOAN_REPAYMENT)
        assert len(repayments) == 1
        assert repayments[0].amount == usd(200)
        assert repayments[0].member_id == "M001"
        assert repayments[0].loan_id == self.loan.id
        assert repayments[0].description == f"Loan payment for {self.loan.id}"
        assert repayments[0].payment_method == "cash"

    def test_payment_does_not_touch_contributions(self):
        self.engine.apply_loan_payment(self.loan.id, 200)
        assert self.member_manager.get_member("M001").total_contribution == usd(0)

    def test_payment_on_paid_loan(self):
        self.engine.apply_loan_payment(self.loan.id, 1200)
        with pytest.raises(InvalidStateError):
            self.engine.apply_loan_payment(self.loan.id, 10)
        assert len(self.transactions(TransactionType.LOAN_REPAYMENT)) == 1

    def test_payment_on_defaulted_loan(self):
        self.engine.mark_loan_defaulted(self.loan.id)
        with pytest.raises(InvalidStateError):
            self.engine.apply_loan_payment(self.loan.id, 10)

    def test_unknown_loan(self):
        with pytest.raises(NotFoundError):
            self.engine.apply_loan_payment("LN-404", 10)

    def test_non_positive_payment(self):
        with pytest.raises(ValidationError):
            self.engine.apply_loan_payment(self.loan.id, 0)
        assert self.loan_manager.get_loan(self.loan.id).remaining_balance == usd(1200)

    @pytest.mark.parametrize("amount", ["12abc34", "1,5", "1O0"])
    def test_malformed_payment_rejected(self, amount):
        with pytest.raises(ValidationError):
            self.engine.apply_loan_payment(self.loan.id, amount)
        assert self.loan_manager.get_loan(self.loan.id).remaining_balance == usd(1200)
        assert self.transactions(TransactionType.LOAN_REPAYMENT) == []

    def test_payoff_is_audited(self):
        self.engine.apply_loan_payment(self.loan.id, 1200)
        types = [e.event_type for e in self.audit_trail.get_events_for_entity("loan", self.loan.id)]
        assert types == [
            AuditEventType.LOAN_ORIGINATED,
            AuditEventType.LOAN_PAYMENT_APPLIED,
            AuditEventType.LOAN_PAID_OFF,
        ]
        assert self.audit_trail.verify_integrity()["valid"]


class TestRejectOverpaymentPolicy(LedgerTestCase):

    overpayment_policy = "reject"

    def test_overpayment_rejected_and_nothing_written(self):
        loan = self.engine.originate_loan("M001", 100, 2)
        with pytest.raises(ValidationError, match="exceeds remaining balance"):
            self.engine.apply_loan_payment(loan.id, 150)

        stored = self.loan_manager.get_loan(loan.id)
        assert stored.remaining_balance == usd(100)
        assert stored.status == LoanStatus.ACTIVE
        assert self.transactions(TransactionType.LOAN_REPAYMENT) == []

    def test_exact_payoff_still_allowed(self):
        loan = self.engine.originate_loan("M001", 100, 2)
        loan = self.engine.apply_loan_payment(loan.id, 100)
        assert loan.status == LoanStatus.PAID

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            LedgerEngine(self.storage, self.member_manager, self.loan_manager,
                         self.transaction_ledger, self.audit_trail, overpayment_policy="refund")


class TestSingleActiveLoan(LedgerTestCase):
    """No member ever holds two ACTIVE loans, whatever the call sequence"""

    def assert_single_active_loan(self):
        for member in self.member_manager.list_members():
            active = self.loan_manager.get_active_loans(borrower_id=member.id)
            assert len(active) <= 1
            if active:
                assert member.active_loan_id == active[0].id
            else:
                assert member.active_loan_id is None

    def test_call_sequences(self):
        sequence = [
            ("originate", "M001", 1000),
            ("originate", "M001", 500),
            ("pay", "M001", 400),
            ("originate", "M002", 300),
            ("pay", "M001", 600),
            ("originate", "M001", 200),
            ("pay", "M002", 1000),
            ("originate", "M002", 800),
            ("originate", "M002", 100),
        ]
        for action, member_id, amount in sequence:
            try:
                if action == "originate":
                    self.engine.originate_loan(member_id, amount, 4)
                else:
                    active_loan_id = self.member_manager.get_member(member_id).active_loan_id
                    if active_loan_id:
                        self.engine.apply_loan_payment(active_loan_id, amount)
            except ConflictError:
                pass
            self.assert_single_active_loan()

        assert self.engine.verify_consistency().is_consistent


class TestMarkLoanDefaulted(LedgerTestCase):

    def test_default_releases_borrower(self):
        loan = self.engine.originate_loan("M001", 1000, 10)
        self.engine.apply_loan_payment(loan.id, 300)

        defaulted = self.engine.mark_loan_defaulted(loan.id, user_id="admin")

        assert defaulted.status == LoanStatus.DEFAULTED
        assert defaulted.remaining_balance == usd(700)
        assert self.member_manager.get_member("M001").active_loan_id is None
        assert self.engine.verify_consistency().is_consistent

    def test_default_is_terminal(self):
        loan = self.engine.originate_loan("M001", 1000, 10)
        self.engine.mark_loan_defaulted(loan.id)
        with pytest.raises(InvalidStateError):
            self.engine.mark_loan_defaulted(loan.id)

    def test_cannot_default_paid_loan(self):
        loan = self.engine.originate_loan("M001", 100, 1)
        self.engine.apply_loan_payment(loan.id, 100)
        with pytest.raises(InvalidStateError):
            self.engine.mark_loan_defaulted(loan.id)


class TestRollback(LedgerTestCase):
    """A failure part-way through an operation leaves no partial writes"""

    def test_payment_rolled_back_when_ledger_append_fails(self, monkeypatch):
        loan = self.engine.originate_loan("M001", 1200, 12)
        audit_count = self.audit_trail.count_events()

        def failing_append(transaction):
            raise RuntimeError("disk full")

        monkeypatch.setattr(self.transaction_ledger, "append", failing_append)
        with pytest.raises(RuntimeError):
            self.engine.apply_loan_payment(loan.id, 1200)

        stored = self.loan_manager.get_loan(loan.id)
        assert stored.remaining_balance == usd(1200)
        assert stored.status == LoanStatus.ACTIVE
        assert self.member_manager.get_member("M001").active_loan_id == loan.id
        assert self.member_manager.get_member("M001").last_loan_paid_date is None
        assert self.audit_trail.count_events() == audit_count

    def test_contribution_rolled_back_when_audit_fails(self, monkeypatch):
        def failing_log_event(*args, **kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(self.audit_trail, "log_event", failing_log_event)
        with pytest.raises(RuntimeError):
            self.engine.record_contribution("M001", 500)

        assert self.member_manager.get_member("M001").total_contribution == usd(0)
        assert self.transactions() == []

    def test_origination_rolled_back_when_member_save_fails(self, monkeypatch):
        def failing_save(member):
            raise RuntimeError("write failed")

        monkeypatch.setattr(self.member_manager, "save_member", failing_save)
        with pytest.raises(RuntimeError):
            self.engine.originate_loan("M001", 1000, 10)

        assert self.loan_manager.list_loans() == []
        assert self.transactions() == []


class TestSQLiteBackedEngine(LedgerTestCase):
    """Same guarantees over a real database transaction"""

    def make_storage(self):
        return SQLiteStorage(":memory:")

    def test_payment_and_rollback(self, monkeypatch):
        loan = self.engine.originate_loan("M001", 500, 5)
        self.engine.apply_loan_payment(loan.id, 200)

        def failing_append(transaction):
            raise RuntimeError("fail")

        monkeypatch.setattr(self.transaction_ledger, "append", failing_append)
        with pytest.raises(RuntimeError):
            self.engine.apply_loan_payment(loan.id, 300)

        assert self.loan_manager.get_loan(loan.id).remaining_balance == usd(300)
        assert self.loan_manager.get_loan(loan.id).status == LoanStatus.ACTIVE
        monkeypatch.undo()
        assert self.engine.verify_consistency().is_consistent


class TestConcurrentPayments(LedgerTestCase):

    def test_parallel_payments_never_overdraw(self):
        loan = self.engine.originate_loan("M001", 1000, 10)
        errors = []

        def pay():
            try:
                self.engine.apply_loan_payment(loan.id, 100)
            except InvalidStateError as e:
                errors.append(e)

        threads = [threading.Thread(target=pay) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stored = self.loan_manager.get_loan(loan.id)
        assert stored.remaining_balance == usd(0)
        assert stored.status == LoanStatus.PAID
        assert len(self.transactions(TransactionType.LOAN_REPAYMENT)) == 10
        assert len(errors) == 2
        assert self.engine.verify_consistency().is_consistent

    def test_parallel_contributions(self):
        def contribute():
            for _ in range(10):
                self.engine.record_contribution("M001", 5)

        threads = [threading.Thread(target=contribute) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert self.member_manager.get_member("M001").total_contribution == usd(250)
        assert len(self.transactions(TransactionType.CONTRIBUTION)) == 50


class TestConsistencyAndReconcile(LedgerTestCase):

    def test_clean_state_is_consistent(self):
        self.engine.record_contribution("M001", 500)
        loan = self.engine.originate_loan("M002", 400, 4)
        self.engine.apply_loan_payment(loan.id, 150)

        report = self.engine.verify_consistency()
        assert report.is_consistent
        assert report.members_checked == 2
        assert report.loans_checked == 1
        assert report.transactions_checked == 3

    def test_detects_contribution_drift(self):
        self.engine.record_contribution("M001", 500)
        record = self.storage.load("members", "M001")
        record["total_contribution_amount"] = "900.00"
        self.storage.save("members", "M001", record)

        report = self.engine.verify_consistency()
        assert not report.is_consistent
        assert [(v.rule, v.entity_id) for v in report.violations] == [("contribution_total", "M001")]

    def test_detects_dangling_active_loan_pointer(self):
        record = self.storage.load("members", "M001")
        record["active_loan_id"] = "LN-GHOST"
        self.storage.save("members", "M001", record)

        rules = {v.rule for v in self.engine.verify_consistency().violations}
        assert rules == {"single_active_loan"}

    def test_detects_balance_change_without_ledger_entry(self):
        loan = self.engine.originate_loan("M001", 1000, 10)
        record = self.storage.load("loans", loan.id)
        record["remaining_balance_amount"] = "400.00"
        self.storage.save("loans", loan.id, record)

        rules = {v.rule for v in self.engine.verify_consistency().violations}
        assert "ledger_coverage" in rules

    def test_detects_out_of_range_balance(self):
        loan = self.engine.originate_loan("M001", 1000, 10)
        record = self.storage.load("loans", loan.id)
        record["remaining_balance_amount"] = "-5.00"
        self.storage.save("loans", loan.id, record)

        violations = self.engine.verify_consistency().violations
        assert any(v.rule == "balance_bounds" and v.entity_id == loan.id for v in violations)

    def test_unreadable_member_reported_not_raised(self):
        self.engine.record_contribution("M001", 500)
        record = self.storage.load("members", "M001")
        record["total_contribution_amount"] = "abc"
        self.storage.save("members", "M001", record)

        report = self.engine.verify_consistency()
        assert [(v.rule, v.entity_id) for v in report.violations] == [("unreadable_record", "M001")]
        assert report.members_checked == 1

    def test_unreadable_loan_reported_not_raised(self):
        loan = self.engine.originate_loan("M001", 1000, 10)
        record = self.storage.load("loans", loan.id)
        record["original_amount_amount"] = "NaN"
        self.storage.save("loans", loan.id, record)

        violations = self.engine.verify_consistency().violations
        assert ("unreadable_record", loan.id) in [(v.rule, v.entity_id) for v in violations]
        assert not any(v.rule == "balance_bounds" for v in violations)

    def test_unreadable_transaction_reported_not_raised(self):
        transaction = self.engine.record_contribution("M001", 500)
        record = self.storage.load("transactions", transaction.id)
        record["amount_amount"] = None
        self.storage.save("transactions", transaction.id, record)

        violations = self.engine.verify_consistency().violations
        assert ("unreadable_record", transaction.id) in [(v.rule, v.entity_id) for v in violations]

    def test_reconcile_repairs_member(self):
        self.engine.record_contribution("M001", 500)
        loan = self.engine.originate_loan("M001", 1000, 10)
        record = self.storage.load("members", "M001")
        record["total_contribution_amount"] = "0.00"
        record["active_loan_id"] = None
        self.storage.save("members", "M001", record)
        assert not self.engine.verify_consistency().is_consistent

        member = self.engine.reconcile_member("M001", user_id="admin")

        assert member.total_contribution == usd(500)
        assert member.active_loan_id == loan.id
        assert self.engine.verify_consistency().is_consistent
        events = self.audit_trail.get_events_for_entity("member", "M001")
        assert events[-1].event_type == AuditEventType.MEMBER_RECONCILED
        assert events[-1].metadata["before"]["total_contribution"] == "0.00"

    def test_reconcile_noop_when_consistent(self):
        self.engine.record_contribution("M001", 500)
        count = self.audit_trail.count_events()
        self.engine.reconcile_member("M001")
        assert self.audit_trail.count_events() == count

    def test_reconcile_refuses_multiple_active_loans(self):
        first = self.engine.originate_loan("M001", 1000, 10)
        duplicate = self.storage.load("loans", first.id)
        duplicate["id"] = "LN-DUPLICATE"
        self.storage.save("loans", "LN-DUPLICATE", duplicate)

        with pytest.raises(ConflictError):
            self.engine.reconcile_member("M001")

    def test_report_to_dict(self):
        report = self.engine.verify_consistency().to_dict()
        assert report["consistent"] is True
        assert report["violations"] == []
