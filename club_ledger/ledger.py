"""
Ledger Consistency Engine

Applies every balance-affecting club operation (contributions, loan
origination, loan repayments, fees, distributions, defaults) as a single unit
of work over members, loans and the transaction ledger, and emits the ledger
entry that justifies the change.

Rules kept on every successful return:

* a member holds at most one ACTIVE loan, and ``active_loan_id`` is either
  None or points at that loan;
* a loan's remaining balance stays within [0, original amount] and is zero
  exactly when the loan is PAID;
* every change to a contribution total or loan balance has a matching ledger
  entry, and ``total_contribution`` equals the member's CONTRIBUTION sum.

On failure nothing is written: the storage unit of work is rolled back.
Writers to the same loan or member are serialized with per-entity locks
(loan lock first, then member lock).
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Union
from contextlib import contextmanager
from collections import defaultdict
import threading
import uuid

from .currency import Money, Currency, to_decimal
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .members import MemberManager
from .loans import LoanManager, add_months
from .transactions import TransactionLedger
from .models import Member, Loan, LoanStatus, Transaction, TransactionType
from .serializers import loan_from_dict, member_from_dict, transaction_from_dict
from .errors import ValidationError, ConflictError, InvalidStateError
from .logging_config import get_logger, log_action


OVERPAYMENT_ABSORB = "absorb"
OVERPAYMENT_REJECT = "reject"

# Produced only by originate_loan / apply_loan_payment
ENGINE_ONLY_TYPES = (TransactionType.LOAN_DISBURSAL, TransactionType.LOAN_REPAYMENT)

UNREADABLE_RECORD = "unreadable_record"

# Raised by the serializers on corrupt stored records
READ_ERRORS = (KeyError, ValueError, TypeError, ArithmeticError)


def _balance_out_of_range(data: Dict[str, Any]) -> bool:
    """True when a stored loan parses numerically but its balance is outside [0, original]"""
    try:
        original = Decimal(data['original_amount_amount'])
        remaining = Decimal(data['remaining_balance_amount'])
    except (KeyError, TypeError, ArithmeticError):
        return False
    if not (original.is_finite() and remaining.is_finite()):
        return False
    return remaining < 0 or remaining > original


@dataclass
class ConsistencyViolation:
    rule: str           # single_active_loan, balance_bounds, ledger_coverage, contribution_total, unreadable_record
    entity_type: str
    entity_id: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'rule': self.rule,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'message': self.message,
        }


@dataclass
class ConsistencyReport:
    checked_at: datetime
    members_checked: int = 0
    loans_checked: int = 0
    transactions_checked: int = 0
    violations: List[ConsistencyViolation] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.violations

    def add(self, rule: str, entity_type: str, entity_id: str, message: str) -> None:
        self.violations.append(ConsistencyViolation(rule, entity_type, entity_id, message))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'checked_at': self.checked_at.isoformat(),
            'consistent': self.is_consistent,
            'members_checked': self.members_checked,
            'loans_checked': self.loans_checked,
            'transactions_checked': self.transactions_checked,
            'violations': [v.to_dict() for v in self.violations],
        }


AmountInput = Union[Money, Decimal, int, str]


class LedgerEngine:
    """
    Keeps member balances, loan balances and the ledger mutually consistent
    """

    def __init__(
        self,
        storage: StorageInterface,
        member_manager: MemberManager,
        loan_manager: LoanManager,
        transaction_ledger: TransactionLedger,
        audit_trail: AuditTrail,
        currency: Currency = Currency.USD,
        overpayment_policy: str = OVERPAYMENT_ABSORB
    ):
        if overpayment_policy not in (OVERPAYMENT_ABSORB, OVERPAYMENT_REJECT):
            raise ValueError(f"Unknown overpayment policy: {overpayment_policy}")

        self.storage = storage
        self.member_manager = member_manager
        self.loan_manager = loan_manager
        self.transaction_ledger = transaction_ledger
        self.audit_trail = audit_trail
        self.currency = currency
        self.overpayment_policy = overpayment_policy
        self.logger = get_logger("club_ledger.ledger")

        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Contributions and general entries
    # ------------------------------------------------------------------

    def record_contribution(
        self,
        member_id: str,
        amount: AmountInput,
        contribution_date: Optional[date] = None,
        description: Optional[str] = None,
        payment_method: Optional[str] = None,
        received_by: Optional[str] = None
    ) -> Transaction:
        """
        Record a member contribution and raise their contribution total by the
        same amount.

        Args:
            member_id: Contributing member
            amount: Positive amount in the club currency
            contribution_date: Defaults to today

        Returns:
            The CONTRIBUTION ledger entry

        Raises:
            ValidationError: amount <= 0 or wrong currency
            NotFoundError: Unknown member
            InvalidStateError: Member is Inactive
        """
        amount = self._positive_amount(amount)
        contribution_date = contribution_date or self._today()

        with self._entity_lock("member", member_id), self.storage.atomic():
            member = self.member_manager.require_member(member_id)
            if not member.is_active:
                raise InvalidStateError(
                    f"Member {member_id} is {member.account_status.value} and cannot contribute",
                    {"member_id": member_id, "account_status": member.account_status.value}
                )

            transaction = self._append(
                member_id=member.id,
                transaction_type=TransactionType.CONTRIBUTION,
                amount=amount,
                on_date=contribution_date,
                description=description or f"Contribution from {member.name}",
                payment_method=payment_method,
                received_by=received_by
            )

            member.total_contribution = member.total_contribution + amount
            member.touch()
            self.member_manager.save_member(member)

            self.audit_trail.log_event(
                event_type=AuditEventType.CONTRIBUTION_RECORDED,
                entity_type="member",
                entity_id=member.id,
                metadata={
                    "transaction_id": transaction.id,
                    "amount": str(amount.amount),
                    "total_contribution": str(member.total_contribution.amount)
                },
                user_id=received_by
            )

        log_action(
            self.logger, "info", f"Contribution recorded for {member_id}: {amount.to_string()}",
            action="record_contribution", resource=f"member:{member_id}",
            extra={"transaction_id": transaction.id, "amount": str(amount.amount)}
        )
        return transaction

    def record_transaction(
        self,
        member_id: str,
        transaction_type: Union[TransactionType, str],
        amount: AmountInput,
        transaction_date: Optional[date] = None,
        description: Optional[str] = None,
        payment_method: Optional[str] = None,
        received_by: Optional[str] = None
    ) -> Transaction:
        """
        Append a ledger entry of any caller-creatable type.

        CONTRIBUTION entries go through ``record_contribution`` so the member
        total follows. FEE and DISTRIBUTION entries touch no cached balance.
        Loan disbursals and repayments can only come from the loan operations.

        Raises:
            ValidationError: Loan entry type, unknown type, or bad amount
            NotFoundError: Unknown member
        """
        try:
            transaction_type = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError(f"Unknown transaction type: {transaction_type}")

        if transaction_type in ENGINE_ONLY_TYPES:
            raise ValidationError(
                f"{transaction_type.value} entries are created by loan operations only",
                {"transaction_type": transaction_type.value}
            )

        if transaction_type == TransactionType.CONTRIBUTION:
            return self.record_contribution(
                member_id, amount, transaction_date,
                description=description, payment_method=payment_method,
                received_by=received_by
            )

        amount = self._positive_amount(amount)
        with self._entity_lock("member", member_id), self.storage.atomic():
            member = self.member_manager.require_member(member_id)
            transaction = self._append(
                member_id=member.id,
                transaction_type=transaction_type,
                amount=amount,
                on_date=transaction_date or self._today(),
                description=description or transaction_type.value.capitalize(),
                payment_method=payment_method,
                received_by=received_by
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_RECORDED,
                entity_type="member",
                entity_id=member.id,
                metadata={
                    "transaction_id": transaction.id,
                    "type": transaction_type.value,
                    "amount": str(amount.amount)
                },
                user_id=received_by
            )

        log_action(
            self.logger, "info", f"{transaction_type.value} recorded for {member_id}",
            action="record_transaction", resource=f"transaction:{transaction.id}",
            extra={"amount": str(amount.amount)}
        )
        return transaction

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    def originate_loan(
        self,
        borrower_id: str,
        original_amount: AmountInput,
        term_months: int,
        start_date: Optional[date] = None,
        cosigner_id: Optional[str] = None,
        issued_by: Optional[str] = None
    ) -> Loan:
        """
        Create an ACTIVE loan, point the borrower at it and record the
        disbursal.

        The first payment falls due one month after ``start_date``.

        Raises:
            ValidationError: Non-positive amount or term, bad cosigner
            NotFoundError: Unknown borrower
            ConflictError: Borrower already holds an ACTIVE loan
        """
        amount = self._positive_amount(original_amount)
        if isinstance(term_months, bool) or not isinstance(term_months, int) or term_months <= 0:
            raise ValidationError("Loan term must be a positive number of months",
                                  {"term_months": term_months})
        if cosigner_id and cosigner_id == borrower_id:
            raise ValidationError("A borrower cannot cosign their own loan")
        start_date = start_date or self._today()

        with self._entity_lock("member", borrower_id), self.storage.atomic():
            borrower = self.member_manager.require_member(borrower_id)
            self._ensure_no_active_loan(borrower)

            if cosigner_id and self.member_manager.get_member(cosigner_id) is None:
                raise ValidationError(f"Cosigner {cosigner_id} is not a member",
                                      {"cosigner_id": cosigner_id})

            now = datetime.now(timezone.utc)
            loan = Loan(
                id=self._new_id("LN"),
                created_at=now,
                updated_at=now,
                borrower_id=borrower.id,
                cosigner_id=cosigner_id,
                original_amount=amount,
                remaining_balance=amount,
                term_months=term_months,
                start_date=start_date,
                next_payment_due=add_months(start_date, 1),
                status=LoanStatus.ACTIVE,
                issued_by=issued_by
            )
            self.loan_manager.save_loan(loan)

            borrower.active_loan_id = loan.id
            borrower.touch()
            self.member_manager.save_member(borrower)

            transaction = self._append(
                member_id=borrower.id,
                transaction_type=TransactionType.LOAN_DISBURSAL,
                amount=amount,
                on_date=start_date,
                description=f"Loan disbursal for {loan.id}",
                loan_id=loan.id,
                received_by=issued_by
            )

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_ORIGINATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "borrower_id": borrower.id,
                    "cosigner_id": cosigner_id,
                    "original_amount": str(amount.amount),
                    "term_months": term_months,
                    "transaction_id": transaction.id
                },
                user_id=issued_by
            )

        log_action(
            self.logger, "info", f"Loan {loan.id} originated for {borrower_id}: {amount.to_string()}",
            action="originate_loan", resource=f"loan:{loan.id}",
            extra={"borrower_id": borrower_id, "term_months": term_months}
        )
        return loan

    def apply_loan_payment(
        self,
        loan_id: str,
        amount: AmountInput,
        payment_date: Optional[date] = None,
        payment_method: Optional[str] = None,
        received_by: Optional[str] = None
    ) -> Loan:
        """
        Apply a repayment to an ACTIVE loan.

        The balance drops by ``amount`` and floors at zero. At zero the loan
        becomes PAID, the borrower's active loan is cleared and their last
        loan paid date set to the payment date. A LOAN_REPAYMENT entry for
        the full amount paid is appended.

        When the payment exceeds the balance, the ``absorb`` policy keeps the
        excess (noted on the entry and logged); the ``reject`` policy refuses
        the payment.

        Raises:
            ValidationError: amount <= 0, wrong currency, or rejected overpayment
            NotFoundError: Unknown loan
            InvalidStateError: Loan is PAID or DEFAULTED
        """
        amount = self._positive_amount(amount)
        payment_date = payment_date or self._today()

        with self._entity_lock("loan", loan_id):
            borrower_id = self.loan_manager.require_loan(loan_id).borrower_id
            with self._entity_lock("member", borrower_id), self.storage.atomic():
                loan = self.loan_manager.require_loan(loan_id)
                self._ensure_active(loan, "accept payments")

                excess = Money.zero(self.currency)
                if amount > loan.remaining_balance:
                    excess = amount - loan.remaining_balance
                    if self.overpayment_policy == OVERPAYMENT_REJECT:
                        raise ValidationError(
                            f"Payment {amount.to_string()} exceeds remaining balance "
                            f"{loan.remaining_balance.to_string()}",
                            {"loan_id": loan_id, "remaining_balance": str(loan.remaining_balance.amount)}
                        )
                    loan.remaining_balance = Money.zero(self.currency)
                else:
                    loan.remaining_balance = loan.remaining_balance - amount

                paid_off = loan.remaining_balance.is_zero()
                if paid_off:
                    loan.status = LoanStatus.PAID
                    self._release_borrower(loan, paid_on=payment_date)

                loan.touch()
                self.loan_manager.save_loan(loan)

                description = f"Loan payment for {loan.id}"
                if excess.is_positive():
                    description += f" (overpayment of {excess.to_string()} absorbed)"
                transaction = self._append(
                    member_id=loan.borrower_id,
                    transaction_type=TransactionType.LOAN_REPAYMENT,
                    amount=amount,
                    on_date=payment_date,
                    description=description,
                    loan_id=loan.id,
                    payment_method=payment_method,
                    received_by=received_by
                )

                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_PAYMENT_APPLIED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={
                        "transaction_id": transaction.id,
                        "amount": str(amount.amount),
                        "excess": str(excess.amount),
                        "remaining_balance": str(loan.remaining_balance.amount)
                    },
                    user_id=received_by
                )
                if paid_off:
                    self.audit_trail.log_event(
                        event_type=AuditEventType.LOAN_PAID_OFF,
                        entity_type="loan",
                        entity_id=loan.id,
                        metadata={"borrower_id": loan.borrower_id, "paid_on": payment_date},
                        user_id=received_by
                    )

        if excess.is_positive():
            log_action(
                self.logger, "warning",
                f"Overpayment of {excess.to_string()} absorbed on loan {loan_id}",
                action="apply_loan_payment", resource=f"loan:{loan_id}",
                extra={"excess": str(excess.amount), "transaction_id": transaction.id}
            )
        log_action(
            self.logger, "info", f"Payment of {amount.to_string()} applied to loan {loan_id}",
            action="apply_loan_payment", resource=f"loan:{loan_id}",
            extra={"remaining_balance": str(loan.remaining_balance.amount),
                   "status": loan.status.value}
        )
        return loan

    def mark_loan_defaulted(self, loan_id: str, user_id: Optional[str] = None) -> Loan:
        """
        Administratively move an ACTIVE loan to DEFAULTED and release the
        borrower's active loan slot. The balance is left as it stands.

        Raises:
            NotFoundError: Unknown loan
            InvalidStateError: Loan already PAID or DEFAULTED
        """
        with self._entity_lock("loan", loan_id):
            borrower_id = self.loan_manager.require_loan(loan_id).borrower_id
            with self._entity_lock("member", borrower_id), self.storage.atomic():
                loan = self.loan_manager.require_loan(loan_id)
                self._ensure_active(loan, "be marked defaulted")

                loan.status = LoanStatus.DEFAULTED
                loan.touch()
                self.loan_manager.save_loan(loan)
                self._release_borrower(loan)

                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_DEFAULTED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={
                        "borrower_id": loan.borrower_id,
                        "remaining_balance": str(loan.remaining_balance.amount)
                    },
                    user_id=user_id
                )

        log_action(
            self.logger, "warning", f"Loan {loan_id} marked defaulted",
            action="mark_loan_defaulted", resource=f"loan:{loan_id}",
            extra={"remaining_balance": str(loan.remaining_balance.amount)}
        )
        return loan

    # ------------------------------------------------------------------
    # Verification and repair
    # ------------------------------------------------------------------

    def verify_consistency(self) -> ConsistencyReport:
        """
        Scan members, loans and the ledger for broken balance rules.

        This is how a unit of work left half-applied by a backend without
        transactions (or by direct edits to storage) is detected.

        Returns:
            ConsistencyReport listing every violation found
        """
        report = ConsistencyReport(checked_at=datetime.now(timezone.utc))

        loans: Dict[str, Loan] = {}
        for data in self.storage.load_all(self.loan_manager.loans_table):
            try:
                loan = loan_from_dict(data)
            except READ_ERRORS as e:
                if _balance_out_of_range(data):
                    report.add("balance_bounds", "loan", data.get('id', '?'), str(e))
                else:
                    report.add(UNREADABLE_RECORD, "loan", data.get('id', '?'), f"Unreadable loan record: {e}")
                continue
            loans[loan.id] = loan
        report.loans_checked = len(loans)

        transactions: List[Transaction] = []
        for data in self.storage.load_all(self.transaction_ledger.transactions_table):
            try:
                transactions.append(transaction_from_dict(data))
            except READ_ERRORS as e:
                report.add(UNREADABLE_RECORD, "transaction", data.get('id', '?'),
                           f"Unreadable transaction record: {e}")
        report.transactions_checked = len(transactions)

        contributions: Dict[str, Money] = defaultdict(lambda: Money.zero(self.currency))
        repaid: Dict[str, Money] = defaultdict(lambda: Money.zero(self.currency))
        disbursed: Dict[str, Money] = {}
        for transaction in transactions:
            if transaction.transaction_type == TransactionType.CONTRIBUTION:
                contributions[transaction.member_id] += transaction.amount
            elif transaction.transaction_type == TransactionType.LOAN_REPAYMENT and transaction.loan_id:
                repaid[transaction.loan_id] += transaction.amount
            elif transaction.transaction_type == TransactionType.LOAN_DISBURSAL and transaction.loan_id:
                disbursed[transaction.loan_id] = transaction.amount

        members: Dict[str, Member] = {}
        for data in self.storage.load_all(self.member_manager.members_table):
            try:
                member = member_from_dict(data)
            except READ_ERRORS as e:
                report.add(UNREADABLE_RECORD, "member", data.get('id', '?'),
                           f"Unreadable member record: {e}")
                continue
            members[member.id] = member
        report.members_checked = len(members)

        for member in members.values():
            expected = contributions[member.id]
            if member.total_contribution != expected:
                report.add(
                    "contribution_total", "member", member.id,
                    f"total_contribution {member.total_contribution.to_string()} does not match "
                    f"ledger sum {expected.to_string()}"
                )

            if member.active_loan_id:
                loan = loans.get(member.active_loan_id)
                if loan is None:
                    report.add("single_active_loan", "member", member.id,
                               f"active_loan_id {member.active_loan_id} does not exist")
                elif not loan.is_active:
                    report.add("single_active_loan", "member", member.id,
                               f"active_loan_id {loan.id} is {loan.status.value}")
                elif loan.borrower_id != member.id:
                    report.add("single_active_loan", "member", member.id,
                               f"active_loan_id {loan.id} belongs to {loan.borrower_id}")

        active_by_borrower: Dict[str, List[str]] = defaultdict(list)
        for loan in loans.values():
            if loan.is_active:
                active_by_borrower[loan.borrower_id].append(loan.id)
                borrower = members.get(loan.borrower_id)
                if borrower is not None and borrower.active_loan_id != loan.id:
                    report.add("single_active_loan", "loan", loan.id,
                               f"ACTIVE loan is not referenced by borrower {loan.borrower_id}")

            if loan.is_active and loan.remaining_balance.is_zero():
                report.add("balance_bounds", "loan", loan.id, "ACTIVE loan has a zero balance")
            if loan.status == LoanStatus.PAID and not loan.remaining_balance.is_zero():
                report.add("balance_bounds", "loan", loan.id,
                           f"PAID loan still owes {loan.remaining_balance.to_string()}")

            if disbursed.get(loan.id) != loan.original_amount:
                report.add("ledger_coverage", "loan", loan.id,
                           "No LOAN_DISBURSAL entry matches the original amount")
            if repaid[loan.id] < loan.amount_repaid:
                report.add(
                    "ledger_coverage", "loan", loan.id,
                    f"Balance reduced by {loan.amount_repaid.to_string()} but only "
                    f"{repaid[loan.id].to_string()} of repayments are recorded"
                )

        for borrower_id, loan_ids in active_by_borrower.items():
            if len(loan_ids) > 1:
                report.add("single_active_loan", "member", borrower_id,
                           f"Member has {len(loan_ids)} ACTIVE loans: {', '.join(sorted(loan_ids))}")

        if not report.is_consistent:
            log_action(
                self.logger, "warning", f"Consistency check found {len(report.violations)} violation(s)",
                action="verify_consistency",
                extra={"rules": sorted({v.rule for v in report.violations})}
            )
        return report

    def reconcile_member(self, member_id: str, user_id: Optional[str] = None) -> Member:
        """
        Rebuild a member's cached fields from the ledger and loan records:
        ``total_contribution`` from CONTRIBUTION entries and
        ``active_loan_id`` from the member's ACTIVE loans.

        Raises:
            NotFoundError: Unknown member
            ConflictError: Member has several ACTIVE loans, which needs a
                human decision (default or settle one of them)
        """
        with self._entity_lock("member", member_id), self.storage.atomic():
            member = self.member_manager.require_member(member_id)
            before = {
                "total_contribution": str(member.total_contribution.amount),
                "active_loan_id": member.active_loan_id,
            }

            active_loans = self.loan_manager.get_active_loans(borrower_id=member_id)
            if len(active_loans) > 1:
                raise ConflictError(
                    f"Member {member_id} has {len(active_loans)} ACTIVE loans",
                    {"loan_ids": [loan.id for loan in active_loans]}
                )

            member.total_contribution = self.transaction_ledger.sum_contributions(member_id)
            member.active_loan_id = active_loans[0].id if active_loans else None
            after = {
                "total_contribution": str(member.total_contribution.amount),
                "active_loan_id": member.active_loan_id,
            }

            if after != before:
                member.touch()
                self.member_manager.save_member(member)
                self.audit_trail.log_event(
                    event_type=AuditEventType.MEMBER_RECONCILED,
                    entity_type="member",
                    entity_id=member_id,
                    metadata={"before": before, "after": after},
                    user_id=user_id
                )
                log_action(
                    self.logger, "warning", f"Member {member_id} reconciled with ledger",
                    action="reconcile_member", resource=f"member:{member_id}",
                    extra={"before": before, "after": after}
                )

        return member

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _entity_lock(self, entity_type: str, entity_id: str):
        key = f"{entity_type}:{entity_id}"
        with self._locks_guard:
            lock = self._locks.setdefault(key, threading.RLock())
        with lock:
            yield

    def _positive_amount(self, amount: AmountInput) -> Money:
        if isinstance(amount, Money):
            if amount.currency != self.currency:
                raise ValidationError(
                    f"Amount must be in {self.currency.code}, got {amount.currency.code}",
                    {"currency": amount.currency.code}
                )
            money = amount
        else:
            try:
                money = Money(to_decimal(amount), self.currency)
            except (ValueError, ArithmeticError):
                raise ValidationError(f"Invalid amount: {amount!r}")

        if not money.is_positive():
            raise ValidationError("Amount must be greater than zero", {"amount": str(money.amount)})
        return money

    def _ensure_active(self, loan: Loan, verb: str) -> None:
        if not loan.is_active:
            raise InvalidStateError(
                f"Loan {loan.id} is {loan.status.value} and cannot {verb}",
                {"loan_id": loan.id, "status": loan.status.value}
            )

    def _ensure_no_active_loan(self, borrower: Member) -> None:
        active_ids = [loan.id for loan in self.loan_manager.get_active_loans(borrower_id=borrower.id)]
        if borrower.active_loan_id and borrower.active_loan_id not in active_ids:
            active_ids.insert(0, borrower.active_loan_id)
        if active_ids:
            raise ConflictError(
                f"Member {borrower.id} already has an active loan ({active_ids[0]})",
                {"member_id": borrower.id, "loan_ids": active_ids}
            )

    def _release_borrower(self, loan: Loan, paid_on: Optional[date] = None) -> None:
        """Clear the borrower's pointer to ``loan``; record the payoff date if given"""
        borrower = self.member_manager.get_member(loan.borrower_id)
        if borrower is None:
            self.logger.warning(f"Borrower {loan.borrower_id} of loan {loan.id} no longer exists")
            return
        if borrower.active_loan_id == loan.id:
            borrower.active_loan_id = None
        if paid_on is not None:
            borrower.last_loan_paid_date = paid_on
        borrower.touch()
        self.member_manager.save_member(borrower)

    def _append(
        self,
        member_id: str,
        transaction_type: TransactionType,
        amount: Money,
        on_date: date,
        description: str,
        loan_id: Optional[str] = None,
        payment_method: Optional[str] = None,
        received_by: Optional[str] = None
    ) -> Transaction:
        now = datetime.now(timezone.utc)
        transaction = Transaction(
            id=self._new_id("TXN"),
            created_at=now,
            updated_at=now,
            member_id=member_id,
            transaction_type=transaction_type,
            amount=amount,
            date=on_date,
            description=description,
            loan_id=loan_id,
            payment_method=payment_method,
            received_by=received_by
        )
        return self.transaction_ledger.append(transaction)

    @staticmethod
    def _new_id(prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"

    @staticmethod
    def _today() -> date:
        return datetime.now(timezone.utc).date()
