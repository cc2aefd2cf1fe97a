"""
Transaction Ledger Module

Append-only log of club money movements. Entries are never updated or
deleted; member and loan balances are caches that must agree with it.
Only the ledger engine appends.
"""

from datetime import date
from typing import List, Optional

from .currency import Money, Currency
from .storage import StorageInterface
from .models import Transaction, TransactionType
from .serializers import transaction_to_dict, transaction_from_dict
from .errors import NotFoundError, ConflictError


class TransactionLedger:
    """Read access to the ledger plus the single append operation"""

    def __init__(self, storage: StorageInterface, currency: Currency = Currency.USD):
        self.storage = storage
        self.currency = currency
        self.transactions_table = "transactions"

    def append(self, transaction: Transaction) -> Transaction:
        """
        Append an entry. Ids are write-once.

        Raises:
            ConflictError: An entry with this id already exists
        """
        if self.storage.exists(self.transactions_table, transaction.id):
            raise ConflictError(
                f"Transaction {transaction.id} already recorded",
                {"transaction_id": transaction.id}
            )
        self.storage.save(self.transactions_table, transaction.id, transaction_to_dict(transaction))
        return transaction

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.transactions_table, transaction_id)
        return transaction_from_dict(data) if data else None

    def require_transaction(self, transaction_id: str) -> Transaction:
        transaction = self.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id)
        return transaction

    def list_transactions(
        self,
        member_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None
    ) -> List[Transaction]:
        """
        Ledger entries, newest first.

        Args:
            member_id: Only this member's entries
            start_date: Earliest entry date (inclusive)
            end_date: Latest entry date (inclusive)
            transaction_type: Only entries of this type
        """
        filters = {}
        if member_id:
            filters['member_id'] = member_id
        if transaction_type:
            filters['type'] = transaction_type.value

        transactions = [
            transaction_from_dict(data)
            for data in self.storage.find(self.transactions_table, filters)
        ]
        if start_date:
            transactions = [t for t in transactions if t.date >= start_date]
        if end_date:
            transactions = [t for t in transactions if t.date <= end_date]

        transactions.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return transactions

    def sum_contributions(self, member_id: str) -> Money:
        """Sum of the member's CONTRIBUTION entries; what total_contribution must equal"""
        total = Money.zero(self.currency)
        for transaction in self.list_transactions(member_id=member_id,
                                                  transaction_type=TransactionType.CONTRIBUTION):
            total = total + transaction.amount
        return total
