"""
Club system wiring and the FastAPI dependency that provides it
"""

from datetime import datetime
from typing import Optional

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..members import MemberManager
from ..loans import LoanManager
from ..transactions import TransactionLedger
from ..communications import CommunicationManager
from ..ledger import LedgerEngine
from ..backup import DataBackup
from ..dashboard import DashboardStats, compute_dashboard_aggregates
from ..config import ClubConfig, get_config


class ClubSystem:
    """Club ledger with all components initialized over one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 settings: Optional[ClubConfig] = None):
        self.config = settings or get_config()
        self.currency = self.config.club_currency

        self.storage = storage if storage is not None else create_storage(self.config.database_url)

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.member_manager = MemberManager(self.storage, self.audit_trail, self.currency)
        self.loan_manager = LoanManager(self.storage, self.member_manager, self.audit_trail)
        self.transaction_ledger = TransactionLedger(self.storage, self.currency)
        self.communication_manager = CommunicationManager(
            self.storage, self.member_manager, self.audit_trail
        )
        self.ledger = LedgerEngine(
            self.storage, self.member_manager, self.loan_manager,
            self.transaction_ledger, self.audit_trail,
            currency=self.currency,
            overpayment_policy=self.config.overpayment_policy
        )
        self.backup = DataBackup(self.storage, self.audit_trail)

    def dashboard(self, now: Optional[datetime] = None) -> DashboardStats:
        """Dashboard figures over everything currently stored"""
        with self.storage.atomic():
            members = self.member_manager.list_members()
            loans = self.loan_manager.list_loans()
            transactions = self.transaction_ledger.list_transactions()
        return compute_dashboard_aggregates(members, loans, transactions,
                                            now=now, currency=self.currency)

    def close(self) -> None:
        self.storage.close()


_club_system: Optional[ClubSystem] = None


def get_club_system() -> ClubSystem:
    """Dependency returning the process-wide club system, built on first use"""
    global _club_system
    if _club_system is None:
        _club_system = ClubSystem()
    return _club_system
