"""
Member Management Module

Member registry: creation, profile updates, lookups and the search/filter
used by the members list. Ledger-derived fields (total contribution, active
loan, last loan paid date) are never written here; they belong to the
ledger engine.
"""

from datetime import datetime, timezone, date
from typing import Dict, List, Optional, Any, Union
import re
import uuid

from .currency import Money, Currency
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .models import Member, MemberStatus
from .serializers import member_to_dict, member_from_dict
from .errors import ValidationError, NotFoundError, ConflictError
from .logging_config import get_logger, log_action


EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

# Profile fields an admin may edit directly
UPDATABLE_FIELDS = {
    'name', 'nickname', 'email', 'phone', 'address', 'city', 'state',
    'zip_code', 'beneficiary', 'account_status', 'auto_pay', 'join_date'
}


def _coerce_status(value: Union[MemberStatus, str]) -> MemberStatus:
    if isinstance(value, MemberStatus):
        return value
    try:
        return MemberStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown account status: {value}")


class MemberManager:
    """
    Stores and retrieves club members
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 currency: Currency = Currency.USD):
        self.storage = storage
        self.audit_trail = audit_trail
        self.currency = currency
        self.members_table = "members"
        self.logger = get_logger("club_ledger.members")

    def create_member(
        self,
        name: str,
        email: str = "",
        phone: str = "",
        address: str = "",
        beneficiary: str = "",
        nickname: str = "",
        city: Optional[str] = None,
        state: Optional[str] = None,
        zip_code: Optional[str] = None,
        join_date: Optional[date] = None,
        account_status: Union[MemberStatus, str] = MemberStatus.ACTIVE,
        auto_pay: bool = False,
        member_id: Optional[str] = None
    ) -> Member:
        """
        Register a new member with a zero contribution balance and no loan.

        Args:
            name: Full name (required)
            member_id: Club-assigned id such as "M001"; generated when omitted
            join_date: Defaults to today

        Returns:
            Created Member

        Raises:
            ValidationError: Missing name or malformed email
            ConflictError: member_id already in use
        """
        if email and not EMAIL_PATTERN.match(email):
            raise ValidationError(f"Invalid email address: {email}")

        member_id = member_id or f"MBR-{uuid.uuid4().hex[:8].upper()}"
        if self.storage.exists(self.members_table, member_id):
            raise ConflictError(f"Member {member_id} already exists", {"member_id": member_id})

        now = datetime.now(timezone.utc)
        try:
            member = Member(
                id=member_id,
                created_at=now,
                updated_at=now,
                name=name.strip() if name else "",
                nickname=nickname,
                email=email,
                phone=phone,
                address=address,
                city=city,
                state=state,
                zip_code=zip_code,
                beneficiary=beneficiary,
                join_date=join_date or now.date(),
                account_status=_coerce_status(account_status),
                total_contribution=Money.zero(self.currency),
                auto_pay=auto_pay
            )
        except ValidationError:
            raise
        except ValueError as e:
            raise ValidationError(str(e))

        with self.storage.atomic():
            self.save_member(member)
            self.audit_trail.log_event(
                event_type=AuditEventType.MEMBER_CREATED,
                entity_type="member",
                entity_id=member.id,
                metadata={"name": member.name, "join_date": member.join_date}
            )

        log_action(self.logger, "info", f"Member created: {member.id}",
                   action="create_member", resource=f"member:{member.id}")
        return member

    def get_member(self, member_id: str) -> Optional[Member]:
        data = self.storage.load(self.members_table, member_id)
        return member_from_dict(data) if data else None

    def require_member(self, member_id: str) -> Member:
        """Like get_member, but raises NotFoundError for unknown ids"""
        member = self.get_member(member_id)
        if member is None:
            raise NotFoundError("member", member_id)
        return member

    def list_members(self) -> List[Member]:
        """All members ordered by name"""
        members = [member_from_dict(data) for data in self.storage.load_all(self.members_table)]
        members.sort(key=lambda m: (m.name.lower(), m.id))
        return members

    def search_members(
        self,
        query: Optional[str] = None,
        status: Optional[Union[MemberStatus, str]] = None,
        joined_from: Optional[date] = None,
        joined_to: Optional[date] = None
    ) -> List[Member]:
        """
        Filter members the way the members list does.

        Args:
            query: Case-insensitive substring of name, nickname, email or id
            status: Only members with this account status
            joined_from: Earliest join date (inclusive)
            joined_to: Latest join date (inclusive)
        """
        wanted_status = _coerce_status(status) if status else None
        needle = query.strip().lower() if query else ""

        results = []
        for member in self.list_members():
            if needle:
                haystack = (member.name, member.nickname, member.email, member.id)
                if not any(needle in (value or "").lower() for value in haystack):
                    continue
            if wanted_status and member.account_status != wanted_status:
                continue
            if joined_from and member.join_date < joined_from:
                continue
            if joined_to and member.join_date > joined_to:
                continue
            results.append(member)
        return results

    def update_member(self, member_id: str, **changes: Any) -> Member:
        """
        Update profile fields and account status.

        Raises:
            NotFoundError: Unknown member
            ValidationError: Attempt to set a ledger-derived or unknown field
        """
        protected = set(changes) - UPDATABLE_FIELDS
        if protected:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(sorted(protected))}",
                {"fields": sorted(protected)}
            )

        with self.storage.atomic():
            member = self.require_member(member_id)
            applied: Dict[str, Any] = {}
            for field_name, value in changes.items():
                if value is None:
                    continue
                if field_name == 'account_status':
                    value = _coerce_status(value)
                if field_name == 'email' and value and not EMAIL_PATTERN.match(value):
                    raise ValidationError(f"Invalid email address: {value}")
                if field_name == 'name' and not str(value).strip():
                    raise ValidationError("Member name is required")
                setattr(member, field_name, value)
                applied[field_name] = value

            if applied:
                member.touch()
                self.save_member(member)
                self.audit_trail.log_event(
                    event_type=AuditEventType.MEMBER_UPDATED,
                    entity_type="member",
                    entity_id=member.id,
                    metadata={"fields": sorted(applied)}
                )

        return member

    def delete_member(self, member_id: str) -> None:
        """
        Hard-delete a member. Their ledger history is kept.

        Raises:
            NotFoundError: Unknown member
            ConflictError: Member still holds an active loan
        """
        with self.storage.atomic():
            member = self.require_member(member_id)
            if member.has_active_loan:
                raise ConflictError(
                    f"Member {member_id} has active loan {member.active_loan_id}",
                    {"member_id": member_id, "loan_id": member.active_loan_id}
                )
            self.storage.delete(self.members_table, member_id)
            self.audit_trail.log_event(
                event_type=AuditEventType.MEMBER_DELETED,
                entity_type="member",
                entity_id=member_id,
                metadata={"name": member.name}
            )

        log_action(self.logger, "warning", f"Member deleted: {member_id}",
                   action="delete_member", resource=f"member:{member_id}")

    def save_member(self, member: Member) -> None:
        self.storage.save(self.members_table, member.id, member_to_dict(member))
