"""
Member communication log: notes, emails, SMS and system messages.
"""

from datetime import datetime, timezone, date
from typing import List, Optional, Union
import uuid

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .members import MemberManager
from .models import CommunicationLog, CommunicationType, CommunicationDirection
from .serializers import communication_to_dict, communication_from_dict
from .errors import ValidationError


class CommunicationManager:

    def __init__(self, storage: StorageInterface, member_manager: MemberManager,
                 audit_trail: AuditTrail):
        self.storage = storage
        self.member_manager = member_manager
        self.audit_trail = audit_trail
        self.communications_table = "communication_logs"

    def log_communication(
        self,
        member_id: str,
        communication_type: Union[CommunicationType, str],
        content: str,
        direction: Union[CommunicationDirection, str] = CommunicationDirection.OUTBOUND,
        log_date: Optional[date] = None,
        admin_id: Optional[str] = None
    ) -> CommunicationLog:
        if not content or not content.strip():
            raise ValidationError("Communication content is required")
        try:
            communication_type = CommunicationType(communication_type)
            direction = CommunicationDirection(direction)
        except ValueError as e:
            raise ValidationError(str(e))

        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            self.member_manager.require_member(member_id)
            log = CommunicationLog(
                id=f"COM-{uuid.uuid4().hex[:12].upper()}",
                created_at=now,
                updated_at=now,
                member_id=member_id,
                communication_type=communication_type,
                content=content.strip(),
                date=log_date or now.date(),
                direction=direction,
                admin_id=admin_id
            )
            self.storage.save(self.communications_table, log.id, communication_to_dict(log))
            self.audit_trail.log_event(
                event_type=AuditEventType.COMMUNICATION_LOGGED,
                entity_type="member",
                entity_id=member_id,
                metadata={"communication_id": log.id, "type": communication_type.value},
                user_id=admin_id
            )
        return log

    def list_communications(self, member_id: Optional[str] = None) -> List[CommunicationLog]:
        """Communication history, newest first"""
        filters = {'member_id': member_id} if member_id else {}
        logs = [
            communication_from_dict(data)
            for data in self.storage.find(self.communications_table, filters)
        ]
        logs.sort(key=lambda log: (log.date, log.created_at), reverse=True)
        return logs

    def get_member_communications(self, member_id: str) -> List[CommunicationLog]:
        self.member_manager.require_member(member_id)
        return self.list_communications(member_id)
