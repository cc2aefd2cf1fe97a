"""
Export and import of the club's data as one JSON document.

The export holds the members, loans, transactions and communication log
tables as stored. An import validates every record before writing and then
replaces those tables in a single unit of work. The audit chain is never
exported or overwritten; an import is itself recorded as an audit event.
"""

from datetime import datetime, timezone
from typing import Dict, List, Any, Callable, Optional

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .serializers import (
    member_from_dict, loan_from_dict, transaction_from_dict, communication_from_dict
)
from .errors import ValidationError
from .logging_config import get_logger, log_action


EXPORT_FORMAT_VERSION = 1

# Table name -> record parser used to validate imported rows
BACKUP_TABLES: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "members": member_from_dict,
    "loans": loan_from_dict,
    "transactions": transaction_from_dict,
    "communication_logs": communication_from_dict,
}


class DataBackup:

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.logger = get_logger("club_ledger.backup")

    def export_data(self) -> Dict[str, Any]:
        """Snapshot of every backed-up table"""
        with self.storage.atomic():
            tables = {name: self.storage.load_all(name) for name in BACKUP_TABLES}

        log_action(self.logger, "info", "Data exported", action="export_data",
                   extra={name: len(rows) for name, rows in tables.items()})
        return {
            "format_version": EXPORT_FORMAT_VERSION,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "tables": tables,
        }

    def import_data(self, payload: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, int]:
        """
        Replace the backed-up tables with the contents of an export.

        Tables missing from the payload are emptied.

        Returns:
            Number of records imported per table

        Raises:
            ValidationError: Unknown format version or a malformed record;
                nothing is written in that case
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("tables"), dict):
            raise ValidationError("Import payload must contain a 'tables' object")
        version = payload.get("format_version", EXPORT_FORMAT_VERSION)
        if version != EXPORT_FORMAT_VERSION:
            raise ValidationError(f"Unsupported export format version: {version}")

        tables: Dict[str, List[Dict[str, Any]]] = {}
        for name, parse in BACKUP_TABLES.items():
            rows = payload["tables"].get(name) or []
            if not isinstance(rows, list):
                raise ValidationError(f"Table '{name}' must be a list of records")
            for position, row in enumerate(rows):
                try:
                    parse(row)
                except (KeyError, ValueError, TypeError, AttributeError, ArithmeticError) as e:
                    raise ValidationError(
                        f"Invalid {name} record at position {position}: {e}",
                        {"table": name, "position": position}
                    )
            tables[name] = rows

        counts = {name: len(rows) for name, rows in tables.items()}
        with self.storage.atomic():
            for name, rows in tables.items():
                self.storage.clear_table(name)
                for row in rows:
                    self.storage.save(name, row["id"], row)

            self.audit_trail.log_event(
                event_type=AuditEventType.DATA_IMPORTED,
                entity_type="system",
                entity_id="import",
                metadata={"counts": counts, "exported_at": payload.get("exported_at")},
                user_id=user_id
            )

        log_action(self.logger, "warning", "Data imported; existing records replaced",
                   action="import_data", extra=counts)
        return counts
