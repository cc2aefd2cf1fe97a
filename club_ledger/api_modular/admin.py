"""
Admin endpoints (consistency checks, repair, backup, audit)
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends

from .dependencies import ClubSystem, get_club_system
from .schemas import ImportRequest, member_response


router = APIRouter()


@router.get("/consistency")
async def check_consistency(system: ClubSystem = Depends(get_club_system)) -> Dict[str, Any]:
    """Scan members, loans and the ledger for broken balance rules"""
    return system.ledger.verify_consistency().to_dict()


@router.post("/members/{member_id}/reconcile")
async def reconcile_member(
    member_id: str,
    user_id: Optional[str] = None,
    system: ClubSystem = Depends(get_club_system)
) -> Dict[str, Any]:
    """Rebuild a member's contribution total and active loan from the records"""
    member = system.ledger.reconcile_member(member_id, user_id=user_id)
    return member_response(member)


@router.get("/export")
async def export_data(system: ClubSystem = Depends(get_club_system)) -> Dict[str, Any]:
    """Export members, loans, transactions and communication logs"""
    return system.backup.export_data()


@router.post("/import")
async def import_data(
    request: ImportRequest,
    system: ClubSystem = Depends(get_club_system)
) -> Dict[str, Any]:
    """Replace all club data with an export"""
    counts = system.backup.import_data(
        request.model_dump(exclude={"user_id"}), user_id=request.user_id
    )
    return {"imported": counts, "consistency": system.ledger.verify_consistency().to_dict()}


@router.get("/audit/integrity")
async def verify_audit_integrity(system: ClubSystem = Depends(get_club_system)) -> Dict[str, Any]:
    """Verify the audit chain hashes and links"""
    return system.audit_trail.verify_integrity()


@router.get("/audit/events")
async def list_audit_events(
    limit: int = 100,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    system: ClubSystem = Depends(get_club_system)
) -> Dict[str, Any]:
    """Most recent audit events, or all events for one entity"""
    if entity_type and entity_id:
        events = system.audit_trail.get_events_for_entity(entity_type, entity_id)
    else:
        events = system.audit_trail.get_all_events(limit=limit)
    return {"events": [event.to_dict() for event in events]}
