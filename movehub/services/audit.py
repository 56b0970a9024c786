"""
Audit logging service.
Append-only audit log with integrity hashing. Entries are added to the
caller's transaction so they commit (or roll back) with the transition.
"""
import hashlib
import json
from datetime import datetime
from typing import Optional, Dict
from sqlalchemy.orm import Session

from ..models.models import AuditLog, User
from ..config import settings


def compute_integrity_hash(
    entity_type: str,
    entity_id: str,
    action: str,
    actor_id: Optional[int],
    actor_role: Optional[str],
    source: Optional[str],
    timestamp_utc: datetime,
    changes_json: Optional[Dict],
    context: Optional[Dict],
    integrity_secret: str,
) -> str:
    canonical_data = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "action": action,
        "actor_id": str(actor_id) if actor_id else None,
        "actor_role": actor_role,
        "source": source,
        "timestamp_utc": timestamp_utc.isoformat(),
        "changes": changes_json,
        "context": context,
    }
    # Remove None values and sort keys for consistency
    canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
    hash_input = f"{canonical_json}:{integrity_secret}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id,
    action: str,
    actor: Optional[User] = None,
    source: str = "api",
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None
) -> AuditLog:
    """
    Add an append-only audit log entry to the current transaction.

    Args:
        db: Database session
        entity_type: order|order_service|offer|assignment|report|employment
        entity_id: Entity ID
        action: Action performed (CREATE|SEND|ACCEPT|REJECT|CANCEL|MAKE_LEADER|...)
        actor: User who performed the action (None for system actions)
        source: Source of the action (api|system)
        changes_json: Before/after diff
        context: Additional context (order_id, order_service_id, offer_id, ...)
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)
    """
    timestamp_utc = datetime.utcnow().replace(tzinfo=None)
    actor_id = actor.id if actor is not None else None
    actor_role = actor.role.value if actor is not None else "system"

    if integrity_secret is None:
        integrity_secret = settings.jwt_secret

    integrity_hash = None
    if integrity_secret:
        integrity_hash = compute_integrity_hash(
            entity_type, str(entity_id), action, actor_id, actor_role, source,
            timestamp_utc, changes_json, context, integrity_secret,
        )

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        source=source,
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=integrity_hash,
    )
    db.add(audit_log)
    return audit_log


def verify_audit_log(entry: AuditLog, integrity_secret: Optional[str] = None) -> bool:
    """Recompute the integrity hash of a stored entry and compare."""
    secret = integrity_secret if integrity_secret is not None else settings.jwt_secret
    timestamp = entry.timestamp_utc.replace(tzinfo=None)
    expected = compute_integrity_hash(
        entry.entity_type, entry.entity_id, entry.action, entry.actor_id, entry.actor_role,
        entry.source, timestamp, entry.changes_json, entry.context, secret,
    )
    return expected == entry.integrity_hash


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> list:
    """
    Get audit logs with optional filtering, newest first.
    """
    query = db.query(AuditLog)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.filter(AuditLog.entity_id == str(entity_id))

    query = query.order_by(AuditLog.timestamp_utc.desc(), AuditLog.id.desc())
    query = query.limit(limit).offset(offset)

    return query.all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    all_keys = set(before.keys()) | set(after.keys())

    for key in all_keys:
        before_val = before.get(key)
        after_val = after.get(key)

        if before_val != after_val:
            diff[key] = {
                "before": before_val,
                "after": after_val,
            }

    return diff
