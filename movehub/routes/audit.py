from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_roles
from ..db import get_db
from ..models.enums import UserRole
from ..services.audit import get_audit_logs, verify_audit_log
from .serializers import audit_dict

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/{entity_type}/{entity_id}")
def entity_history(
    entity_type: str,
    entity_id: str,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
    _=Depends(require_roles(UserRole.site_admin, UserRole.super_admin)),
):
    """Audit trail of one entity, newest first, with integrity check per entry."""
    entries = get_audit_logs(db, entity_type=entity_type, entity_id=entity_id, limit=min(limit, 500), offset=offset)
    result = []
    for entry in entries:
        item = audit_dict(entry)
        item["verified"] = verify_audit_log(entry)
        result.append(item)
    return result
