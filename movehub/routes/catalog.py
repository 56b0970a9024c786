from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Company, Service

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/services")
def list_services(db: Session = Depends(get_db), _=Depends(get_current_user)):
    rows = db.query(Service).filter(Service.is_active == True).order_by(Service.name.asc()).all()  # noqa: E712
    return [{"id": s.id, "name": s.name, "description": s.description} for s in rows]


@router.get("/companies")
def list_companies(db: Session = Depends(get_db), _=Depends(get_current_user)):
    rows = db.query(Company).filter(Company.is_active == True).order_by(Company.name.asc()).all()  # noqa: E712
    return [{"id": c.id, "name": c.name, "email": c.email, "description": c.description} for c in rows]
