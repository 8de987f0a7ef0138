from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from school_scheduler.api import deps
from school_scheduler.schemas import settings_schema
from school_scheduler.services import settings_service

router = APIRouter()


@router.get("/makeup-policy", response_model=settings_schema.MakeupPolicy)
def get_makeup_policy_route(db: Session = Depends(deps.get_db)):
    return settings_service.get_makeup_policy(db)


@router.put("/makeup-policy", response_model=settings_schema.MakeupPolicy)
def update_makeup_policy_route(policy_in: settings_schema.MakeupPolicyUpdate, db: Session = Depends(deps.get_db)):
    return settings_service.update_makeup_policy(db, policy_in)
