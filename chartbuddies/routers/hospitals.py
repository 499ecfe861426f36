# chartbuddies/routers/hospitals.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["Hospitals"],
    dependencies=[Depends(security.get_onboarded_profile)],
    responses={404: {"description": "Not found"}},
)


@router.get("/hospitals", response_model=List[schemas.HospitalResponse])
def read_hospitals(
    skip: int = 0, limit: int = 100,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    return crud.get_hospitals(db, current_user, skip=skip, limit=limit)


@router.get("/hospitals/{hospital_id}", response_model=schemas.HospitalResponse)
def read_hospital(
    hospital_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    return crud.get_hospital(db, current_user, hospital_id)


@router.put("/hospitals/{hospital_id}", response_model=schemas.HospitalResponse)
def update_hospital(
    hospital_id: str,
    hospital_update: schemas.HospitalUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.require_superadmin)
):
    hospital = crud.update_hospital(db, current_user, hospital_id, hospital_update)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="HOSPITAL",
        resource_type="hospital", resource_id=hospital.id, details=f"Updated hospital {hospital.name}"
    )
    return hospital


@router.post("/hospitals/{hospital_id}/invite-code", response_model=schemas.HospitalResponse)
def regenerate_invite_code(
    hospital_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.require_superadmin)
):
    """Issue a fresh invite code; the old one stops working immediately."""
    hospital = crud.regenerate_invite_code(db, current_user, hospital_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="HOSPITAL",
        resource_type="hospital", resource_id=hospital.id, details="Regenerated invite code"
    )
    return hospital
