# chartbuddies/routers/users.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["Users"],
    dependencies=[Depends(security.get_onboarded_profile)],
    responses={404: {"description": "Not found"}},
)


@router.get("/users", response_model=List[schemas.ProfileResponse])
def read_colleagues(
    hospital_id: Optional[str] = None,
    skip: int = 0, limit: int = 100,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    return crud.get_profiles(db, current_user, hospital_id=hospital_id, skip=skip, limit=limit)


@router.put("/users/{user_id}/role", response_model=schemas.ProfileResponse)
def update_user_role(
    user_id: str,
    role_update: schemas.RoleUpdate,
    db: Session = Depends(get_db),
    current_admin: models.UserProfile = Depends(security.require_superadmin)
):
    profile = crud.update_profile_role(db, current_admin, user_id, role_update.role, role_update.hospital_id)
    crud.create_audit_log(
        db=db, user_id=current_admin.id, action="UPDATE", category="USER",
        resource_type="user_profile", resource_id=user_id,
        details=f"Set role {profile.role.value} (hospital {profile.hospital_id})"
    )
    return profile
