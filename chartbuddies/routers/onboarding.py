# chartbuddies/routers/onboarding.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["Onboarding"],
    dependencies=[Depends(security.get_current_profile)],
    responses={404: {"description": "Not found"}},
)


@router.get("/me", response_model=schemas.ProfileResponse)
def read_own_profile(current_user: models.UserProfile = Depends(security.get_current_profile)):
    """
    Current user's profile. Created on first call after sign-in; may not be
    linked to a hospital until signup completes.
    """
    return current_user


@router.put("/me", response_model=schemas.ProfileResponse)
def update_own_profile(
    profile_update: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_current_profile)
):
    updated = crud.update_profile(db, current_user, profile_update)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="PROFILE",
        resource_type="user_profile", resource_id=current_user.id,
        details=f"Updated own profile fields: {', '.join(sorted(profile_update.model_dump(exclude_unset=True)))}"
    )
    return updated


@router.post("/onboarding/signup", response_model=schemas.SignupResponse, status_code=status.HTTP_201_CREATED)
def complete_signup(
    signup: schemas.SignupRequest,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_current_profile)
):
    """
    Join a hospital with an invite code, or create a new hospital and become
    its superadmin.
    """
    profile, hospital, created = crud.complete_signup(
        db, current_user,
        full_name=signup.full_name,
        invite_code=signup.invite_code,
        hospital_name=signup.hospital_name,
        facility_type=signup.facility_type,
    )
    crud.create_audit_log(
        db=db, user_id=profile.id, action="SIGNUP", category="ONBOARDING",
        resource_type="hospital", resource_id=hospital.id,
        details=("Created hospital" if created else "Joined hospital by invite code") + f" {hospital.name}"
    )
    return {"profile": profile, "hospital": hospital, "created_hospital": created}
