# chartbuddies/routers/mar_vitals.py
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["MAR Vital Signs"],
    dependencies=[Depends(security.get_onboarded_profile)],
    responses={404: {"description": "Not found"}},
)


@router.put("/mar-forms/{form_id}/vital-signs", response_model=schemas.VitalSignResponse,
            responses={204: {"description": "Cell cleared"}})
def set_vital_sign(
    form_id: str,
    vital: schemas.VitalSignSet,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """Record one vitals cell; an empty value clears it."""
    cell = crud.set_vital_sign(db, current_user, form_id, vital.vital_type, vital.day_of_month, vital.value)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE" if cell else "DELETE", category="MAR",
        resource_type="mar_vital_sign", resource_id=cell.id if cell else form_id,
        details=f"{vital.vital_type.value} day {vital.day_of_month}"
    )
    if cell is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return cell


@router.get("/mar-forms/{form_id}/vital-signs", response_model=List[schemas.VitalSignResponse])
def read_vital_signs(
    form_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    return crud.get_vital_signs(db, current_user, form_id)
