# chartbuddies/routers/mar_administrations.py
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["MAR Administrations"],
    dependencies=[Depends(security.get_onboarded_profile)],
    responses={404: {"description": "Not found"}},
)


@router.put("/mar-medications/{medication_id}/administrations/{day}", response_model=schemas.AdministrationResponse)
def set_administration(
    medication_id: str,
    administration: schemas.AdministrationSet,
    day: int = Path(..., ge=1, le=31),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """
    Chart one cell. Writing an occupied cell replaces it. Legend codes NG, H and
    R chart a dose not given; DC also marks the rest of the month discontinued.
    """
    cell = crud.set_administration(
        db, current_user, medication_id, day,
        initials=administration.initials,
        given=administration.given,
        reason_for_omission=administration.reason_for_omission,
        notes=administration.notes,
    )
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="MAR",
        resource_type="mar_administration", resource_id=cell.id,
        details=f"Charted day {day} as {cell.initials} (given={cell.given})"
    )
    return cell


@router.delete("/mar-medications/{medication_id}/administrations/{day}", status_code=status.HTTP_204_NO_CONTENT)
def clear_administration(
    medication_id: str,
    day: int = Path(..., ge=1, le=31),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    if crud.clear_administration(db, current_user, medication_id, day):
        crud.create_audit_log(
            db=db, user_id=current_user.id, action="DELETE", category="MAR",
            resource_type="mar_administration", resource_id=medication_id, details=f"Cleared day {day}"
        )
    return


@router.patch("/mar-medications/{medication_id}/administrations/{day}/note",
              response_model=schemas.AdministrationResponse)
def update_administration_note(
    medication_id: str,
    note: schemas.AdministrationNoteUpdate,
    day: int = Path(..., ge=1, le=31),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    cell = crud.update_administration_note(db, current_user, medication_id, day, note.notes)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="MAR",
        resource_type="mar_administration", resource_id=cell.id, details=f"Updated note for day {day}"
    )
    return cell
