# chartbuddies/routers/mar_forms.py
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db
from ..services.mar_duplication import duplicate_mar_form

router = APIRouter(
    tags=["MAR Forms"],
    dependencies=[Depends(security.get_onboarded_profile)],
    responses={404: {"description": "Not found"}},
)


@router.post("/patients/{patient_id}/mar-forms/open", response_model=schemas.MarFormResponse)
def open_mar_form(
    patient_id: str,
    request: schemas.MarFormOpen,
    response: Response,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """
    Open the patient's MAR for a month, creating it (201) the first time.
    Demographics are snapshotted at creation and never follow later patient edits.
    """
    form, created = crud.get_or_create_mar_form(db, current_user, patient_id, request.month_year)
    if created:
        response.status_code = status.HTTP_201_CREATED
        crud.create_audit_log(
            db=db, user_id=current_user.id, action="CREATE", category="MAR",
            resource_type="mar_form", resource_id=form.id,
            details=f"Opened MAR {form.month_year} for patient {patient_id}"
        )
    return form


@router.get("/patients/{patient_id}/mar-forms", response_model=List[schemas.MarFormResponse])
def read_patient_mar_forms(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    return crud.get_mar_forms_for_patient(db, current_user, patient_id)


@router.get("/mar-forms/{form_id}", response_model=schemas.MarFormDetail)
def read_mar_form(
    form_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    form = crud.get_mar_form(db, current_user, form_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="READ", category="MAR",
        resource_type="mar_form", resource_id=form_id, details=f"Viewed MAR {form.month_year}"
    )
    return form


@router.patch("/mar-forms/{form_id}", response_model=schemas.MarFormResponse)
def update_mar_form(
    form_id: str,
    form_update: schemas.MarFormUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    form = crud.update_mar_form(db, current_user, form_id, form_update)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="MAR",
        resource_type="mar_form", resource_id=form_id,
        details=f"Updated MAR fields: {', '.join(sorted(form_update.model_dump(exclude_unset=True)))}"
    )
    return form


@router.post("/mar-forms/{form_id}/status", response_model=schemas.MarFormResponse)
def change_mar_form_status(
    form_id: str,
    status_update: schemas.MarFormStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    form = crud.set_mar_form_status(db, current_user, form_id, status_update.status)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="MAR",
        resource_type="mar_form", resource_id=form_id, details=f"Status set to {form.status.value}"
    )
    return form


@router.get("/mar-forms/{form_id}/grouped-medications", response_model=List[schemas.GroupedMedicationResponse])
def read_grouped_medications(
    form_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """Logical medications (one per prescription) as offered for duplication."""
    return crud.get_grouped_medications(db, current_user, form_id)


@router.post("/mar-forms/{form_id}/duplicate", response_model=schemas.MarFormDetail,
             status_code=status.HTTP_201_CREATED)
def duplicate_form(
    form_id: str,
    request: schemas.MarFormDuplicate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """
    Copy a form into another month. Send `medications` to duplicate an edited
    list; omit it to carry every medication over unchanged.
    """
    form = duplicate_mar_form(db, current_user, form_id, request.month_year, request.medications)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="CREATE", category="MAR",
        resource_type="mar_form", resource_id=form.id,
        details=f"Duplicated MAR {form_id} into {form.month_year}"
    )
    return form
