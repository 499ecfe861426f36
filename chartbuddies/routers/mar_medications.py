# chartbuddies/routers/mar_medications.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["MAR Medications"],
    dependencies=[Depends(security.get_onboarded_profile)],
    responses={404: {"description": "Not found"}},
)


@router.post("/mar-forms/{form_id}/medications", response_model=List[schemas.MedicationResponse],
             status_code=status.HTTP_201_CREATED)
def add_medication(
    form_id: str,
    medication: schemas.MedicationCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """
    Add one prescription. A medication given N times a day becomes N rows, one
    per hour. With `initials`, the start date is charted as given.
    """
    rows = crud.add_medication(db, current_user, form_id, medication)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="CREATE", category="MAR",
        resource_type="mar_medication", resource_id=rows[0].id if rows else None,
        details=f"Added {medication.medication_name} {medication.dosage} x{medication.frequency}"
    )
    return rows


@router.post("/mar-forms/{form_id}/vitals-entry", response_model=schemas.MedicationResponse,
             status_code=status.HTTP_201_CREATED)
def add_vitals_entry(
    form_id: str,
    entry: schemas.VitalsEntryCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    row = crud.add_vitals_entry(db, current_user, form_id, entry)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="CREATE", category="MAR",
        resource_type="mar_medication", resource_id=row.id, details="Added vital signs row"
    )
    return row


@router.patch("/mar-medications/{medication_id}", response_model=schemas.MedicationResponse)
def update_medication(
    medication_id: str,
    medication_update: schemas.MedicationUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    row = crud.update_medication(db, current_user, medication_id, medication_update)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="MAR",
        resource_type="mar_medication", resource_id=medication_id,
        details=f"Updated medication fields: {', '.join(sorted(medication_update.model_dump(exclude_unset=True)))}"
    )
    return row


@router.delete("/mar-medications/{medication_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_medication(
    medication_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    crud.delete_medication(db, current_user, medication_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="DELETE", category="MAR",
        resource_type="mar_medication", resource_id=medication_id, details="Deleted medication row"
    )
    return


@router.post("/mar-forms/{form_id}/medications/reorder", response_model=List[schemas.MedicationResponse])
def reorder_medications(
    form_id: str,
    reorder: schemas.MedicationReorder,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    rows = crud.reorder_medications(db, current_user, form_id, reorder.medication_ids)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="MAR",
        resource_type="mar_form", resource_id=form_id, details="Reordered medication rows"
    )
    return rows


@router.post("/mar-medications/{medication_id}/move", response_model=List[schemas.MedicationResponse])
def move_medication(
    medication_id: str,
    move: schemas.MedicationMove,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    rows = crud.move_medication(db, current_user, medication_id, move.direction)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="MAR",
        resource_type="mar_medication", resource_id=medication_id, details=f"Moved row {move.direction}"
    )
    return rows
