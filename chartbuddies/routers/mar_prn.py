# chartbuddies/routers/mar_prn.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["MAR PRN Records"],
    dependencies=[Depends(security.get_onboarded_profile)],
    responses={404: {"description": "Not found"}},
)


@router.post("/mar-forms/{form_id}/prn-records", response_model=schemas.PrnRecordResponse,
             status_code=status.HTTP_201_CREATED)
def add_prn_record(
    form_id: str,
    record: schemas.PrnRecordCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    db_record = crud.add_prn_record(db, current_user, form_id, record)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="CREATE", category="MAR",
        resource_type="mar_prn_record", resource_id=db_record.id,
        details=f"PRN #{db_record.entry_number}: {record.medication}"
    )
    return db_record


@router.get("/mar-forms/{form_id}/prn-records", response_model=List[schemas.PrnRecordResponse])
def read_prn_records(
    form_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    return crud.get_prn_records(db, current_user, form_id)


@router.patch("/prn-records/{record_id}", response_model=schemas.PrnRecordResponse)
def update_prn_record(
    record_id: str,
    record_update: schemas.PrnRecordUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """Initials can only be added once the time and result are filled in."""
    db_record = crud.update_prn_record(db, current_user, record_id, record_update)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="MAR",
        resource_type="mar_prn_record", resource_id=record_id,
        details=f"Updated PRN fields: {', '.join(sorted(record_update.model_dump(exclude_unset=True)))}"
    )
    return db_record


@router.delete("/prn-records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_prn_record(
    record_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    crud.delete_prn_record(db, current_user, record_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="DELETE", category="MAR",
        resource_type="mar_prn_record", resource_id=record_id, details="Deleted PRN record"
    )
    return
