# chartbuddies/routers/patients.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["Patients"],
    dependencies=[Depends(security.get_onboarded_profile)],
    responses={404: {"description": "Not found"}},
)


@router.post("/patients", response_model=schemas.PatientResponse, status_code=status.HTTP_201_CREATED)
def create_new_patient(
    patient: schemas.PatientCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """
    Register a patient in the caller's hospital. Nurses are assigned to the
    patients they register.
    """
    new_patient = crud.create_patient(db, current_user, patient)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="CREATE", category="PATIENT",
        resource_type="patient", resource_id=new_patient.id,
        details=f"Created new patient: {new_patient.patient_name} ({new_patient.record_number})"
    )
    return new_patient


@router.get("/patients", response_model=List[schemas.PatientResponse])
def read_all_patients(
    skip: int = 0, limit: int = 200, search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    """
    Patients visible to the caller: the whole hospital for head nurses,
    assigned patients for nurses.
    """
    return crud.get_patients(db, current_user, skip=skip, limit=limit, search=search)


@router.get("/patients/{patient_id}", response_model=schemas.PatientResponse)
def read_patient_details(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    db_patient = crud.get_patient(db, current_user, patient_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="READ", category="PATIENT",
        resource_type="patient", resource_id=patient_id, details=f"Accessed details for patient ID {patient_id}"
    )
    return db_patient


@router.put("/patients/{patient_id}", response_model=schemas.PatientResponse)
def update_patient_details(
    patient_id: str,
    patient_update: schemas.PatientUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    updated = crud.update_patient(db, current_user, patient_id, patient_update)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="PATIENT",
        resource_type="patient", resource_id=patient_id,
        details=f"Updated patient fields: {', '.join(sorted(patient_update.model_dump(exclude_unset=True)))}"
    )
    return updated


@router.delete("/patients/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    crud.delete_patient(db, current_user, patient_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="DELETE", category="PATIENT",
        resource_type="patient", resource_id=patient_id, details=f"Deleted patient ID {patient_id}"
    )
    return


# --- Nurse assignments ---

@router.get("/patients/{patient_id}/assignments", response_model=List[schemas.AssignmentResponse])
def read_assignments(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_onboarded_profile)
):
    return crud.get_assignments(db, current_user, patient_id)


@router.post("/patients/{patient_id}/assignments", response_model=schemas.AssignmentResponse,
             status_code=status.HTTP_201_CREATED)
def assign_nurse(
    patient_id: str,
    assignment: schemas.AssignmentCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.require_clinical_lead)
):
    db_assignment = crud.create_assignment(db, current_user, patient_id, assignment.nurse_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="CREATE", category="ASSIGNMENT",
        resource_type="assignment", resource_id=db_assignment.id,
        details=f"Assigned nurse {assignment.nurse_id} to patient {patient_id}"
    )
    return db_assignment


@router.delete("/patients/{patient_id}/assignments/{nurse_id}", status_code=status.HTTP_204_NO_CONTENT)
def unassign_nurse(
    patient_id: str,
    nurse_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.require_clinical_lead)
):
    crud.delete_assignment(db, current_user, patient_id, nurse_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="DELETE", category="ASSIGNMENT",
        resource_type="assignment", resource_id=patient_id,
        details=f"Removed nurse {nurse_id} from patient {patient_id}"
    )
    return
