# chartbuddies/crud.py
from sqlalchemy.orm import Session
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from datetime import datetime, timedelta, date, timezone
from typing import Optional, List, Dict, Any, Tuple, Callable
import calendar

import structlog

from . import models, schemas
from .access_policy import (
    Action, Resource, Subject, TenantChain, authorize, authorize_create, can_access, resolve_chain, scope_patients
)
from .config import get_settings
from .services.medication_grouping import MedicationEntry, group_medications, ORDER_STEP
from .services.timeparse import format_time_display

logger = structlog.get_logger(__name__)
# IMPORTANT: services that write through crud (invite codes, duplication) import it
# at module level, so crud imports them lazily inside functions.


class CRUDError(Exception):
    status_code = 400


class NotFoundError(CRUDError):
    status_code = 404


class ConflictError(CRUDError):
    status_code = 409


class FormArchivedError(ConflictError):
    pass


class ValidationError(CRUDError):
    status_code = 422


class InvalidInviteCodeError(CRUDError):
    status_code = 400


class OnboardingError(CRUDError):
    status_code = 403


class DuplicationError(CRUDError):
    status_code = 500


BUILT_IN_LEGEND = {
    "DC": "Discontinued",
    "NG": "Not Given",
    "PRN": "As Needed",
    "H": "Held",
    "R": "Refused",
}
DISCONTINUED_CODE = "DC"
NOT_GIVEN_CODES = {"NG", "H", "R"}

ALLOWED_STATUS_TRANSITIONS = {
    models.MarFormStatus.draft: {models.MarFormStatus.submitted, models.MarFormStatus.archived},
    models.MarFormStatus.submitted: {models.MarFormStatus.archived},
    models.MarFormStatus.archived: set(),
}

_MONTH_FORMATS = ("%B %Y", "%b %Y", "%Y-%m", "%m/%Y", "%Y-%m-%d")


def as_subject(actor) -> Subject:
    return actor if isinstance(actor, Subject) else Subject.from_profile(actor)


def _commit(db: Session, context: str):
    """Commit or translate the failure into the crud error taxonomy."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity error while {context}: {e.orig}")
        raise ConflictError(f"Conflicting data while {context}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while {context}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def _upsert(db: Session, lookup: Callable[[], Any], build: Callable[[], Any], apply: Callable[[Any], None]):
    """
    Update the row `lookup` finds, or insert a new one. Losing an insert race to
    a concurrent writer is recovered by re-fetching the winner and updating it.
    """
    row = lookup()
    if row is not None:
        apply(row)
        db.flush()
        return row

    row = build()
    apply(row)
    db.add(row)
    try:
        db.flush()
        return row
    except IntegrityError:
        db.rollback()
        logger.info("upsert_insert_conflict_recovered", table=row.__tablename__)
    row = lookup()
    if row is None:
        raise ConflictError("Record changed concurrently, please retry")
    apply(row)
    db.flush()
    return row


# ==================== AUDIT LOGS ====================

def create_audit_log(db, user_id=None, action=None, category=None, details=None, **kwargs):
    """Create a new structured audit log entry."""
    try:
        if hasattr(category, "value"):
            category = category.value
        db_log = models.AuditLog(
            user_id=user_id,
            action=models.AuditAction(getattr(action, "value", action) or "READ"),
            category=category or "GENERAL",
            severity=kwargs.get("severity", "INFO"),
            resource_type=kwargs.get("resource_type"),
            resource_id=str(kwargs["resource_id"]) if kwargs.get("resource_id") is not None else None,
            details=details,
        )
        db.add(db_log)
        db.commit()
        return db_log
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating audit log: {e}")
        # Logging failure should not crash main operations
        return None


def get_audit_logs(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    user_id: Optional[str] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> List[models.AuditLog]:
    """Retrieve audit logs with filtering."""
    try:
        query = db.query(models.AuditLog)
        if user_id:
            query = query.filter(models.AuditLog.user_id == user_id)
        if category:
            query = query.filter(models.AuditLog.category == category)
        if severity:
            query = query.filter(models.AuditLog.severity == severity)
        if start_date:
            query = query.filter(models.AuditLog.timestamp >= start_date)
        if end_date:
            # Add one day to end_date to include the entire day
            query = query.filter(models.AuditLog.timestamp < (end_date + timedelta(days=1)))
        return query.order_by(models.AuditLog.timestamp.desc(), models.AuditLog.id.desc()).offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching audit logs: {e}")
        raise CRUDError("A database error occurred while fetching audit logs.")


# ==================== NAMES ====================

def split_full_name(full_name: Optional[str]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """First word, middle words, last word."""
    words = (full_name or "").split()
    if not words:
        return None, None, None
    if len(words) == 1:
        return words[0], None, None
    middle = " ".join(words[1:-1]) or None
    return words[0], middle, words[-1]


def join_name_parts(*parts: Optional[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def _apply_names(profile: models.UserProfile, full_name=None, first_name=None, middle_name=None, last_name=None):
    if any(p is not None for p in (first_name, middle_name, last_name)):
        if first_name is not None:
            profile.first_name = first_name.strip() or None
        if middle_name is not None:
            profile.middle_name = middle_name.strip() or None
        if last_name is not None:
            profile.last_name = last_name.strip() or None
        profile.full_name = join_name_parts(profile.first_name, profile.middle_name, profile.last_name)
    elif full_name is not None:
        profile.full_name = full_name.strip()
        profile.first_name, profile.middle_name, profile.last_name = split_full_name(full_name)


# ==================== HOSPITALS ====================

def create_hospital(db: Session, name: str, facility_type: str = "hospital", commit: bool = True, **fields) -> models.Hospital:
    from .services.invite_codes import assign_unique_invite_code

    hospital = models.Hospital(name=name.strip(), facility_type=facility_type or "hospital", **fields)
    assign_unique_invite_code(db, hospital)
    if commit:
        _commit(db, "creating hospital")
        db.refresh(hospital)
    logger.info(f"Hospital created: {hospital.id}")
    return hospital


def get_hospital(db: Session, actor, hospital_id: str, action: Action = Action.read) -> models.Hospital:
    hospital = db.get(models.Hospital, hospital_id)
    if hospital is None:
        raise NotFoundError("Hospital not found")
    return authorize(db, as_subject(actor), action, hospital, label="Hospital")


def get_hospitals(db: Session, actor, skip: int = 0, limit: int = 100) -> List[models.Hospital]:
    subject = as_subject(actor)
    query = db.query(models.Hospital)
    if subject.role != models.UserRole.superadmin:
        if not subject.hospital_id:
            return []
        query = query.filter(models.Hospital.id == subject.hospital_id)
    return query.order_by(models.Hospital.name).offset(skip).limit(limit).all()


def update_hospital(db: Session, actor, hospital_id: str, hospital_update: schemas.HospitalUpdate) -> models.Hospital:
    hospital = get_hospital(db, actor, hospital_id, Action.update)
    for key, value in hospital_update.model_dump(exclude_unset=True).items():
        if key in ("name", "facility_type") and value is None:
            continue
        setattr(hospital, key, value)
    _commit(db, "updating hospital")
    db.refresh(hospital)
    return hospital


def regenerate_invite_code(db: Session, actor, hospital_id: str) -> models.Hospital:
    from .services.invite_codes import assign_unique_invite_code

    hospital = get_hospital(db, actor, hospital_id, Action.update)
    assign_unique_invite_code(db, hospital)
    _commit(db, "regenerating invite code")
    db.refresh(hospital)
    return hospital


# ==================== PROFILES & ONBOARDING ====================

def get_profile(db: Session, profile_id: str) -> Optional[models.UserProfile]:
    try:
        return db.get(models.UserProfile, profile_id)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching profile {profile_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def ensure_profile(db: Session, subject_id: str, email: str, full_name: Optional[str] = None,
                   max_attempts: Optional[int] = None) -> models.UserProfile:
    """
    Fetch the profile for an identity-provider subject, creating it on first sight.
    A concurrent first request can win the insert; we roll back and re-fetch.
    """
    attempts = max_attempts or get_settings().onboarding_max_attempts
    for attempt in range(1, attempts + 1):
        profile = db.get(models.UserProfile, subject_id)
        if profile is not None:
            return profile

        profile = models.UserProfile(id=subject_id, email=email or "", role=models.UserRole.nurse)
        _apply_names(profile, full_name=full_name or "")
        db.add(profile)
        try:
            db.commit()
            db.refresh(profile)
            logger.info("profile_created", profile_id=subject_id)
            return profile
        except IntegrityError:
            db.rollback()
            logger.warning("profile_insert_conflict", profile_id=subject_id, attempt=attempt)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("profile_insert_failed", profile_id=subject_id, attempt=attempt, error=str(e))

    raise OnboardingError("Your account could not be set up. Please contact administrator.")


def repair_hospital_link(db: Session, profile: models.UserProfile, max_attempts: Optional[int] = None) -> models.UserProfile:
    """
    Attach a profile that never finished onboarding to a hospital: the most
    recently created active one, else a fresh "Default Hospital". Nurses stay
    nurses, anyone else becomes superadmin of it.
    """
    if profile.hospital_id:
        return profile

    settings = get_settings()
    if not settings.onboarding_auto_attach_hospital:
        raise OnboardingError("Your account is not linked to a hospital. Please contact administrator.")

    attempts = max_attempts or settings.onboarding_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            hospital = db.query(models.Hospital).filter(
                models.Hospital.is_active.is_(True)
            ).order_by(models.Hospital.created_at.desc()).first()
            if hospital is None:
                hospital = create_hospital(db, name="Default Hospital", commit=False)
            profile.hospital_id = hospital.id
            if profile.role != models.UserRole.nurse:
                profile.role = models.UserRole.superadmin
            db.commit()
            db.refresh(profile)
            logger.info("profile_hospital_repaired", profile_id=profile.id, hospital_id=hospital.id,
                        role=profile.role.value)
            return profile
        except (SQLAlchemyError, ConflictError) as e:
            db.rollback()
            logger.warning("profile_hospital_repair_failed", profile_id=profile.id, attempt=attempt, error=str(e))

    raise OnboardingError("Your account is not linked to a hospital. Please contact administrator.")


def complete_signup(db: Session, profile: models.UserProfile, full_name: Optional[str] = None,
                    invite_code: Optional[str] = None, hospital_name: Optional[str] = None,
                    facility_type: str = "hospital") -> Tuple[models.UserProfile, models.Hospital, bool]:
    """Join a hospital by invite code, or found a new one and run it as superadmin."""
    from .services.invite_codes import normalize_invite_code

    if profile.hospital_id:
        raise ConflictError("This account is already linked to a hospital")

    code = normalize_invite_code(invite_code)
    if code:
        hospital = db.query(models.Hospital).filter(models.Hospital.invite_code == code).first()
        if hospital is None or not hospital.is_active:
            raise InvalidInviteCodeError("Invalid or inactive invite code")
        role, created = models.UserRole.nurse, False
    else:
        if not hospital_name or not hospital_name.strip():
            raise ValidationError("hospital_name is required when no invite code is given")
        hospital = create_hospital(db, name=hospital_name, facility_type=facility_type, commit=False)
        role, created = models.UserRole.superadmin, True

    # Invite code allocation may roll back, so profile edits come last
    profile.hospital_id = hospital.id
    profile.role = role
    if full_name:
        _apply_names(profile, full_name=full_name)
    _commit(db, "completing signup")
    db.refresh(profile)
    db.refresh(hospital)
    logger.info("signup_completed", profile_id=profile.id, hospital_id=hospital.id, created_hospital=created)
    return profile, hospital, created


def update_profile(db: Session, profile: models.UserProfile, profile_update: schemas.ProfileUpdate) -> models.UserProfile:
    update_data = profile_update.model_dump(exclude_unset=True)
    _apply_names(
        profile,
        full_name=update_data.pop("full_name", None),
        first_name=update_data.pop("first_name", None),
        middle_name=update_data.pop("middle_name", None),
        last_name=update_data.pop("last_name", None),
    )
    for key, value in update_data.items():
        setattr(profile, key, value)
    _commit(db, "updating profile")
    db.refresh(profile)
    return profile


def get_profiles(db: Session, actor, hospital_id: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[models.UserProfile]:
    """Colleagues in the actor's hospital; superadmin sees everyone (optionally one hospital)."""
    subject = as_subject(actor)
    query = db.query(models.UserProfile)
    if subject.role == models.UserRole.superadmin:
        if hospital_id:
            query = query.filter(models.UserProfile.hospital_id == hospital_id)
    elif subject.hospital_id:
        query = query.filter(models.UserProfile.hospital_id == subject.hospital_id)
    else:
        query = query.filter(models.UserProfile.id == subject.id)
    return query.order_by(models.UserProfile.full_name).offset(skip).limit(limit).all()


def update_profile_role(db: Session, actor, profile_id: str, role: models.UserRole,
                        hospital_id: Optional[str] = None) -> models.UserProfile:
    subject = as_subject(actor)
    profile = db.get(models.UserProfile, profile_id)
    if profile is None or subject.role != models.UserRole.superadmin:
        raise NotFoundError("User not found")
    if hospital_id is not None:
        if db.get(models.Hospital, hospital_id) is None:
            raise ValidationError("Hospital does not exist")
        profile.hospital_id = hospital_id
    profile.role = role
    _commit(db, "updating user role")
    db.refresh(profile)
    return profile


# ==================== PATIENTS ====================

def _patient_hospital_for(subject: Subject, requested: Optional[str]) -> Optional[str]:
    if subject.role == models.UserRole.superadmin and requested:
        return requested
    return subject.hospital_id


def create_patient(db: Session, actor, patient: schemas.PatientCreate) -> models.Patient:
    subject = as_subject(actor)
    hospital_id = _patient_hospital_for(subject, patient.hospital_id)
    if not hospital_id:
        raise ValidationError("A hospital is required to register patients")
    authorize_create(db, subject, Resource.patient, TenantChain(hospital_id=hospital_id), label="Hospital")

    if db.query(models.Patient.id).filter(models.Patient.record_number == patient.record_number).first():
        raise ConflictError("A patient with this record number already exists")

    data = patient.model_dump(exclude={"hospital_id"})
    db_patient = models.Patient(hospital_id=hospital_id, created_by=subject.id, **data)
    db.add(db_patient)
    db.flush()
    # Nurses keep access to the patients they register
    if subject.role == models.UserRole.nurse:
        db.add(models.NursePatientAssignment(nurse_id=subject.id, patient_id=db_patient.id, assigned_by=subject.id))
    _commit(db, "creating patient")
    db.refresh(db_patient)
    return db_patient


def get_patient(db: Session, actor, patient_id: str, action: Action = Action.read) -> models.Patient:
    """Get a single patient by ID, checked against the actor's tenant."""
    patient = db.get(models.Patient, patient_id)
    if patient is None:
        raise NotFoundError("Patient not found")
    return authorize(db, as_subject(actor), action, patient, label="Patient")


def get_patients(db: Session, actor, skip: int = 0, limit: int = 100, search: str = None) -> List[models.Patient]:
    """Get patients visible to the actor with optional search"""
    query = scope_patients(db.query(models.Patient), as_subject(actor))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            models.Patient.patient_name.ilike(like) | models.Patient.record_number.ilike(like)
        )
    return query.order_by(models.Patient.patient_name).offset(skip).limit(limit).all()


def update_patient(db: Session, actor, patient_id: str, patient_update: schemas.PatientUpdate) -> models.Patient:
    db_patient = get_patient(db, actor, patient_id, Action.update)
    update_data = patient_update.model_dump(exclude_unset=True)

    new_record = update_data.get("record_number")
    if new_record and new_record != db_patient.record_number:
        clash = db.query(models.Patient.id).filter(
            models.Patient.record_number == new_record, models.Patient.id != db_patient.id
        ).first()
        if clash:
            raise ConflictError("A patient with this record number already exists")

    for key, value in update_data.items():
        if key == "allergies":
            value = value or ""
        elif value is None and key in ("patient_name", "record_number", "date_of_birth", "sex", "physician_name"):
            continue
        setattr(db_patient, key, value)

    _commit(db, "updating patient")
    db.refresh(db_patient)
    return db_patient


def delete_patient(db: Session, actor, patient_id: str) -> bool:
    db_patient = get_patient(db, actor, patient_id, Action.delete)
    db.delete(db_patient)
    _commit(db, "deleting patient")
    return True


# --- Assignments ---

def get_assignments(db: Session, actor, patient_id: str) -> List[models.NursePatientAssignment]:
    subject = as_subject(actor)
    get_patient(db, actor, patient_id)
    rows = db.query(models.NursePatientAssignment).filter(
        models.NursePatientAssignment.patient_id == patient_id
    ).order_by(models.NursePatientAssignment.assigned_at).all()
    return [r for r in rows if can_access(subject, Action.read, Resource.assignment, resolve_chain(db, r))]


def create_assignment(db: Session, actor, patient_id: str, nurse_id: str) -> models.NursePatientAssignment:
    subject = as_subject(actor)
    patient = db.get(models.Patient, patient_id)
    if patient is None:
        raise NotFoundError("Patient not found")
    authorize_create(db, subject, Resource.assignment, resolve_chain(db, patient), label="Patient")

    nurse = db.get(models.UserProfile, nurse_id)
    if nurse is None or nurse.hospital_id != patient.hospital_id:
        raise ValidationError("Nurse must belong to the patient's hospital")

    existing = db.query(models.NursePatientAssignment).filter(
        models.NursePatientAssignment.nurse_id == nurse_id,
        models.NursePatientAssignment.patient_id == patient_id,
    ).first()
    if existing:
        if existing.is_active:
            raise ConflictError("Nurse is already assigned to this patient")
        existing.is_active = True
        existing.assigned_by = subject.id
        _commit(db, "reactivating assignment")
        db.refresh(existing)
        return existing

    assignment = models.NursePatientAssignment(nurse_id=nurse_id, patient_id=patient_id, assigned_by=subject.id)
    db.add(assignment)
    _commit(db, "creating assignment")
    db.refresh(assignment)
    return assignment


def delete_assignment(db: Session, actor, patient_id: str, nurse_id: str) -> bool:
    assignment = db.query(models.NursePatientAssignment).filter(
        models.NursePatientAssignment.nurse_id == nurse_id,
        models.NursePatientAssignment.patient_id == patient_id,
    ).first()
    if assignment is None:
        raise NotFoundError("Assignment not found")
    authorize(db, as_subject(actor), Action.delete, assignment, label="Assignment")
    db.delete(assignment)
    _commit(db, "removing assignment")
    return True


# ==================== MAR FORMS ====================

def parse_month_year(text: str) -> Tuple[int, int]:
    """(year, month) from "November 2025", "Nov 2025", "2025-11" or "11/2025"."""
    value = (text or "").strip()
    for fmt in _MONTH_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
            return parsed.year, parsed.month
        except ValueError:
            continue
    raise ValidationError(f"Unrecognised month: {text!r}")


def normalize_month_year(text: str) -> str:
    year, month = parse_month_year(text)
    return f"{calendar.month_name[month]} {year}"


def days_in_month(month_year: str) -> int:
    year, month = parse_month_year(month_year)
    return calendar.monthrange(year, month)[1]


def _month_sort_key(form: models.MarForm):
    try:
        return parse_month_year(form.month_year)
    except ValidationError:
        return (0, 0)


def _ensure_editable(form: models.MarForm):
    if form.status == models.MarFormStatus.archived:
        raise FormArchivedError("This MAR form is archived and can no longer be edited")


def _validate_day(form: models.MarForm, day: int):
    last_day = days_in_month(form.month_year)
    if not 1 <= day <= last_day:
        raise ValidationError(f"Day must be between 1 and {last_day} for {form.month_year}")


def find_mar_form(db: Session, patient_id: str, label: str) -> Optional[models.MarForm]:
    return db.query(models.MarForm).filter(
        models.MarForm.patient_id == patient_id, models.MarForm.month_year == label
    ).first()


def snapshot_patient(patient: models.Patient) -> Dict[str, Any]:
    """Demographics copied onto a form once, at creation."""
    return {
        "patient_name": patient.patient_name,
        "record_number": patient.record_number,
        "date_of_birth": patient.date_of_birth,
        "sex": getattr(patient.sex, "value", patient.sex),
        "diagnosis": patient.diagnosis,
        "diet": patient.diet,
        "allergies": patient.allergies or "",
        "physician_name": patient.physician_name,
        "physician_phone": patient.physician_phone,
        "facility_name": patient.facility_name,
    }


def get_or_create_mar_form(db: Session, actor, patient_id: str, month_year: str) -> Tuple[models.MarForm, bool]:
    subject = as_subject(actor)
    patient = get_patient(db, actor, patient_id)
    label = normalize_month_year(month_year)

    form = find_mar_form(db, patient_id, label)
    if form is not None:
        return authorize(db, subject, Action.read, form, label="MAR form"), False

    authorize_create(db, subject, Resource.mar_form, resolve_chain(db, patient), label="Patient")
    form = models.MarForm(
        patient_id=patient.id,
        hospital_id=patient.hospital_id,
        month_year=label,
        created_by=subject.id,
        status=models.MarFormStatus.draft,
        **snapshot_patient(patient),
    )
    db.add(form)
    try:
        db.commit()
    except IntegrityError:
        # Someone opened the same month first
        db.rollback()
        form = find_mar_form(db, patient_id, label)
        if form is None:
            raise ConflictError("MAR form changed concurrently, please retry")
        logger.info("mar_form_create_race_recovered", patient_id=patient_id, month_year=label)
        return form, False
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating MAR form: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")
    db.refresh(form)
    logger.info("mar_form_created", mar_form_id=form.id, patient_id=patient_id, month_year=label)
    return form, True


def get_mar_form(db: Session, actor, form_id: str, action: Action = Action.read) -> models.MarForm:
    form = db.get(models.MarForm, form_id)
    if form is None:
        raise NotFoundError("MAR form not found")
    return authorize(db, as_subject(actor), action, form, label="MAR form")


def get_mar_forms_for_patient(db: Session, actor, patient_id: str) -> List[models.MarForm]:
    """A patient's forms, newest month first."""
    get_patient(db, actor, patient_id)
    forms = db.query(models.MarForm).filter(models.MarForm.patient_id == patient_id).all()
    return sorted(forms, key=_month_sort_key, reverse=True)


def update_mar_form(db: Session, actor, form_id: str, form_update: schemas.MarFormUpdate) -> models.MarForm:
    form = get_mar_form(db, actor, form_id, Action.update)
    _ensure_editable(form)
    for key, value in form_update.model_dump(exclude_unset=True).items():
        if key == "allergies":
            value = value or ""
        elif key == "physician_name" and not value:
            continue
        setattr(form, key, value)
    _commit(db, "updating MAR form")
    db.refresh(form)
    return form


def set_mar_form_status(db: Session, actor, form_id: str, status: models.MarFormStatus) -> models.MarForm:
    form = get_mar_form(db, actor, form_id, Action.update)
    current = models.MarFormStatus(form.status)
    target = models.MarFormStatus(status)
    if current == target:
        return form
    if target not in ALLOWED_STATUS_TRANSITIONS[current]:
        raise ConflictError(f"Cannot move a MAR form from {current.value} to {target.value}")
    form.status = target
    _commit(db, "changing MAR form status")
    db.refresh(form)
    logger.info("mar_form_status_changed", mar_form_id=form.id, from_status=current.value, to_status=target.value)
    return form


def get_grouped_medications(db: Session, actor, form_id: str) -> List[MedicationEntry]:
    form = get_mar_form(db, actor, form_id)
    return group_medications(form.medications)


# ==================== MEDICATIONS ====================

def _ordered_medications(db: Session, form_id: str) -> List[models.MarMedication]:
    rows = db.query(models.MarMedication).filter(models.MarMedication.mar_form_id == form_id).all()
    return sorted(rows, key=lambda m: (m.display_order is None, m.display_order or 0, m.id))


def _renumber(rows: List[models.MarMedication]):
    for index, row in enumerate(rows):
        row.display_order = (index + 1) * ORDER_STEP


def _insertion_index(rows: List[models.MarMedication], placement: Optional[schemas.Placement], at_top: bool = False) -> int:
    if placement is not None:
        for index, row in enumerate(rows):
            if row.id == placement.target_medication_id:
                return index if placement.position == "above" else index + 1
    return 0 if at_top else len(rows)


def _place_rows(db: Session, form_id: str, new_rows: List[models.MarMedication],
                placement: Optional[schemas.Placement], at_top: bool = False):
    """
    Slot `new_rows` next to the placement target (else at the end, or the top
    for vitals) and renumber the whole form 10, 20, ... so no two rows share
    an order however many hour slots were added.
    """
    rows = _ordered_medications(db, form_id)
    index = _insertion_index(rows, placement, at_top)
    _renumber(rows[:index] + list(new_rows) + rows[index:])


def _day_in_form_month(form: models.MarForm, day: Optional[date]) -> Optional[int]:
    if day is None:
        return None
    year, month = parse_month_year(form.month_year)
    if (day.year, day.month) == (year, month):
        return day.day
    return None


def add_medication(db: Session, actor, form_id: str, medication: schemas.MedicationCreate) -> List[models.MarMedication]:
    """One logical medication becomes `frequency` rows sharing a prescription token."""
    import uuid

    form = get_mar_form(db, actor, form_id, Action.update)
    authorize_create(db, as_subject(actor), Resource.mar_medication, resolve_chain(db, form), label="MAR form")
    _ensure_editable(form)

    token = str(uuid.uuid4())
    hours = list(medication.hours)
    if len(hours) < medication.frequency:
        # A single typed hour applies to every slot left blank
        fill = hours[0] if len(hours) == 1 else None
        hours += [fill] * (medication.frequency - len(hours))

    rows = []
    for i in range(medication.frequency):
        row = models.MarMedication(
            mar_form_id=form.id,
            medication_name=medication.medication_name.strip(),
            dosage=medication.dosage,
            start_date=medication.start_date,
            stop_date=medication.stop_date,
            hour=(hours[i] or "").strip() or None,
            route=medication.route,
            notes=medication.notes,
            parameter=(medication.parameter or "").strip() or None,
            frequency=medication.frequency,
            frequency_display=medication.frequency_display,
            prescription_group_id=token,
        )
        rows.append(row)
    _place_rows(db, form.id, rows, medication.placement)
    db.add_all(rows)
    db.flush()

    start_day = _day_in_form_month(form, medication.start_date)
    initials = (medication.initials or "").strip()
    if initials and start_day:
        now = datetime.now(timezone.utc)
        for row in rows:
            db.add(models.MarAdministration(
                medication_id=row.id, mar_form_id=form.id, day_of_month=start_day,
                initials=initials, given=True, administered_at=now,
            ))

    _commit(db, "adding medication")
    for row in rows:
        db.refresh(row)
    logger.info("medication_added", mar_form_id=form.id, prescription_group_id=token, rows=len(rows))
    return rows


def add_vitals_entry(db: Session, actor, form_id: str, entry: schemas.VitalsEntryCreate) -> models.MarMedication:
    """Legacy in-grid vitals row. Kept for forms that track vitals as a grid line."""
    form = get_mar_form(db, actor, form_id, Action.update)
    _ensure_editable(form)

    row = models.MarMedication(
        mar_form_id=form.id,
        medication_name=models.VITALS_MEDICATION_NAME,
        dosage=entry.instructions,
        start_date=entry.start_date,
        stop_date=entry.stop_date,
        hour=None,
        notes=models.VITALS_NOTES_MARKER,
    )
    _place_rows(db, form.id, [row], entry.placement, at_top=True)
    db.add(row)
    db.flush()

    start_day = _day_in_form_month(form, entry.start_date)
    initials = (entry.initials or "").strip()
    if initials and start_day:
        db.add(models.MarAdministration(
            medication_id=row.id, mar_form_id=form.id, day_of_month=start_day,
            initials=initials, given=True, administered_at=datetime.now(timezone.utc),
        ))
    _commit(db, "adding vitals entry")
    db.refresh(row)
    return row


def get_medication(db: Session, actor, medication_id: str, action: Action = Action.read) -> models.MarMedication:
    row = db.get(models.MarMedication, medication_id)
    if row is None:
        raise NotFoundError("Medication not found")
    return authorize(db, as_subject(actor), action, row, label="Medication")


def update_medication(db: Session, actor, medication_id: str, medication_update: schemas.MedicationUpdate) -> models.MarMedication:
    row = get_medication(db, actor, medication_id, Action.update)
    _ensure_editable(row.mar_form)
    update_data = medication_update.model_dump(exclude_unset=True)
    if "parameter" in update_data:
        row.parameter = (update_data["parameter"] or "").strip() or None
    if "hour" in update_data:
        # Stored as typed; display formatting happens on read
        row.hour = (update_data["hour"] or "").strip() or None
    _commit(db, "updating medication")
    db.refresh(row)
    return row


def delete_medication(db: Session, actor, medication_id: str) -> bool:
    row = get_medication(db, actor, medication_id, Action.delete)
    _ensure_editable(row.mar_form)
    db.delete(row)
    _commit(db, "deleting medication")
    return True


def reorder_medications(db: Session, actor, form_id: str, medication_ids: List[str]) -> List[models.MarMedication]:
    """Renumber rows 10, 20, ... in the given order; rows not listed keep their relative order after."""
    form = get_mar_form(db, actor, form_id, Action.update)
    _ensure_editable(form)
    rows = _ordered_medications(db, form.id)
    by_id = {r.id: r for r in rows}
    unknown = [mid for mid in medication_ids if mid not in by_id]
    if unknown:
        raise ValidationError(f"Medications not on this form: {', '.join(unknown)}")

    listed = [by_id[mid] for mid in dict.fromkeys(medication_ids)]
    rest = [r for r in rows if r.id not in set(medication_ids)]
    ordered = listed + rest
    _renumber(ordered)
    _commit(db, "reordering medications")
    return ordered


def move_medication(db: Session, actor, medication_id: str, direction: str) -> List[models.MarMedication]:
    """Swap a row with its neighbour above or below."""
    row = get_medication(db, actor, medication_id, Action.update)
    _ensure_editable(row.mar_form)
    rows = _ordered_medications(db, row.mar_form_id)
    index = rows.index(row)
    new_index = index - 1 if direction == "up" else index + 1
    if 0 <= new_index < len(rows):
        rows[index], rows[new_index] = rows[new_index], rows[index]
    _renumber(rows)
    _commit(db, "moving medication")
    return rows


# ==================== ADMINISTRATION GRID ====================

def _default_initials(actor) -> str:
    return (getattr(actor, "staff_initials_text", None) or "").strip()


def _find_administration(db: Session, medication_id: str, day: int) -> Optional[models.MarAdministration]:
    return db.query(models.MarAdministration).filter(
        models.MarAdministration.medication_id == medication_id,
        models.MarAdministration.day_of_month == day,
    ).first()


def set_administration(db: Session, actor, medication_id: str, day: int, initials: Optional[str] = None,
                       given: bool = True, reason_for_omission: Optional[str] = None,
                       notes: Optional[str] = None) -> models.MarAdministration:
    """
    Write the single grid cell for (medication, day), updating it in place when
    it exists. NG/H/R record a dose not given; DC also fills every later day.
    """
    medication = get_medication(db, actor, medication_id, Action.update)
    form = medication.mar_form
    _ensure_editable(form)
    _validate_day(form, day)

    initials = (initials or "").strip() or _default_initials(actor)
    if not initials:
        raise ValidationError("Initials are required to record an administration")
    code = initials.upper()
    if code in NOT_GIVEN_CODES:
        given = False
        reason_for_omission = reason_for_omission or BUILT_IN_LEGEND[code]
    now = datetime.now(timezone.utc)

    def apply(cell: models.MarAdministration):
        cell.initials = initials
        cell.given = given
        cell.reason_for_omission = None if given else reason_for_omission
        if notes is not None:
            cell.notes = notes
        cell.administered_at = now if given else None

    try:
        cell = _upsert(
            db,
            lambda: _find_administration(db, medication.id, day),
            lambda: models.MarAdministration(medication_id=medication.id, mar_form_id=form.id, day_of_month=day),
            apply,
        )

        if code == DISCONTINUED_CODE:
            later = {a.day_of_month: a for a in db.query(models.MarAdministration).filter(
                models.MarAdministration.medication_id == medication.id,
                models.MarAdministration.day_of_month > day,
            )}
            for later_day in range(day + 1, days_in_month(form.month_year) + 1):
                target = later.get(later_day)
                if target is None:
                    target = models.MarAdministration(medication_id=medication.id, mar_form_id=form.id,
                                                      day_of_month=later_day)
                    db.add(target)
                target.initials = DISCONTINUED_CODE
                target.given = given
                target.reason_for_omission = None
                target.administered_at = None
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error writing administration for {medication_id} day {day}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

    _commit(db, "recording administration")
    db.refresh(cell)
    return cell


def clear_administration(db: Session, actor, medication_id: str, day: int) -> bool:
    """Empty the cell. An empty cell has no row at all."""
    medication = get_medication(db, actor, medication_id, Action.update)
    _ensure_editable(medication.mar_form)
    _validate_day(medication.mar_form, day)
    cell = _find_administration(db, medication.id, day)
    if cell is None:
        return False
    db.delete(cell)
    _commit(db, "clearing administration")
    return True


def update_administration_note(db: Session, actor, medication_id: str, day: int, notes: Optional[str]) -> models.MarAdministration:
    medication = get_medication(db, actor, medication_id, Action.update)
    _ensure_editable(medication.mar_form)
    _validate_day(medication.mar_form, day)
    cell = _find_administration(db, medication.id, day)
    if cell is None:
        raise NotFoundError("No administration recorded for this day")
    cell.notes = (notes or "").strip() or None
    _commit(db, "updating administration note")
    db.refresh(cell)
    return cell


def get_administrations(db: Session, actor, form_id: str) -> List[models.MarAdministration]:
    form = get_mar_form(db, actor, form_id)
    return db.query(models.MarAdministration).filter(
        models.MarAdministration.mar_form_id == form.id
    ).order_by(models.MarAdministration.medication_id, models.MarAdministration.day_of_month).all()


# ==================== VITAL SIGNS ====================

def _validate_vital_value(vital_type: models.VitalType, value: str):
    if not vital_type.is_numeric:
        return
    try:
        float(value)
    except ValueError:
        raise ValidationError(f"{vital_type.value} must be a number")


def set_vital_sign(db: Session, actor, form_id: str, vital_type: models.VitalType, day: int,
                   value: Optional[str]) -> Optional[models.MarVitalSign]:
    """Upsert one vitals cell; an empty value removes it."""
    form = get_mar_form(db, actor, form_id, Action.update)
    _ensure_editable(form)
    _validate_day(form, day)
    vital_type = models.VitalType(vital_type)
    value = (value or "").strip()

    def lookup():
        return db.query(models.MarVitalSign).filter(
            models.MarVitalSign.mar_form_id == form.id,
            models.MarVitalSign.vital_type == vital_type,
            models.MarVitalSign.day_of_month == day,
        ).first()

    if not value:
        existing = lookup()
        if existing is not None:
            db.delete(existing)
            _commit(db, "clearing vital sign")
        return None

    _validate_vital_value(vital_type, value)

    def apply(cell: models.MarVitalSign):
        cell.value = value

    cell = _upsert(
        db, lookup,
        lambda: models.MarVitalSign(mar_form_id=form.id, vital_type=vital_type, day_of_month=day),
        apply,
    )
    _commit(db, "recording vital sign")
    db.refresh(cell)
    return cell


def get_vital_signs(db: Session, actor, form_id: str) -> List[models.MarVitalSign]:
    form = get_mar_form(db, actor, form_id)
    return db.query(models.MarVitalSign).filter(
        models.MarVitalSign.mar_form_id == form.id
    ).order_by(models.MarVitalSign.vital_type, models.MarVitalSign.day_of_month).all()


# ==================== PRN RECORDS ====================

def _signature_for_initials(db: Session, hospital_id: str, initials: str) -> Optional[str]:
    """Signature of the same-hospital staff member whose initials match."""
    wanted = initials.strip().upper()
    staff = db.query(models.UserProfile).filter(models.UserProfile.hospital_id == hospital_id).all()
    for member in staff:
        if (member.staff_initials_text or "").strip().upper() == wanted:
            return member.staff_signature or member.staff_signature_text or member.full_name
    return None


def add_prn_record(db: Session, actor, form_id: str, record: schemas.PrnRecordCreate) -> models.MarPrnRecord:
    form = get_mar_form(db, actor, form_id, Action.update)
    _ensure_editable(form)
    count = db.query(func.count(models.MarPrnRecord.id)).filter(models.MarPrnRecord.mar_form_id == form.id).scalar()

    data = record.model_dump()
    if data.get("hour"):
        data["hour"] = format_time_display(data["hour"])
    if data.get("initials") and not data.get("staff_signature"):
        data["staff_signature"] = _signature_for_initials(db, form.hospital_id, data["initials"])
    db_record = models.MarPrnRecord(mar_form_id=form.id, entry_number=(count or 0) + 1, **data)
    db.add(db_record)
    _commit(db, "adding PRN record")
    db.refresh(db_record)
    return db_record


def get_prn_records(db: Session, actor, form_id: str) -> List[models.MarPrnRecord]:
    form = get_mar_form(db, actor, form_id)
    return db.query(models.MarPrnRecord).filter(
        models.MarPrnRecord.mar_form_id == form.id
    ).order_by(models.MarPrnRecord.entry_number).all()


def get_prn_record(db: Session, actor, record_id: str, action: Action = Action.read) -> models.MarPrnRecord:
    record = db.get(models.MarPrnRecord, record_id)
    if record is None:
        raise NotFoundError("PRN record not found")
    return authorize(db, as_subject(actor), action, record, label="PRN record")


def update_prn_record(db: Session, actor, record_id: str, record_update: schemas.PrnRecordUpdate) -> models.MarPrnRecord:
    record = get_prn_record(db, actor, record_id, Action.update)
    _ensure_editable(record.mar_form)
    update_data = {k: ((v or "").strip() or None) for k, v in record_update.model_dump(exclude_unset=True).items()}

    if "hour" in update_data and update_data["hour"]:
        update_data["hour"] = format_time_display(update_data["hour"])

    if update_data.get("initials"):
        hour = update_data.get("hour", record.hour)
        result = update_data.get("result", record.result)
        if not hour or not result:
            raise ValidationError("Time and Result must be filled before setting Initials")
        if not update_data.get("staff_signature"):
            signature = _signature_for_initials(db, record.mar_form.hospital_id, update_data["initials"])
            if signature:
                update_data["staff_signature"] = signature

    if "reason" in update_data and not update_data["reason"]:
        raise ValidationError("Reason cannot be empty")

    for key, value in update_data.items():
        setattr(record, key, value)
    _commit(db, "updating PRN record")
    db.refresh(record)
    return record


def delete_prn_record(db: Session, actor, record_id: str) -> bool:
    record = get_prn_record(db, actor, record_id, Action.delete)
    _ensure_editable(record.mar_form)
    db.delete(record)
    _commit(db, "deleting PRN record")
    return True


# ==================== LEGENDS ====================

def legend_for(db: Session, user) -> List[Dict[str, Any]]:
    """Built-in codes first, then the user's own."""
    entries = [{"id": None, "code": code, "description": desc, "built_in": True}
               for code, desc in BUILT_IN_LEGEND.items()]
    customs = db.query(models.MarCustomLegend).filter(
        models.MarCustomLegend.user_id == user.id
    ).order_by(models.MarCustomLegend.code).all()
    entries.extend({"id": c.id, "code": c.code, "description": c.description, "built_in": False} for c in customs)
    return entries


def _check_legend_code(db: Session, user_id: str, code: str, exclude_id: Optional[str] = None) -> str:
    code = code.strip().upper()
    if code in BUILT_IN_LEGEND:
        raise ValidationError(f"{code} is a built-in legend code")
    query = db.query(models.MarCustomLegend.id).filter(
        models.MarCustomLegend.user_id == user_id, models.MarCustomLegend.code == code
    )
    if exclude_id:
        query = query.filter(models.MarCustomLegend.id != exclude_id)
    if query.first():
        raise ConflictError(f"Legend code {code} already exists")
    return code


def create_legend(db: Session, actor, legend: schemas.LegendCreate) -> models.MarCustomLegend:
    code = _check_legend_code(db, actor.id, legend.code)
    db_legend = models.MarCustomLegend(user_id=actor.id, code=code, description=legend.description.strip())
    db.add(db_legend)
    _commit(db, "creating legend")
    db.refresh(db_legend)
    return db_legend


def get_legend(db: Session, actor, legend_id: str, action: Action = Action.read) -> models.MarCustomLegend:
    legend = db.get(models.MarCustomLegend, legend_id)
    if legend is None:
        raise NotFoundError("Legend not found")
    return authorize(db, as_subject(actor), action, legend, label="Legend")


def update_legend(db: Session, actor, legend_id: str, legend_update: schemas.LegendUpdate) -> models.MarCustomLegend:
    legend = get_legend(db, actor, legend_id, Action.update)
    update_data = legend_update.model_dump(exclude_unset=True)
    if update_data.get("code"):
        legend.code = _check_legend_code(db, legend.user_id, update_data["code"], exclude_id=legend.id)
    if update_data.get("description"):
        legend.description = update_data["description"].strip()
    _commit(db, "updating legend")
    db.refresh(legend)
    return legend


def delete_legend(db: Session, actor, legend_id: str) -> bool:
    legend = get_legend(db, actor, legend_id, Action.delete)
    db.delete(legend)
    _commit(db, "deleting legend")
    return True
