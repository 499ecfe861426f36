# chartbuddies/schemas.py
from datetime import datetime, date
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr, field_validator

from .models import UserRole, Sex, MarFormStatus, VitalType


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ==================== HOSPITALS ====================

class HospitalBase(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    facility_type: str = "hospital"
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("email", mode="before")
    @classmethod
    def empty_email(cls, v):
        return _blank_to_none(v)


class HospitalUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    facility_type: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    is_active: Optional[bool] = None

    @field_validator("email", mode="before")
    @classmethod
    def empty_email(cls, v):
        return _blank_to_none(v)


class HospitalResponse(HospitalBase):
    id: str
    invite_code: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ==================== PROFILES & ONBOARDING ====================

class ProfileResponse(BaseSchema):
    id: str
    email: str
    full_name: str
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole
    hospital_id: Optional[str] = None
    staff_initials: Optional[str] = None
    staff_initials_text: Optional[str] = None
    staff_signature: Optional[str] = None
    staff_signature_text: Optional[str] = None
    staff_signature_font: Optional[str] = None
    designation: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileUpdate(BaseSchema):
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    staff_initials: Optional[str] = None
    staff_initials_text: Optional[str] = Field(None, max_length=10)
    staff_signature: Optional[str] = None
    staff_signature_text: Optional[str] = Field(None, max_length=255)
    staff_signature_font: Optional[str] = None
    designation: Optional[str] = Field(None, max_length=50)


class SignupRequest(BaseSchema):
    full_name: Optional[str] = None
    invite_code: Optional[str] = None
    hospital_name: Optional[str] = None
    facility_type: str = "hospital"

    @field_validator("invite_code", "hospital_name", mode="before")
    @classmethod
    def strip_blank(cls, v):
        return _blank_to_none(v)


class SignupResponse(BaseSchema):
    profile: ProfileResponse
    hospital: HospitalResponse
    created_hospital: bool


class RoleUpdate(BaseSchema):
    role: UserRole
    hospital_id: Optional[str] = None


# ==================== PATIENTS ====================

class PatientBase(BaseSchema):
    patient_name: str = Field(..., min_length=1, max_length=255)
    record_number: str = Field(..., min_length=1, max_length=100)
    date_of_birth: date
    sex: Sex
    diagnosis: Optional[str] = None
    diet: Optional[str] = None
    allergies: str = ""
    physician_name: str = Field(..., min_length=1, max_length=255)
    physician_phone: Optional[str] = None
    facility_name: Optional[str] = None

    @field_validator("allergies", mode="before")
    @classmethod
    def allergies_default(cls, v):
        return v or ""


class PatientCreate(PatientBase):
    hospital_id: Optional[str] = None  # superadmin only; others use their own hospital


class PatientUpdate(BaseSchema):
    patient_name: Optional[str] = Field(None, min_length=1, max_length=255)
    record_number: Optional[str] = Field(None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    sex: Optional[Sex] = None
    diagnosis: Optional[str] = None
    diet: Optional[str] = None
    allergies: Optional[str] = None
    physician_name: Optional[str] = Field(None, min_length=1, max_length=255)
    physician_phone: Optional[str] = None
    facility_name: Optional[str] = None


class PatientResponse(PatientBase):
    id: str
    hospital_id: str
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AssignmentCreate(BaseSchema):
    nurse_id: str


class AssignmentResponse(BaseSchema):
    id: str
    nurse_id: str
    patient_id: str
    assigned_by: str
    assigned_at: Optional[datetime] = None
    is_active: bool


# ==================== MAR FORMS ====================

class MarFormOpen(BaseSchema):
    month_year: str = Field(..., description='"November 2025", "2025-11" or "11/2025"')


class MarFormUpdate(BaseSchema):
    diagnosis: Optional[str] = None
    diet: Optional[str] = None
    allergies: Optional[str] = None
    physician_name: Optional[str] = None
    physician_phone: Optional[str] = None
    facility_name: Optional[str] = None
    comments: Optional[str] = None
    vital_signs_instructions: Optional[str] = None


class MarFormStatusUpdate(BaseSchema):
    status: MarFormStatus


class MarFormResponse(BaseSchema):
    id: str
    patient_id: str
    hospital_id: str
    month_year: str
    created_by: str
    status: MarFormStatus
    patient_name: str
    record_number: str
    date_of_birth: date
    sex: str
    diagnosis: Optional[str] = None
    diet: Optional[str] = None
    allergies: str = ""
    physician_name: str
    physician_phone: Optional[str] = None
    facility_name: Optional[str] = None
    vital_signs_instructions: Optional[str] = None
    comments: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Medications ---

class MedicationResponse(BaseSchema):
    id: str
    mar_form_id: str
    medication_name: str
    dosage: str
    start_date: Optional[date] = None
    stop_date: Optional[date] = None
    hour: Optional[str] = None
    route: Optional[str] = None
    notes: Optional[str] = None
    parameter: Optional[str] = None
    frequency: Optional[int] = None
    frequency_display: Optional[str] = None
    display_order: Optional[int] = None
    prescription_group_id: Optional[str] = None


class Placement(BaseSchema):
    target_medication_id: str
    position: Literal["above", "below"]


class MedicationCreate(BaseSchema):
    medication_name: str = Field(..., min_length=1, max_length=255)
    dosage: str = ""
    start_date: date
    stop_date: Optional[date] = None
    route: Optional[str] = None
    notes: Optional[str] = None
    parameter: Optional[str] = None
    frequency: int = Field(1, ge=1, le=24)
    frequency_display: Optional[str] = None
    hours: List[Optional[str]] = Field(default_factory=list)
    initials: Optional[str] = Field(None, max_length=10)
    placement: Optional[Placement] = None

    @field_validator("stop_date")
    @classmethod
    def stop_after_start(cls, v, info):
        start = info.data.get("start_date")
        if v and start and v < start:
            raise ValueError("stop_date must not be before start_date")
        return v


class VitalsEntryCreate(BaseSchema):
    instructions: str = ""
    start_date: date
    stop_date: Optional[date] = None
    initials: Optional[str] = Field(None, max_length=10)
    placement: Optional[Placement] = None


class MedicationUpdate(BaseSchema):
    parameter: Optional[str] = None
    hour: Optional[str] = None


class MedicationReorder(BaseSchema):
    medication_ids: List[str]


class MedicationMove(BaseSchema):
    direction: Literal["up", "down"]


class GroupedMedicationResponse(BaseSchema):
    medication_name: str
    dosage: str
    start_date: Optional[date] = None
    stop_date: Optional[date] = None
    route: Optional[str] = None
    notes: Optional[str] = None
    parameter: Optional[str] = None
    frequency: Optional[int] = None
    frequency_display: Optional[str] = None
    hours: List[Optional[str]]
    row_ids: List[str]
    is_grouped: bool
    display_order: Optional[int] = None
    prescription_group_id: Optional[str] = None


class GroupedMedicationInput(BaseSchema):
    """A logical medication as edited before duplication."""
    medication_name: str = Field(..., min_length=1, max_length=255)
    dosage: str = ""
    start_date: Optional[date] = None
    stop_date: Optional[date] = None
    route: Optional[str] = None
    notes: Optional[str] = None
    parameter: Optional[str] = None
    frequency: Optional[int] = Field(None, ge=1, le=24)
    frequency_display: Optional[str] = None
    hours: List[Optional[str]] = Field(default_factory=list)


class MarFormDuplicate(BaseSchema):
    month_year: str
    medications: Optional[List[GroupedMedicationInput]] = None


# --- Administrations ---

class AdministrationSet(BaseSchema):
    initials: Optional[str] = Field(None, max_length=10)
    given: bool = True
    reason_for_omission: Optional[str] = None
    notes: Optional[str] = None


class AdministrationNoteUpdate(BaseSchema):
    notes: Optional[str] = None


class AdministrationResponse(BaseSchema):
    id: str
    medication_id: str
    mar_form_id: str
    day_of_month: int
    initials: Optional[str] = None
    given: bool
    reason_for_omission: Optional[str] = None
    notes: Optional[str] = None
    administered_at: Optional[datetime] = None


# --- Vital signs ---

class VitalSignSet(BaseSchema):
    vital_type: VitalType
    day_of_month: int = Field(..., ge=1, le=31)
    value: Optional[str] = None


class VitalSignResponse(BaseSchema):
    id: str
    mar_form_id: str
    vital_type: VitalType
    day_of_month: int
    value: str


# --- PRN records ---

class PrnRecordCreate(BaseSchema):
    date: date
    hour: Optional[str] = None
    initials: Optional[str] = Field(None, max_length=10)
    medication: str = Field(..., min_length=1, max_length=255)
    reason: str = Field(..., min_length=1)
    result: Optional[str] = None
    staff_signature: Optional[str] = None
    note: Optional[str] = None


class PrnRecordUpdate(BaseSchema):
    hour: Optional[str] = None
    initials: Optional[str] = Field(None, max_length=10)
    result: Optional[str] = None
    reason: Optional[str] = None
    staff_signature: Optional[str] = None
    note: Optional[str] = None


class PrnRecordResponse(BaseSchema):
    id: str
    mar_form_id: str
    date: date
    hour: Optional[str] = None
    initials: Optional[str] = None
    medication: str
    reason: str
    result: Optional[str] = None
    staff_signature: Optional[str] = None
    note: Optional[str] = None
    entry_number: int


class MarFormDetail(MarFormResponse):
    medications: List[MedicationResponse] = []
    administrations: List[AdministrationResponse] = []
    vital_signs: List[VitalSignResponse] = []
    prn_records: List[PrnRecordResponse] = []


# ==================== LEGENDS ====================

class LegendCreate(BaseSchema):
    code: str = Field(..., min_length=1, max_length=10)
    description: str = Field(..., min_length=1)

    @field_validator("code")
    @classmethod
    def upper_code(cls, v):
        return v.strip().upper()


class LegendUpdate(BaseSchema):
    code: Optional[str] = Field(None, min_length=1, max_length=10)
    description: Optional[str] = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, v):
        return v.strip().upper() if v else v


class LegendResponse(BaseSchema):
    id: Optional[str] = None
    code: str
    description: str
    built_in: bool = False


# ==================== AUDIT LOGS ====================

class AuditLogResponse(BaseSchema):
    id: int
    user_id: Optional[str] = None
    action: str
    category: str
    severity: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_validator("action", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)
