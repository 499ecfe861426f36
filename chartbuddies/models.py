# chartbuddies/models.py
import enum
import uuid

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    superadmin = "superadmin"
    head_nurse = "head_nurse"
    nurse = "nurse"


class Sex(str, enum.Enum):
    male = "Male"
    female = "Female"
    other = "Other"


class MarFormStatus(str, enum.Enum):
    draft = "draft"
    submitted = "submitted"
    archived = "archived"


class VitalType(str, enum.Enum):
    TEMPERATURE = "TEMPERATURE"
    PULSE = "PULSE"
    RESPIRATION = "RESPIRATION"
    WEIGHT = "WEIGHT"
    BP_SYSTOLIC = "BP_SYSTOLIC"
    BP_DIASTOLIC = "BP_DIASTOLIC"
    BOWEL_MOVEMENT = "BOWEL_MOVEMENT"

    @property
    def is_numeric(self) -> bool:
        return self is not VitalType.BOWEL_MOVEMENT


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ACCESS_DENIED = "ACCESS_DENIED"
    SIGNUP = "SIGNUP"


# Placeholder rows that used to carry vital signs inside the medication grid
VITALS_MEDICATION_NAME = "VITALS"
VITALS_NOTES_MARKER = "Vital Signs Entry"


# ==================== TENANT & IDENTITY ====================

class Hospital(Base):
    """A tenant. Every patient and every MAR form belongs to exactly one hospital."""
    __tablename__ = "hospitals"
    __table_args__ = (
        Index('idx_hospitals_invite_code', 'invite_code'),
        Index('idx_hospitals_is_active', 'is_active'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    facility_type = Column(String(100), nullable=False, default="hospital")
    invite_code = Column(String(20), unique=True, nullable=False)
    address = Column(Text, nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    staff = relationship("UserProfile", back_populates="hospital")
    patients = relationship("Patient", back_populates="hospital", cascade="all, delete-orphan")


class UserProfile(Base):
    """Profile of an identity-provider subject; `id` is the token subject."""
    __tablename__ = "user_profiles"
    __table_args__ = (
        Index('idx_user_profiles_hospital_id', 'hospital_id'),
        Index('idx_user_profiles_role', 'role'),
        Index('idx_user_profiles_email', 'email'),
    )

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False, default="")
    first_name = Column(String(255), nullable=True)
    middle_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    role = Column(SQLAlchemyEnum(UserRole, name='user_role'), default=UserRole.nurse, nullable=False)
    hospital_id = Column(String(36), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=True)

    # MAR sign-off material: initials/signature as an image reference or typed text
    staff_initials = Column(Text, nullable=True)
    staff_initials_text = Column(String(10), nullable=True)
    staff_signature = Column(Text, nullable=True)
    staff_signature_text = Column(String(255), nullable=True)
    staff_signature_font = Column(String(100), nullable=True)
    designation = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    hospital = relationship("Hospital", back_populates="staff")
    assignments = relationship(
        "NursePatientAssignment", back_populates="nurse",
        foreign_keys="NursePatientAssignment.nurse_id", cascade="all, delete-orphan"
    )
    custom_legends = relationship("MarCustomLegend", back_populates="user", cascade="all, delete-orphan")


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        Index('idx_patients_hospital_id', 'hospital_id'),
        Index('idx_patients_record_number', 'record_number'),
        Index('idx_patients_created_by', 'created_by'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    hospital_id = Column(String(36), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False)
    patient_name = Column(String(255), nullable=False)
    record_number = Column(String(100), unique=True, nullable=False)
    date_of_birth = Column(Date, nullable=False)
    sex = Column(SQLAlchemyEnum(Sex, name='patient_sex', values_callable=lambda e: [m.value for m in e]), nullable=False)
    diagnosis = Column(Text, nullable=True)
    diet = Column(Text, nullable=True)
    allergies = Column(Text, nullable=False, default="")
    physician_name = Column(String(255), nullable=False)
    physician_phone = Column(String(20), nullable=True)
    facility_name = Column(String(255), nullable=True)
    created_by = Column(String(36), ForeignKey("user_profiles.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    hospital = relationship("Hospital", back_populates="patients")
    assignments = relationship("NursePatientAssignment", back_populates="patient", cascade="all, delete-orphan")
    mar_forms = relationship("MarForm", back_populates="patient", cascade="all, delete-orphan")


class NursePatientAssignment(Base):
    __tablename__ = "nurse_patient_assignments"
    __table_args__ = (
        UniqueConstraint('nurse_id', 'patient_id', name='uq_assignment_nurse_patient'),
        Index('idx_assignments_nurse_id', 'nurse_id'),
        Index('idx_assignments_patient_id', 'patient_id'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    nurse_id = Column(String(36), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    assigned_by = Column(String(36), ForeignKey("user_profiles.id"), nullable=False)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())
    is_active = Column(Boolean, default=True, nullable=False)

    nurse = relationship("UserProfile", back_populates="assignments", foreign_keys=[nurse_id])
    patient = relationship("Patient", back_populates="assignments")


# ==================== MAR AGGREGATE ====================

class MarForm(Base):
    """Monthly MAR. Demographics are copied from the patient once, at creation."""
    __tablename__ = "mar_forms"
    __table_args__ = (
        UniqueConstraint('patient_id', 'month_year', name='uq_mar_forms_patient_month'),
        Index('idx_mar_forms_patient_id', 'patient_id'),
        Index('idx_mar_forms_hospital_id', 'hospital_id'),
        Index('idx_mar_forms_status', 'status'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    hospital_id = Column(String(36), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False)
    month_year = Column(String(20), nullable=False)  # "November 2025"
    created_by = Column(String(36), ForeignKey("user_profiles.id"), nullable=False)
    status = Column(SQLAlchemyEnum(MarFormStatus, name='mar_form_status'), default=MarFormStatus.draft, nullable=False)

    # Snapshot of the patient record at creation time
    patient_name = Column(String(255), nullable=False)
    record_number = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    sex = Column(String(10), nullable=False)
    diagnosis = Column(Text, nullable=True)
    diet = Column(Text, nullable=True)
    allergies = Column(Text, nullable=False, default="")
    physician_name = Column(String(255), nullable=False)
    physician_phone = Column(String(20), nullable=True)
    facility_name = Column(String(255), nullable=True)

    vital_signs_instructions = Column(Text, nullable=True)
    comments = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    patient = relationship("Patient", back_populates="mar_forms")
    medications = relationship(
        "MarMedication", back_populates="mar_form", cascade="all, delete-orphan",
        order_by="MarMedication.display_order"
    )
    administrations = relationship("MarAdministration", back_populates="mar_form", cascade="all, delete-orphan")
    vital_signs = relationship("MarVitalSign", back_populates="mar_form", cascade="all, delete-orphan")
    prn_records = relationship(
        "MarPrnRecord", back_populates="mar_form", cascade="all, delete-orphan",
        order_by="MarPrnRecord.entry_number"
    )


class MarMedication(Base):
    """One physical row per daily administration hour.

    A medication given N times a day is N rows sharing every field but `hour`.
    Rows created together also share `prescription_group_id`.
    """
    __tablename__ = "mar_medications"
    __table_args__ = (
        Index('idx_mar_medications_form', 'mar_form_id', 'display_order'),
        Index('idx_mar_medications_group', 'prescription_group_id'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    mar_form_id = Column(String(36), ForeignKey("mar_forms.id", ondelete="CASCADE"), nullable=False)
    medication_name = Column(String(255), nullable=False)
    dosage = Column(String(255), nullable=False, default="")
    start_date = Column(Date, nullable=True)
    stop_date = Column(Date, nullable=True)  # null means ongoing
    hour = Column(String(20), nullable=True)
    route = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    parameter = Column(Text, nullable=True)
    frequency = Column(Integer, nullable=True, default=1)
    frequency_display = Column(String(100), nullable=True)
    display_order = Column(Integer, nullable=True)
    prescription_group_id = Column(String(36), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    mar_form = relationship("MarForm", back_populates="medications")
    administrations = relationship("MarAdministration", back_populates="medication", cascade="all, delete-orphan")

    @property
    def is_vitals_placeholder(self) -> bool:
        return self.medication_name == VITALS_MEDICATION_NAME or self.notes == VITALS_NOTES_MARKER


class MarAdministration(Base):
    """A filled grid cell. Absence of a row means the cell is empty."""
    __tablename__ = "mar_administrations"
    __table_args__ = (
        UniqueConstraint('medication_id', 'day_of_month', name='uq_administration_medication_day'),
        CheckConstraint('day_of_month BETWEEN 1 AND 31', name='ck_administration_day'),
        Index('idx_mar_administrations_form', 'mar_form_id'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    medication_id = Column(String(36), ForeignKey("mar_medications.id", ondelete="CASCADE"), nullable=False)
    mar_form_id = Column(String(36), ForeignKey("mar_forms.id", ondelete="CASCADE"), nullable=False)
    day_of_month = Column(Integer, nullable=False)
    initials = Column(String(10), nullable=True)
    given = Column(Boolean, nullable=False, default=True)
    reason_for_omission = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    administered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    medication = relationship("MarMedication", back_populates="administrations")
    mar_form = relationship("MarForm", back_populates="administrations")


class MarVitalSign(Base):
    __tablename__ = "mar_vital_signs"
    __table_args__ = (
        UniqueConstraint('mar_form_id', 'vital_type', 'day_of_month', name='uq_vital_form_type_day'),
        CheckConstraint('day_of_month BETWEEN 1 AND 31', name='ck_vital_day'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    mar_form_id = Column(String(36), ForeignKey("mar_forms.id", ondelete="CASCADE"), nullable=False)
    vital_type = Column(SQLAlchemyEnum(VitalType, name='vital_type'), nullable=False)
    day_of_month = Column(Integer, nullable=False)
    value = Column(String(50), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    mar_form = relationship("MarForm", back_populates="vital_signs")


class MarPrnRecord(Base):
    """PRN given or scheduled dose not given, logged narratively."""
    __tablename__ = "mar_prn_records"
    __table_args__ = (
        Index('idx_mar_prn_records_form', 'mar_form_id', 'entry_number'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    mar_form_id = Column(String(36), ForeignKey("mar_forms.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    hour = Column(String(20), nullable=True)
    initials = Column(String(10), nullable=True)
    medication = Column(String(255), nullable=False)
    reason = Column(Text, nullable=False)
    result = Column(Text, nullable=True)
    staff_signature = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    entry_number = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    mar_form = relationship("MarForm", back_populates="prn_records")


class MarCustomLegend(Base):
    __tablename__ = "mar_custom_legends"
    __table_args__ = (
        UniqueConstraint('user_id', 'code', name='uq_custom_legend_user_code'),
        Index('idx_mar_custom_legends_user_id', 'user_id'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    code = Column(String(10), nullable=False)
    description = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("UserProfile", back_populates="custom_legends")


# ==================== AUDIT ====================

class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index('idx_audit_logs_user_time', 'user_id', 'timestamp'),
        Index('idx_audit_logs_category', 'category'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=True)
    action = Column(SQLAlchemyEnum(AuditAction, name='audit_action'), nullable=False)
    category = Column(String(50), nullable=False, default="GENERAL")
    severity = Column(String(20), nullable=False, default="INFO")
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(36), nullable=True)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
