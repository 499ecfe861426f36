# chartbuddies/access_policy.py
"""
Tenant isolation and role rules, in one place.

`can_access` is a pure decision over a subject, an action, a resource kind and
the resource's tenant chain (hospital, patient, assigned nurses, owner).
`resolve_chain` builds that chain from any ORM entity by walking up to the
patient. `authorize` is what crud and routers call; a denial looks exactly
like a missing row so existence never leaks across hospitals.
"""
import enum
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

import structlog
from sqlalchemy import false, select
from sqlalchemy.orm import Query, Session

from . import models

logger = structlog.get_logger(__name__)


class Action(str, enum.Enum):
    read = "read"
    create = "create"
    update = "update"
    delete = "delete"


class Resource(str, enum.Enum):
    hospital = "hospital"
    user_profile = "user_profile"
    patient = "patient"
    assignment = "assignment"
    mar_form = "mar_form"
    mar_medication = "mar_medication"
    mar_administration = "mar_administration"
    mar_vital_sign = "mar_vital_sign"
    mar_prn_record = "mar_prn_record"
    mar_custom_legend = "mar_custom_legend"


MAR_RESOURCES = frozenset({
    Resource.mar_form,
    Resource.mar_medication,
    Resource.mar_administration,
    Resource.mar_vital_sign,
    Resource.mar_prn_record,
})

_RESOURCE_BY_MODEL = {
    models.Hospital: Resource.hospital,
    models.UserProfile: Resource.user_profile,
    models.Patient: Resource.patient,
    models.NursePatientAssignment: Resource.assignment,
    models.MarForm: Resource.mar_form,
    models.MarMedication: Resource.mar_medication,
    models.MarAdministration: Resource.mar_administration,
    models.MarVitalSign: Resource.mar_vital_sign,
    models.MarPrnRecord: Resource.mar_prn_record,
    models.MarCustomLegend: Resource.mar_custom_legend,
}


@dataclass(frozen=True)
class Subject:
    id: str
    role: models.UserRole
    hospital_id: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: models.UserProfile) -> "Subject":
        return cls(id=profile.id, role=models.UserRole(profile.role), hospital_id=profile.hospital_id)


@dataclass(frozen=True)
class TenantChain:
    hospital_id: Optional[str] = None
    patient_id: Optional[str] = None
    assigned_nurse_ids: FrozenSet[str] = field(default_factory=frozenset)
    owner_id: Optional[str] = None


def can_access(subject: Subject, action: Action, resource: Resource, chain: TenantChain) -> bool:
    if subject.role == models.UserRole.superadmin:
        return True

    same_hospital = subject.hospital_id is not None and subject.hospital_id == chain.hospital_id

    if resource == Resource.hospital:
        if action == Action.read:
            return same_hospital
        if action == Action.create:
            return subject.hospital_id is None
        return False

    if resource == Resource.user_profile:
        if chain.owner_id == subject.id:
            return action in (Action.read, Action.update)
        return action == Action.read and same_hospital

    if resource == Resource.mar_custom_legend:
        return chain.owner_id == subject.id

    # Everything below is hospital data
    if not same_hospital:
        return False
    if subject.role == models.UserRole.head_nurse:
        return True

    assigned = subject.id in chain.assigned_nurse_ids
    if resource == Resource.patient:
        if action == Action.create:
            return True
        if action in (Action.read, Action.update):
            return assigned
        return False

    if resource == Resource.assignment:
        return action == Action.read and chain.owner_id == subject.id

    if resource in MAR_RESOURCES:
        return assigned

    return False


def _active_nurse_ids(db: Session, patient_id: Optional[str]) -> FrozenSet[str]:
    if not patient_id:
        return frozenset()
    rows = db.query(models.NursePatientAssignment.nurse_id).filter(
        models.NursePatientAssignment.patient_id == patient_id,
        models.NursePatientAssignment.is_active.is_(True),
    ).all()
    return frozenset(r[0] for r in rows)


def _patient_chain(db: Session, hospital_id: Optional[str], patient_id: Optional[str],
                   owner_id: Optional[str] = None) -> TenantChain:
    return TenantChain(
        hospital_id=hospital_id,
        patient_id=patient_id,
        assigned_nurse_ids=_active_nurse_ids(db, patient_id),
        owner_id=owner_id,
    )


def resolve_chain(db: Session, entity) -> TenantChain:
    """Walk any entity up to its hospital/patient and collect active assignments."""
    if isinstance(entity, models.Hospital):
        return TenantChain(hospital_id=entity.id)
    if isinstance(entity, models.UserProfile):
        return TenantChain(hospital_id=entity.hospital_id, owner_id=entity.id)
    if isinstance(entity, models.MarCustomLegend):
        return TenantChain(owner_id=entity.user_id)
    if isinstance(entity, models.Patient):
        return _patient_chain(db, entity.hospital_id, entity.id, owner_id=entity.created_by)
    if isinstance(entity, models.NursePatientAssignment):
        patient = entity.patient or db.get(models.Patient, entity.patient_id)
        return _patient_chain(db, patient.hospital_id if patient else None, entity.patient_id,
                              owner_id=entity.nurse_id)
    if isinstance(entity, models.MarForm):
        return _patient_chain(db, entity.hospital_id, entity.patient_id, owner_id=entity.created_by)
    if isinstance(entity, (models.MarMedication, models.MarAdministration,
                           models.MarVitalSign, models.MarPrnRecord)):
        form = entity.mar_form or db.get(models.MarForm, entity.mar_form_id)
        if form is None:
            return TenantChain()
        return _patient_chain(db, form.hospital_id, form.patient_id)
    raise TypeError(f"No tenant chain for {type(entity).__name__}")


def resource_for(entity) -> Resource:
    try:
        return _RESOURCE_BY_MODEL[type(entity)]
    except KeyError:
        raise TypeError(f"Unknown resource type {type(entity).__name__}")


def authorize(db: Session, subject: Subject, action: Action, entity, label: str = None):
    """
    Return `entity` when allowed. A denial is audited and raised as NotFoundError,
    same as a missing row.
    """
    from . import crud

    resource = resource_for(entity)
    if can_access(subject, action, resource, resolve_chain(db, entity)):
        return entity

    logger.warning("access_denied", subject_id=subject.id, role=subject.role.value,
                   action=action.value, resource=resource.value, resource_id=getattr(entity, "id", None))
    crud.create_audit_log(
        db=db, user_id=subject.id, action=models.AuditAction.ACCESS_DENIED, category="ACCESS",
        severity="WARNING", resource_type=resource.value, resource_id=getattr(entity, "id", None),
        details=f"{action.value} denied on {resource.value}",
    )
    raise crud.NotFoundError(f"{label or resource.value.replace('_', ' ').capitalize()} not found")


def authorize_create(db: Session, subject: Subject, resource: Resource, chain: TenantChain, label: str = None):
    """Create checks run against the would-be parent's chain, there is no entity yet."""
    from . import crud

    if can_access(subject, Action.create, resource, chain):
        return
    logger.warning("access_denied", subject_id=subject.id, role=subject.role.value,
                   action="create", resource=resource.value, patient_id=chain.patient_id)
    crud.create_audit_log(
        db=db, user_id=subject.id, action=models.AuditAction.ACCESS_DENIED, category="ACCESS",
        severity="WARNING", resource_type=resource.value, resource_id=chain.patient_id,
        details=f"create denied on {resource.value}",
    )
    raise crud.NotFoundError(f"{label or 'Parent record'} not found")


def scope_patients(query: Query, subject: Subject) -> Query:
    """SQL rendition of the patient read rule, for list endpoints."""
    if subject.role == models.UserRole.superadmin:
        return query
    if not subject.hospital_id:
        return query.filter(false())
    query = query.filter(models.Patient.hospital_id == subject.hospital_id)
    if subject.role == models.UserRole.head_nurse:
        return query
    assigned = select(models.NursePatientAssignment.patient_id).where(
        models.NursePatientAssignment.nurse_id == subject.id,
        models.NursePatientAssignment.is_active.is_(True),
    )
    return query.filter(models.Patient.id.in_(assigned))
