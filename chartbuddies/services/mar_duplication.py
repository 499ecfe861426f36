# chartbuddies/services/mar_duplication.py
"""
Carry a MAR form into a new month.

The header is copied from the source form; medications are regrouped into
logical entries (or taken from the caller's edited list) and expanded back
into per-hour rows. The new form and every row go in one transaction, so a
failure never leaves a half-written hour group behind.
"""
from typing import Iterable, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models
from ..access_policy import Resource, authorize_create, resolve_chain
from .medication_grouping import MedicationEntry, expand_medications, group_medications

logger = structlog.get_logger(__name__)

# Header fields carried over; comments belong to the month they were written in
COPIED_HEADER_FIELDS = (
    "patient_name",
    "record_number",
    "date_of_birth",
    "sex",
    "diagnosis",
    "diet",
    "allergies",
    "physician_name",
    "physician_phone",
    "facility_name",
    "vital_signs_instructions",
)


def _entries_from_input(medications: Iterable) -> List[MedicationEntry]:
    entries = []
    for item in medications:
        data = item.model_dump() if hasattr(item, "model_dump") else dict(item)
        if data.get("frequency") is None:
            data["frequency"] = len(data.get("hours") or []) or 1
        entries.append(MedicationEntry(
            medication_name=data["medication_name"],
            dosage=data.get("dosage") or "",
            start_date=data.get("start_date"),
            stop_date=data.get("stop_date"),
            route=data.get("route"),
            notes=data.get("notes"),
            parameter=data.get("parameter"),
            frequency=data["frequency"],
            frequency_display=data.get("frequency_display"),
            hours=list(data.get("hours") or []),
        ))
    return entries


def duplicate_mar_form(db: Session, actor, source_form_id: str, month_year: str,
                       medications: Optional[Iterable] = None) -> models.MarForm:
    source = crud.get_mar_form(db, actor, source_form_id)
    patient = db.get(models.Patient, source.patient_id)
    subject = crud.as_subject(actor)
    authorize_create(db, subject, Resource.mar_form, resolve_chain(db, patient), label="Patient")

    label = crud.normalize_month_year(month_year)
    if crud.find_mar_form(db, source.patient_id, label) is not None:
        raise crud.ConflictError(f"A MAR form for {label} already exists for this patient")

    if medications is None:
        entries = group_medications(source.medications)
        # Stored rows are the truth; a deleted row must not come back blank
        for entry in entries:
            entry.frequency = len(entry.hours)
    else:
        entries = _entries_from_input(medications)
    rows = expand_medications(entries)

    header = {name: getattr(source, name) for name in COPIED_HEADER_FIELDS}
    patient_id = source.patient_id
    try:
        form = models.MarForm(
            patient_id=patient_id,
            hospital_id=source.hospital_id,
            month_year=label,
            created_by=subject.id,
            status=models.MarFormStatus.draft,
            **header,
        )
        db.add(form)
        db.flush()
        for row in rows:
            db.add(models.MarMedication(mar_form_id=form.id, **row))
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if crud.find_mar_form(db, patient_id, label) is not None:
            raise crud.ConflictError(f"A MAR form for {label} already exists for this patient")
        logger.error("mar_form_duplication_failed", source_form_id=source_form_id, error=str(e.orig))
        raise crud.DuplicationError("Duplicating the MAR form failed; nothing was saved")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("mar_form_duplication_failed", source_form_id=source_form_id, error=str(e))
        raise crud.DuplicationError("Duplicating the MAR form failed; nothing was saved")

    db.refresh(form)
    logger.info("mar_form_duplicated", source_form_id=source_form_id, mar_form_id=form.id,
                month_year=label, entries=len(entries), rows=len(rows))
    return form
