"""
Bootstrap a superadmin for a fresh deployment.

The identity provider owns credentials, so this only writes the profile row
keyed by the provider's user id (the token `sub`) and makes sure it belongs
to a hospital.

    SEED_SUPERADMIN_ID=<sub> SEED_SUPERADMIN_EMAIL=ops@example.com python seed_superadmin.py
"""
import os
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from chartbuddies import crud, models
from chartbuddies.config import get_settings
from chartbuddies.core.logging import setup_logging
from chartbuddies.database import SessionLocal, create_tables

logger = structlog.get_logger("seed_superadmin")


def get_env(name: str, default: Optional[str] = None, required: bool = False) -> str:
    val = os.getenv(name, default)
    if required and not val:
        raise RuntimeError(f"Missing required env var: {name}")
    return val or ""


def upsert_superadmin(db: Session) -> models.UserProfile:
    subject_id = get_env("SEED_SUPERADMIN_ID", required=True)
    email = get_env("SEED_SUPERADMIN_EMAIL", "admin@example.com")
    full_name = get_env("SEED_SUPERADMIN_NAME", "System Administrator")
    hospital_name = get_env("SEED_HOSPITAL_NAME", "Default Hospital")

    hospital = db.query(models.Hospital).filter(models.Hospital.name == hospital_name).first()
    if hospital is None:
        hospital = crud.create_hospital(db, name=hospital_name)
        logger.info("seed_hospital_created", hospital_id=hospital.id, invite_code=hospital.invite_code)

    profile = crud.ensure_profile(db, subject_id, email, full_name)
    action = "updated" if profile.hospital_id else "linked"
    profile.email = email
    profile.role = models.UserRole.superadmin
    profile.is_active = True
    if not profile.hospital_id:
        profile.hospital_id = hospital.id
    db.commit()
    db.refresh(profile)

    logger.info("seed_superadmin_done", action=action, profile_id=profile.id, hospital_id=profile.hospital_id)
    return profile


def main():
    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.log_json)
    create_tables()

    db = SessionLocal()
    try:
        profile = upsert_superadmin(db)
        print(f"Superadmin ready: id='{profile.id}', email='{profile.email}', hospital='{profile.hospital_id}'")
    finally:
        db.close()


if __name__ == "__main__":
    main()
