# chartbuddies/services/invite_codes.py
import secrets
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud, models
from ..config import get_settings

logger = structlog.get_logger(__name__)

# No 0/O or 1/I, codes get read out over the phone
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def normalize_invite_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def code_taken(db: Session, code: str) -> bool:
    return db.query(models.Hospital.id).filter(models.Hospital.invite_code == code).first() is not None


def assign_unique_invite_code(
    db: Session,
    hospital: models.Hospital,
    max_attempts: Optional[int] = None,
    generator: Callable[[], str] = generate_invite_code,
) -> models.Hospital:
    """
    Give `hospital` a code no other hospital holds and flush it.

    Codes already taken are skipped before insert. A concurrent signup can
    still claim the same code between the check and the flush; that unique
    violation is rolled back and retried with a fresh code.
    """
    attempts = max_attempts or get_settings().invite_code_max_attempts
    for attempt in range(1, attempts + 1):
        code = generator()
        if code_taken(db, code):
            logger.info("invite_code_taken", attempt=attempt)
            continue

        hospital.invite_code = code
        db.add(hospital)
        try:
            db.flush()
            return hospital
        except IntegrityError:
            db.rollback()
            logger.warning("invite_code_insert_conflict", attempt=attempt)

    logger.error("invite_code_exhausted", attempts=attempts)
    raise crud.ConflictError("Could not allocate a unique invite code, please try again")
