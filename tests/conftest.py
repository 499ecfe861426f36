# tests/conftest.py
import os
import time
from datetime import date

# Settings are read at import time, so the environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("IDENTITY_JWT_SECRET", "test-secret-key-that-is-at-least-32-chars")
os.environ.setdefault("IDENTITY_JWT_AUDIENCE", "authenticated")
os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chartbuddies import crud, models
from chartbuddies.config import get_settings
from chartbuddies.database import create_tables, drop_tables, get_db
from chartbuddies.main import app


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(test_engine, "connect")
    def _fk_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    create_tables(bind=test_engine)
    yield test_engine
    drop_tables(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_token(sub: str, email: str = None, name: str = None, expires_in: int = 3600, **claims) -> str:
    settings = get_settings()
    payload = {
        "sub": sub,
        "email": email or f"{sub}@example.com",
        "aud": settings.identity_jwt_audience,
        "exp": int(time.time()) + expires_in,
    }
    if name:
        payload["user_metadata"] = {"full_name": name}
    payload.update(claims)
    return jwt.encode(payload, settings.identity_jwt_secret, algorithm=settings.identity_jwt_algorithm)


def auth(sub: str, **kwargs) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, **kwargs)}"}


def add_profile(db, sub, role, hospital, initials=None, full_name=None):
    full_name = full_name or sub.replace("-", " ").title()
    first, middle, last = crud.split_full_name(full_name)
    profile = models.UserProfile(
        id=sub,
        email=f"{sub}@example.com",
        full_name=full_name,
        first_name=first,
        middle_name=middle,
        last_name=last,
        role=role,
        hospital_id=hospital.id if hospital else None,
        staff_initials_text=initials,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def hospital(db):
    return crud.create_hospital(db, name="St. Mary's", facility_type="hospital")


@pytest.fixture
def other_hospital(db):
    return crud.create_hospital(db, name="Riverside Clinic", facility_type="clinic")


@pytest.fixture
def superadmin(db, hospital):
    return add_profile(db, "admin-1", models.UserRole.superadmin, hospital, initials="SA")


@pytest.fixture
def head_nurse(db, hospital):
    return add_profile(db, "head-1", models.UserRole.head_nurse, hospital, initials="HN", full_name="Helen Nash")


@pytest.fixture
def nurse(db, hospital):
    return add_profile(db, "nurse-1", models.UserRole.nurse, hospital, initials="JS", full_name="Jane Smith")


@pytest.fixture
def other_nurse(db, hospital):
    return add_profile(db, "nurse-2", models.UserRole.nurse, hospital, initials="KB")


@pytest.fixture
def foreign_head_nurse(db, other_hospital):
    return add_profile(db, "head-2", models.UserRole.head_nurse, other_hospital, initials="RC")


PATIENT_PAYLOAD = {
    "patient_name": "John Doe",
    "record_number": "MRN-001",
    "date_of_birth": "1950-03-14",
    "sex": "Male",
    "diagnosis": "Hypertension",
    "diet": "Low sodium",
    "allergies": "Penicillin",
    "physician_name": "Dr. Adams",
    "physician_phone": "555-0100",
    "facility_name": "St. Mary's",
}


@pytest.fixture
def patient(db, head_nurse):
    from chartbuddies import schemas
    return crud.create_patient(db, head_nurse, schemas.PatientCreate(**{
        **PATIENT_PAYLOAD, "date_of_birth": date(1950, 3, 14),
    }))


@pytest.fixture
def assigned_patient(db, head_nurse, nurse, patient):
    crud.create_assignment(db, head_nurse, patient.id, nurse.id)
    return patient


@pytest.fixture
def november_form(db, head_nurse, patient):
    form, _ = crud.get_or_create_mar_form(db, head_nurse, patient.id, "November 2025")
    return form
