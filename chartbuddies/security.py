# chartbuddies/security.py
"""
Bearer-token authentication against the external identity provider.

Tokens are issued elsewhere; this service only verifies the signature,
audience and expiry, then maps the `sub` claim onto a UserProfile.
"""
from typing import Optional, Dict, Any

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db
from . import models, crud

security_logger = structlog.get_logger("security")

bearer_scheme = HTTPBearer(auto_error=False)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify and decode an identity-provider access token"""
    settings = get_settings()
    audience = settings.identity_jwt_audience
    try:
        return jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[settings.identity_jwt_algorithm],
            audience=audience,
            options={"verify_aud": audience is not None},
        )
    except JWTError as e:
        security_logger.info("token_rejected", reason=str(e))
        return None


def _display_name(payload: Dict[str, Any]) -> Optional[str]:
    metadata = payload.get("user_metadata") or {}
    return metadata.get("full_name") or payload.get("name")


# Dependencies for FastAPI
def get_current_profile(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.UserProfile:
    """Authenticated profile, created on first sight. May not be linked to a hospital yet."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise credentials_exception

    payload = verify_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise credentials_exception

    try:
        profile = crud.ensure_profile(db, payload["sub"], payload.get("email") or "", _display_name(payload))
    except crud.OnboardingError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    if not profile.is_active:
        security_logger.warning("inactive_profile_rejected", profile_id=profile.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")

    structlog.contextvars.bind_contextvars(user_id=profile.id)
    return profile


def get_onboarded_profile(
    profile: models.UserProfile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> models.UserProfile:
    """Profile guaranteed to belong to a hospital, repairing half-finished onboarding."""
    if profile.hospital_id:
        return profile
    try:
        return crud.repair_hospital_link(db, profile)
    except crud.OnboardingError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


def require_role(*allowed_roles: str):
    """Dependency factory for role-based access control"""
    def role_dependency(current_user: models.UserProfile = Depends(get_onboarded_profile)) -> models.UserProfile:
        if models.UserRole(current_user.role).value not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return current_user

    return role_dependency


# Specific role dependencies
require_superadmin = require_role("superadmin")
require_clinical_lead = require_role("superadmin", "head_nurse")


# Middleware for additional security headers
def add_security_headers(response):
    """Add security headers to response"""
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store"
    return response
