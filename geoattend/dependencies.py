"""
FastAPI dependencies for the GeoAttend service
"""
from typing import Generator, NamedTuple, Optional
from fastapi import Depends, HTTPException, Header, Request, status
from sqlalchemy.orm import Session
from geoattend.db.database import SessionLocal
from geoattend.config import settings
from geoattend.enums import UserRole
from geoattend.services.attendance_service import AttendanceService, attendance_service
from geoattend.services.audit_service import RequestContext
from geoattend.services.stats_service import StatsService, stats_service
from geoattend.services.verification_service import VerificationService, verification_service


class Caller(NamedTuple):
    """Identity supplied by the upstream session provider"""
    user_id: int
    role: UserRole


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify API key for internal endpoints"""
    if not x_api_key or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )
    return x_api_key


async def get_caller(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[str] = Header(None),
    _api_key: str = Depends(verify_api_key)
) -> Caller:
    """Trusted caller identity forwarded by the auth gateway"""
    if x_user_id is None or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity"
        )
    try:
        role = UserRole(x_user_role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role {x_user_role}"
        )
    return Caller(user_id=x_user_id, role=role)


async def require_reviewer(caller: Caller = Depends(get_caller)) -> Caller:
    """Moderator or Administrator"""
    if caller.role not in (UserRole.moderator, UserRole.administrator):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Moderator or Administrator role required"
        )
    return caller


def get_request_context(request: Request) -> RequestContext:
    """Requester IP and user agent for audit entries"""
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = (
        (forwarded.split(",")[0].strip() if forwarded else None)
        or request.headers.get("x-real-ip")
        or (request.client.host if request.client else None)
    )
    return RequestContext(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent")
    )


def get_attendance_service() -> AttendanceService:
    return attendance_service


def get_verification_service() -> VerificationService:
    return verification_service


def get_stats_service() -> StatsService:
    return stats_service
