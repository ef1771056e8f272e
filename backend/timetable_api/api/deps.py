from collections.abc import Generator
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from timetable_api.core.config import Settings, get_settings
from timetable_api.core.security import decode_token
from timetable_api.db.session import SessionLocal
from timetable_api.services.schedule_generator import ScheduleGenerator, ScheduleGeneratorService

security = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    id: str
    role: str | None = None


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
        subject = payload.get("sub")
        if not subject:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc
    return Principal(id=str(subject), role=payload.get("role"))


def require_scheduler_role(
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
) -> Principal:
    if principal.role not in set(settings.scheduler_roles):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return principal


def get_generator_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ScheduleGenerator:
    return ScheduleGeneratorService(db, settings=settings)
