'''
Bearer-token verification. Tokens are issued by the login service; this
module only checks them and resolves the instructor or learner behind one.
'''
from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated, Union
from uuid import UUID

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, ConfigDict

from ..common.config import settings
from ..common.exceptions import NotFoundError, UnauthorizedRoleError
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import UserRole
from ..models.token import TokenPayload
from .directory_service import InstructorDirectoryService, LearnerDirectoryService


# --- JWT Handling ---
class JWTHandler:
    @staticmethod
    def create_access_token(
        subject: Union[str, UUID],
        role: UserRole,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        expire = datetime.now(timezone.utc) + expires_delta
        to_encode = {"sub": str(subject), "role": UserRole(role).value, "exp": expire}
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> TokenPayload | None:
        try:
            payload = jwt.decode(
                token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
            )
            return TokenPayload(**payload)
        except (JWTError, ValueError) as e: # Catch Pydantic validation errors too
            log.warning(f"JWT decode/validation error: {e}")
            return None


class Principal(BaseModel):
    """The authenticated caller."""
    id: UUID
    role: UserRole
    email: str

    model_config = ConfigDict(frozen=True)


# --- JWT Verification Dependency Functions ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

async def verify_token_and_get_principal(
    token: Annotated[str, Depends(oauth2_scheme)],
    learners: Annotated[LearnerDirectoryService, Depends(LearnerDirectoryService)],
    instructors: Annotated[InstructorDirectoryService, Depends(InstructorDirectoryService)],
) -> Principal:
    """
    Dependency that verifies the JWT and confirms the instructor or
    learner it names still exists.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = JWTHandler.decode_token(token)
    if not token_data:
        log.warning("JWT decode failed or invalid token structure.")
        raise credentials_exception

    try:
        if token_data.role == UserRole.INSTRUCTOR:
            user: db_models.Instructors | db_models.Learners = await instructors.find_by_id(token_data.sub)
        else:
            user = await learners.find_by_id(token_data.sub)
    except NotFoundError:
        log.warning(f"{token_data.role.value.capitalize()} '{token_data.sub}' not found during token verification.")
        raise credentials_exception

    log.info(f"JWT verified successfully for {user.email} (Role: {token_data.role.value})")
    return Principal(id=user.id, role=token_data.role, email=user.email)


async def get_current_learner(
    principal: Annotated[Principal, Depends(verify_token_and_get_principal)],
) -> Principal:
    if principal.role != UserRole.LEARNER:
        raise UnauthorizedRoleError("Only learners can perform this action.")
    return principal


async def get_current_instructor(
    principal: Annotated[Principal, Depends(verify_token_and_get_principal)],
) -> Principal:
    if principal.role != UserRole.INSTRUCTOR:
        raise UnauthorizedRoleError("Only instructors can perform this action.")
    return principal
