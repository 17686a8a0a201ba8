'''
Claims carried by bearer tokens.
'''
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from ..database.db_enums import UserRole

class TokenPayload(BaseModel):
    sub: UUID # 'sub' is the instructor's or learner's id
    role: UserRole
    exp: datetime
