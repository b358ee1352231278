from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jwt.exceptions import PyJWTError
from pydantic import BaseModel
from typing import Optional
from uuid import UUID

from carebridge.core.broadcast import Broadcaster
from carebridge.core.config import settings
from carebridge.core.errors import InvalidRequestError
from carebridge.core.parties import PartyRef, PartyRole
from carebridge.core.security import decode_access_token

# Tokens are issued by the identity provider; only verification happens here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

class Caller(BaseModel):
    id: UUID
    role: PartyRole

async def get_current_caller(token: str = Depends(oauth2_scheme)) -> Caller:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        caller_id = payload.get("sub")
        role = payload.get("role")
        if caller_id is None or role is None:
            raise credentials_exception
        return Caller(id=UUID(str(caller_id)), role=PartyRole(str(role).lower()))
    except (PyJWTError, ValueError):
        raise credentials_exception

def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster

def acting_party(caller: Caller, party_id: Optional[UUID] = None, party_type: Optional[str] = None) -> PartyRef:
    """
    The party a request acts for. A body may repeat the caller's own id and
    role, but naming anyone else is rejected.
    """
    if party_type is not None and PartyRole.parse(party_type) is not caller.role:
        raise InvalidRequestError("Request does not match the authenticated caller")
    if party_id is not None and party_id != caller.id:
        raise InvalidRequestError("Request does not match the authenticated caller")
    return PartyRef(caller.role, caller.id)
