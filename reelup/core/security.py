import uuid
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from reelup.core.config import settings

VIDEOS_READ = "videos:read"
VIDEOS_WRITE = "videos:write"

# uploading implies being able to read back what was uploaded
_IMPLIED_SCOPES = {VIDEOS_WRITE: {VIDEOS_READ}}

http_bearer = HTTPBearer(auto_error=False)

class Principal(BaseModel):
    user_id: uuid.UUID
    roles: list[str] = []
    scopes: list[str] = []

    def granted(self) -> set[str]:
        out = set(self.scopes)
        for scope in self.scopes:
            out |= _IMPLIED_SCOPES.get(scope, set())
        return out

    def missing_scopes(self, needed) -> list[str]:
        if "*" in self.scopes:
            return []
        have = self.granted()
        return sorted(s for s in needed if s not in have)

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers={"WWW-Authenticate": "Bearer"},
    )

def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
    except JWTError as e:
        raise _unauthorized(f"Invalid token: {e}")

def _scopes_claim(data: dict) -> list[str]:
    # accept both a list claim and the OAuth2 space-separated "scope" string
    scopes = data.get("scopes")
    if scopes is None:
        scopes = (data.get("scope") or "").split()
    if isinstance(scopes, str):
        scopes = scopes.split()
    return [str(s) for s in scopes]

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    # In local mode, uploads without a token belong to the default user
    if creds is None and settings.ENV == "local":
        return Principal(user_id=uuid.UUID(settings.DEFAULT_USER_ID), roles=["admin"], scopes=["*"])
    if creds is None:
        raise _unauthorized("Missing token")

    data = _decode_token(creds.credentials)
    try:
        user_id = uuid.UUID(str(data.get("sub") or data.get("user_id")))
    except ValueError:
        raise _unauthorized("Invalid token: bad subject")
    return Principal(user_id=user_id, roles=data.get("roles", []), scopes=_scopes_claim(data))

def require_scopes(*needed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        missing = principal.missing_scopes(needed)
        if missing:
            raise HTTPException(status_code=403, detail=f"Insufficient scopes: {', '.join(missing)} required")
        return principal
    return dep
