"""Bearer-token authentication and the admin role gate.

Token verification and role lookup sit behind two small interfaces,
``TokenVerifier`` and ``RoleStore``, resolved through FastAPI dependencies so
either can be replaced (``app.dependency_overrides``) without touching routes.
"""

import logging
from typing import Any, Callable, Dict, Optional, Protocol

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, Field
from pymongo.collection import Collection

from config import Settings
from database import Database, get_db
from errors import Forbidden, Unauthenticated, UpstreamError, store_errors

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
DEFAULT_ROLE = "user"

FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"

# auto_error=False so a missing header becomes our own 401 body
bearer_scheme = HTTPBearer(auto_error=False)


class Claims(BaseModel):
    email: Optional[str] = None
    sub: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Claims":
        return cls(email=payload.get("email"), sub=payload.get("sub"), raw=payload)


class InvalidToken(Exception):
    pass


class TokenVerifier(Protocol):
    def verify(self, token: str) -> Claims: ...


class RoleStore(Protocol):
    def get_role(self, email: str) -> Optional[str]: ...


class JoseTokenVerifier:
    def __init__(self, secret: str, algorithm: str = "HS256", audience: Optional[str] = None):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    def verify(self, token: str) -> Claims:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            raise InvalidToken(str(e)) from e
        return Claims.from_payload(payload)


class MongoRoleStore:
    def __init__(self, users: Collection):
        self.users = users

    def get_role(self, email: str) -> Optional[str]:
        with store_errors("Failed to fetch user role."):
            user = self.users.find_one({"email": email}, {"role": 1})
        if not user:
            return None
        return user.get("role")


class JwksTokenVerifier:
    """Verifies RS256 tokens against an issuer's published JSON Web Key Set.

    The key set is fetched on first use and fetched again whenever a token
    names a ``kid`` that is not in it, since issuers rotate their signing keys.
    """

    def __init__(
        self,
        jwks_url: str,
        audience: str,
        issuer: str,
        fetch: Optional[Callable[[str], Dict[str, Any]]] = None,
    ):
        self.jwks_url = jwks_url
        self.audience = audience
        self.issuer = issuer
        self.fetch = fetch or fetch_jwks
        self._jwks: Optional[Dict[str, Any]] = None

    def _key_set(self, kid: Optional[str]) -> Dict[str, Any]:
        known = {k.get("kid") for k in (self._jwks or {}).get("keys", [])}
        if self._jwks is None or kid not in known:
            try:
                self._jwks = self.fetch(self.jwks_url)
            except httpx.HTTPError as e:
                logger.error("Failed to fetch signing keys from %s: %s", self.jwks_url, e)
                raise UpstreamError("Failed to fetch token signing keys", error=str(e)) from e
        return self._jwks

    def verify(self, token: str) -> Claims:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise InvalidToken(str(e)) from e
        key_set = self._key_set(header.get("kid"))
        try:
            payload = jwt.decode(
                token,
                key_set,
                algorithms=["RS256"],
                audience=self.audience,
                issuer=self.issuer,
            )
        except JWTError as e:
            raise InvalidToken(str(e)) from e
        return Claims.from_payload(payload)


def fetch_jwks(url: str) -> Dict[str, Any]:
    response = httpx.get(url, timeout=10.0)
    response.raise_for_status()
    return response.json()


def build_token_verifier(settings: Settings) -> TokenVerifier:
    if settings.auth_provider == "firebase":
        if not settings.firebase_project_id:
            raise ValueError("FIREBASE_PROJECT_ID is required when AUTH_PROVIDER=firebase")
        project = settings.firebase_project_id
        return JwksTokenVerifier(
            settings.jwks_url,
            audience=project,
            issuer=f"{FIREBASE_ISSUER_PREFIX}{project}",
        )
    return JoseTokenVerifier(settings.jwt_secret, settings.jwt_algorithm, settings.jwt_audience)


# Dependencies

def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


def get_role_store(db: Database = Depends(get_db)) -> RoleStore:
    return MongoRoleStore(db.users)


def get_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Claims:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Unauthorized: No token provided")
    try:
        return verifier.verify(credentials.credentials)
    except InvalidToken as e:
        logger.warning("Token verification failed: %s", e)
        raise Forbidden("Forbidden: Invalid token")


def is_admin(claims: Claims, roles: RoleStore) -> bool:
    if not claims.email:
        return False
    return roles.get_role(claims.email) == ADMIN_ROLE


def require_admin(
    claims: Claims = Depends(get_claims),
    roles: RoleStore = Depends(get_role_store),
) -> Claims:
    if not claims.email:
        raise Forbidden("Forbidden: No email found in token")
    if roles.get_role(claims.email) != ADMIN_ROLE:
        logger.warning("Admin access denied for %s", claims.email)
        raise Forbidden("Forbidden: Admins only")
    return claims
