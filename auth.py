# backend/auth.py

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import requests
from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

import schemas     # absolute import
from errors import InvalidInput, Unauthenticated, UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"]
)


@dataclass(frozen=True)
class Principal:
    """The authenticated user attached to a request."""

    id: str
    email: str = ""
    created_at: Optional[datetime] = None


# ─── Verifiers ─────────────────────────────────────────────────────────────────

class JWTIdentityVerifier:
    """Checks the identity provider's signed access tokens locally."""

    def __init__(self, secret: str, algorithm: str = "HS256", audience: Optional[str] = None):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    def verify(self, token: str) -> Principal:
        if not token:
            raise Unauthenticated("Missing or invalid authorization header")
        try:
            # No configured audience means the aud claim is not checked
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": bool(self.audience)},
            )
        except JWTError as e:
            logger.info("Rejected token: %s", e)
            raise Unauthenticated("Invalid or expired token", details=str(e))

        user_id = payload.get("sub")
        if not user_id:
            raise Unauthenticated("Invalid or expired token", details="Token has no subject")
        return Principal(id=str(user_id), email=payload.get("email") or "")


class RemoteIdentityVerifier:
    """Asks the identity provider who owns a token.

    Uses the provider's ``/auth/v1/user`` endpoint. The call is bounded by
    ``timeout``; a slow or failing provider is reported as an upstream error,
    never as an authentication failure.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 5.0):
        if not base_url:
            raise RuntimeError("AUTH_PROVIDER_URL must be set when AUTH_MODE=remote")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def verify(self, token: str) -> Principal:
        if not token:
            raise Unauthenticated("Missing or invalid authorization header")

        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            r = requests.get(f"{self.base_url}/auth/v1/user", headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise UpstreamTimeout("Identity provider timed out")
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailable("Identity provider unavailable", details=str(e))

        if r.status_code in (400, 401, 403, 404):
            logger.info("Identity provider rejected token: %s", r.status_code)
            raise Unauthenticated("Invalid or expired token", details=r.text or None)
        try:
            r.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise UpstreamUnavailable("Identity provider unavailable", details=str(e))

        try:
            data = r.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise UpstreamUnavailable(
                "Identity provider returned an unexpected payload", details=r.text or None
            )
        if not data.get("id"):
            raise Unauthenticated("Invalid or expired token")
        return Principal(
            id=str(data["id"]),
            email=data.get("email") or "",
            created_at=_parse_timestamp(data.get("created_at")),
        )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def build_verifier(settings):
    if settings.auth_mode == "remote":
        return RemoteIdentityVerifier(
            settings.auth_provider_url,
            api_key=settings.auth_provider_api_key,
            timeout=settings.auth_timeout_seconds,
        )
    if settings.auth_mode != "jwt":
        raise RuntimeError(f"Unknown AUTH_MODE: {settings.auth_mode}")
    return JWTIdentityVerifier(
        settings.jwt_secret, algorithm=settings.jwt_algorithm, audience=settings.jwt_audience
    )


# ─── HTTPBearer for extracting token ───────────────────────────────────────────
bearer_scheme = HTTPBearer(auto_error=False)


def get_verifier(request: Request):
    return request.app.state.verifier


# ─── Dependency: get_current_user ───────────────────────────────────────────────
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier=Depends(get_verifier),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise Unauthenticated("Missing or invalid authorization header")
    return verifier.verify(credentials.credentials)


def _user_out(principal: Principal) -> schemas.UserOut:
    return schemas.UserOut(id=principal.id, email=principal.email, created_at=principal.created_at)


# ─── Verify endpoint ───────────────────────────────────────────────────────────
@router.post("/verify", response_model=schemas.TokenVerifyOut)
def verify_token(body: schemas.TokenVerifyRequest, verifier=Depends(get_verifier)):
    token = (body.token or "").strip()
    if not token:
        raise InvalidInput("Token is required")
    principal = verifier.verify(token)
    return {"user": _user_out(principal), "valid": True}


# ─── Profile endpoint ──────────────────────────────────────────────────────────
@router.get("/profile", response_model=schemas.ProfileOut)
def get_profile(current_user: Principal = Depends(get_current_user)):
    return {"user": _user_out(current_user)}
