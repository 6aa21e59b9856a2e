"""Authentication helpers for FastAPI endpoints.

Identity is issued elsewhere; this module only verifies bearer tokens. In the
dev environment an ``X-User-Id`` header is accepted for local tooling.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from nearcast.domain.errors import UnauthenticatedError
from nearcast.infra import jwt as jwt_helper
from nearcast.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	username: Optional[str] = None
	session_id: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def _canonical_user_id(raw: object) -> str:
	"""Owner ids are UUIDs everywhere downstream; reject anything else here."""
	try:
		return str(UUID(str(raw or "").strip()))
	except ValueError:
		raise UnauthenticatedError("invalid_token") from None


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise UnauthenticatedError("invalid_token") from None

	sub = _canonical_user_id(payload.get("sub"))
	username = payload.get("username") or payload.get("preferred_username")
	session_id = payload.get("sid")
	return AuthenticatedUser(
		id=sub,
		username=str(username) if username is not None else None,
		session_id=str(session_id).strip() if session_id is not None else None,
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow a simple header. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=_canonical_user_id(x_user_id))

	raise UnauthenticatedError("invalid_token")
