"""Error taxonomy shared by the service and the client SDK."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class NearcastError(Exception):
	"""Base class for request-level errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "nearcast_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(NearcastError):
	"""The entity is missing or has already expired."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class UnauthorizedError(NearcastError):
	"""A mutation was attempted on an entity the caller does not own."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "not_owner"


class UnauthenticatedError(NearcastError):
	status_code = status.HTTP_401_UNAUTHORIZED
	detail = "unauthenticated"


class ValidationError(NearcastError):
	status_code = _HTTP_422
	detail = "validation_error"


class QueryFailed(NearcastError):
	"""Transient backend or network failure; safe to retry."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "query_failed"


class LocationError(Exception):
	"""Base class for device location failures.

	These never cross the feed boundary as exceptions; the tracker stores them
	in its ``error`` field.
	"""

	code = "location_error"

	def __init__(self, message: str | None = None) -> None:
		super().__init__(message or self.code)
		self.message = message or self.code


class PermissionDenied(LocationError):
	code = "permission_denied"


class AcquisitionTimeout(LocationError):
	code = "acquisition_timeout"


class LocationUnsupported(LocationError):
	code = "unsupported_platform"


class LocationUnavailable(LocationError):
	"""Nearby mode has no fix yet. Recoverable."""

	code = "location_unavailable"


class AcquisitionFailed(LocationError):
	code = "acquisition_failed"


__all__ = [
	"NearcastError",
	"NotFoundError",
	"UnauthorizedError",
	"UnauthenticatedError",
	"ValidationError",
	"QueryFailed",
	"LocationError",
	"PermissionDenied",
	"AcquisitionTimeout",
	"LocationUnsupported",
	"LocationUnavailable",
	"AcquisitionFailed",
]
