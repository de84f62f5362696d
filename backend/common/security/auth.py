"""
Principal extraction for requests arriving through the API gateway.

Credential verification (JWT issuance and validation) happens upstream. The
gateway forwards the already-authenticated principal as headers, which this
module turns into an ``AuthenticatedPrincipal``:

    - X-Tenant-Id: required
    - X-User-Id: required
    - X-User-Role: optional, defaults to "viewer"
"""

from fastapi import Header, HTTPException, status
from loguru import logger
from pydantic import BaseModel

DEFAULT_ROLE = "viewer"


class AuthenticatedPrincipal(BaseModel):
    """Model for the authenticated caller."""

    tenant_id: str
    user_id: str
    role: str = DEFAULT_ROLE


def _required_header(value: str | None, header_name: str) -> str:
    if value is None:
        logger.warning(f"Missing {header_name} header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{header_name} header is required",
        )
    stripped = value.strip()
    if not stripped:
        logger.warning(f"Empty {header_name} header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{header_name} header cannot be empty",
        )
    return stripped


async def get_current_principal(
    tenant_id_header: str | None = Header(default=None, alias="X-Tenant-Id"),
    user_id_header: str | None = Header(default=None, alias="X-User-Id"),
    role_header: str | None = Header(default=None, alias="X-User-Role"),
) -> AuthenticatedPrincipal:
    """
    Build the authenticated principal from gateway headers.

    Raises:
        HTTPException: 400 Bad Request if X-Tenant-Id or X-User-Id is missing
            or empty.
    """
    tenant_id = _required_header(tenant_id_header, "X-Tenant-Id")
    user_id = _required_header(user_id_header, "X-User-Id")
    role = (role_header or "").strip() or DEFAULT_ROLE
    return AuthenticatedPrincipal(tenant_id=tenant_id, user_id=user_id, role=role)
