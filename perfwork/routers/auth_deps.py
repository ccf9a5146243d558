"""
Principal resolution.

The gateway in front of this service authenticates the user and forwards the
identity as headers. These dependencies turn those headers into a
``Principal`` and decide whether it carries the HR/admin capability.
"""
import logging
from typing import List, Optional

from fastapi import Header

from perfwork.core.config import settings
from perfwork.core.exceptions import AuthenticationError
from perfwork.schemas.performance import Principal

logger = logging.getLogger(__name__)


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def has_privileged_access(roles: List[str], permissions: List[str]) -> bool:
    """HR/admin-equivalent capability: any configured privileged role or permission."""
    privileged_roles = {role.upper() for role in settings.privileged_roles}
    privileged_permissions = {perm.lower() for perm in settings.privileged_permissions}
    return any(role.upper() in privileged_roles for role in roles) or any(
        perm.lower() in privileged_permissions for perm in permissions
    )


def get_current_principal(
    employee_id: Optional[str] = Header(None, alias=settings.employee_id_header),
    user_name: Optional[str] = Header(None, alias=settings.user_name_header),
    roles: Optional[str] = Header(None, alias=settings.roles_header),
    permissions: Optional[str] = Header(None, alias=settings.permissions_header),
) -> Principal:
    """
    Extracts the calling principal from the forwarded identity headers.

    A caller must present an employee id, a role, or both. An admin account
    with no employee record is identified by its roles alone.
    """
    role_list = _split(roles)
    permission_list = _split(permissions)

    if not employee_id and not role_list:
        logger.warning("Authentication failed: no identity headers forwarded")
        raise AuthenticationError()

    parsed_id: Optional[int] = None
    if employee_id:
        try:
            parsed_id = int(employee_id)
        except ValueError:
            logger.warning(f"Authentication failed: non-numeric employee id '{employee_id}'")
            raise AuthenticationError("Invalid employee id header")

    return Principal(
        employee_id=parsed_id,
        name=user_name or "",
        roles=role_list,
        permissions=permission_list,
        is_privileged=has_privileged_access(role_list, permission_list),
    )
