# app/auth/permissions.py

import re
from typing import Iterable, List, Optional
import logging

from app.core.exceptions import AuthorizationDeniedError

logger = logging.getLogger(__name__)


def _compile(pattern: str) -> "re.Pattern":
    return re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$")


class PermissionChecker:
    """
    Check a resolved set of permission names

    Granted names may carry '*' wildcards (e.g. 'content.*'), as may queried
    names, so 'content.*' held by a user satisfies 'content.edit'.
    """

    def __init__(self, permission_names: Iterable[str]):
        self.permissions = sorted(set(permission_names or []))
        self._exact = set(p for p in self.permissions if "*" not in p)
        self._patterns = [_compile(p) for p in self.permissions if "*" in p]

        logger.debug(f"PermissionChecker initialized with {len(self.permissions)} permissions")

    def can(self, permission_name: str) -> bool:
        """
        Check if the holder has a permission

        Examples:
            can("content.edit")
            can("content.*")  # any content permission
        """
        if permission_name in self._exact:
            return True

        if any(pattern.match(permission_name) for pattern in self._patterns):
            logger.debug(f"Permission granted: {permission_name} (via wildcard)")
            return True

        if "*" in permission_name:
            query = _compile(permission_name)
            if any(query.match(name) for name in self._exact):
                return True

        logger.debug(f"Permission denied: {permission_name}")
        return False

    def cannot(self, permission_name: str) -> bool:
        return not self.can(permission_name)

    def require(self, permission_name: str, custom_message: Optional[str] = None):
        """
        Require permission or raise AuthorizationDeniedError
        """
        if self.cannot(permission_name):
            message = custom_message or f"Missing permission {permission_name}"
            logger.warning(f"Permission check failed: {message}")
            raise AuthorizationDeniedError(message)

    def has_any(self, *permission_names: str) -> bool:
        """OR logic"""
        return any(self.can(name) for name in permission_names)

    def has_all(self, *permission_names: str) -> bool:
        """AND logic"""
        return all(self.can(name) for name in permission_names)

    def get_permissions_for_module(self, module: str) -> List[str]:
        prefix = f"{module}."
        return [name for name in self.permissions if name.startswith(prefix)]
