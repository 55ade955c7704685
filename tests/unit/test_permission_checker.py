import pytest
from app.auth.permissions import PermissionChecker
from app.core.exceptions import AuthorizationDeniedError

@pytest.fixture
def checker() -> PermissionChecker:
    return PermissionChecker(["users.view", "users.edit", "content.*", "reports.view"])

class TestPermissionChecker:
    def test_exact_match(self, checker):
        assert checker.can("users.view")
        assert checker.cannot("users.delete")

    def test_granted_wildcard(self, checker):
        assert checker.can("content.edit")
        assert checker.can("content.edit.draft")
        assert checker.cannot("contents.edit")

    def test_queried_wildcard(self, checker):
        assert checker.can("users.*")
        assert checker.cannot("menus.*")

    def test_any_and_all(self, checker):
        assert checker.has_any("menus.view", "reports.view")
        assert not checker.has_all("menus.view", "reports.view")
        assert checker.has_all("users.view", "users.edit")

    def test_require_raises_denied(self, checker):
        checker.require("users.view")
        with pytest.raises(AuthorizationDeniedError):
            checker.require("users.delete")

    def test_module_listing(self, checker):
        assert checker.get_permissions_for_module("users") == ["users.edit", "users.view"]

    def test_empty(self):
        assert PermissionChecker([]).cannot("users.view")
