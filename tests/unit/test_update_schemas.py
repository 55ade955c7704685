import pytest
from pydantic import ValidationError
from app.models.shared.enums import EntityStatus
from app.schemas.auth.menu import MenuUpdate
from app.schemas.auth.permission import PermissionUpdate
from app.schemas.auth.role import RoleUpdate

class TestMenuUpdate:
    @pytest.mark.parametrize("field", ["name", "title", "target", "type", "is_external", "is_active"])
    def test_null_rejected(self, field):
        with pytest.raises(ValidationError):
            MenuUpdate(**{field: None})

    def test_null_parent_moves_to_root(self):
        update = MenuUpdate(parent_id=None, url=None)
        assert update.model_dump(exclude_unset=True) == {"parent_id": None, "url": None}

    def test_omitted_fields_stay_unset(self):
        assert MenuUpdate(title="Settings").model_dump(exclude_unset=True) == {"title": "Settings"}

class TestRoleUpdate:
    @pytest.mark.parametrize("field", ["name", "display_name", "level", "is_default", "status"])
    def test_null_rejected(self, field):
        with pytest.raises(ValidationError):
            RoleUpdate(**{field: None})

    def test_description_may_be_cleared(self):
        update = RoleUpdate(description=None, status=EntityStatus.INACTIVE)
        assert update.model_dump(exclude_unset=True) == {"description": None, "status": EntityStatus.INACTIVE}

class TestPermissionUpdate:
    @pytest.mark.parametrize("field", ["name", "display_name", "module", "action", "sort_order", "status"])
    def test_null_rejected(self, field):
        with pytest.raises(ValidationError):
            PermissionUpdate(**{field: None})

    def test_null_parent_moves_to_root(self):
        assert PermissionUpdate(parent_id=None).model_dump(exclude_unset=True) == {"parent_id": None}
