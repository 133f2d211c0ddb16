from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import NotFoundError, PersistenceError
from app.models.system_setting import SystemSetting
from app.services.system_settings.service import SystemSettingsService


def _service(row=None):
    db = MagicMock()
    db.query.return_value.filter.return_value.first.return_value = row
    return SystemSettingsService(db), db


def _row(value, key="maintenance_placid"):
    return SystemSetting(
        setting_key=key,
        setting_value=value,
        updated_by="admin",
        updated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


class TestMaintenanceStatus:
    def test_enabled_with_message(self):
        svc, _ = _service(_row({"enabled": True, "message": "Back at 5pm"}))
        status = svc.maintenance_status("placid")
        assert status.is_under_maintenance is True
        assert status.as_dict() == {"isUnderMaintenance": True, "message": "Back at 5pm"}

    def test_enabled_default_message(self):
        svc, _ = _service(_row({"enabled": True}))
        assert svc.maintenance_status("placid").message == "PLACID poster generation is currently unavailable."

    def test_missing_row_is_not_maintenance(self):
        svc, _ = _service(None)
        assert svc.maintenance_status("ai").is_under_maintenance is False

    def test_unreadable_table_is_not_maintenance(self):
        svc, db = _service()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("down"))
        assert svc.maintenance_status("placid").is_under_maintenance is False

    def test_all_engines(self):
        svc, _ = _service(None)
        assert set(svc.all_maintenance_status()) == {"placid", "ai"}


class TestUpdate:
    def test_unknown_key(self):
        svc, _ = _service(None)
        with pytest.raises(NotFoundError):
            svc.update("maintenance_unknown", {"enabled": True})

    def test_updates_value_and_author(self):
        row = _row({"enabled": False})
        svc, db = _service(row)

        result = svc.update("maintenance_placid", {"enabled": True, "message": "x"}, updated_by="ops@example.com")

        assert row.setting_value == {"enabled": True, "message": "x"}
        assert result["updated_by"] == "ops@example.com"
        db.commit.assert_called_once()

    def test_write_failure(self):
        svc, db = _service(_row({"enabled": False}))
        db.commit.side_effect = OperationalError("UPDATE", {}, Exception("down"))

        with pytest.raises(PersistenceError):
            svc.update("maintenance_placid", {"enabled": True})
        db.rollback.assert_called_once()
