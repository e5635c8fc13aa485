from decimal import Decimal
from uuid import uuid4

import pytest

from slotdesk.errors import NotFoundError
from slotdesk.infrastructure.audit import activity_logger
from slotdesk.models.api.settings_request import SettingUpdateRequest
from slotdesk.models.domain.settings_domain import SystemSetting
from slotdesk.services import settings_service
from tests.fakes import FakeConnection, FakeDatabase


class TestSettingReaders:
    @pytest.mark.asyncio
    async def test_int_setting_parsed(self):
        conn = FakeConnection(lambda sql, params: [{"setting_value": "25"}])

        assert await settings_service.get_int_setting(conn, "max_slots_per_user", 10) == 25
        assert conn.statements[0][1] == ("max_slots_per_user",)

    @pytest.mark.asyncio
    async def test_missing_setting_uses_default(self):
        conn = FakeConnection(lambda sql, params: [])

        assert await settings_service.get_int_setting(conn, "max_slots_per_user", 10) == 10
        assert await settings_service.get_decimal_setting(conn, "min_charge_amount", Decimal("10000")) == Decimal("10000")

    @pytest.mark.asyncio
    async def test_malformed_setting_uses_default(self):
        conn = FakeConnection(lambda sql, params: [{"setting_value": "lots"}])

        assert await settings_service.get_int_setting(conn, "max_slots_per_user", 10) == 10
        assert await settings_service.get_decimal_setting(conn, "min_charge_amount", Decimal("5")) == Decimal("5")

    @pytest.mark.asyncio
    async def test_updating_unknown_key_is_not_found(self):
        with pytest.raises(NotFoundError):
            await settings_service.update_setting(FakeDatabase(lambda sql, params: []), "nope", "1")

    @pytest.mark.asyncio
    async def test_update_returns_stored_setting(self):
        row = {"setting_key": "max_slots_per_user", "setting_value": "20", "description": "Open slot cap"}
        db = FakeDatabase(lambda sql, params: [row])
        payload = SettingUpdateRequest(setting_value="20")

        setting = await settings_service.update_setting(db, "max_slots_per_user", payload.setting_value)

        assert isinstance(setting, SystemSetting)
        assert setting.setting_value == "20"
        assert db.statements[0][1] == ("20", "max_slots_per_user")

    @pytest.mark.asyncio
    async def test_list_settings(self):
        rows = [{"setting_key": "min_charge_amount", "setting_value": "10000"}]

        settings = await settings_service.list_settings(FakeDatabase(lambda sql, params: rows))

        assert settings == [SystemSetting(setting_key="min_charge_amount", setting_value="10000")]

    def test_setting_value_length_is_bounded(self):
        with pytest.raises(ValueError):
            SettingUpdateRequest(setting_value="x" * 1001)


class TestActivityLogger:
    @pytest.mark.asyncio
    async def test_event_is_stored(self):
        db = FakeDatabase(lambda sql, params: 1)
        user_id = uuid4()

        stored = await activity_logger.log(
            db,
            user_id=user_id,
            action="slot_created",
            entity_type="slot",
            entity_id=uuid4(),
            details={"slot_code": "S1"},
            ip_address="127.0.0.1",
            request_id="req-1",
        )

        assert stored is True
        sql, params = db.statements[0]
        assert "INSERT INTO activity_logs" in sql
        assert params[0] == str(user_id)
        assert params[1] == "slot_created"
        assert params[4].obj == {"slot_code": "S1"}

    @pytest.mark.asyncio
    async def test_failed_insert_reports_false(self):
        def handler(sql, params):
            raise RuntimeError("connection lost")

        stored = await activity_logger.log(FakeDatabase(handler), user_id=None, action="login")

        assert stored is False
