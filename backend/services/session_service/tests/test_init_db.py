"""
Tests for the schema bootstrap script.
"""

import pytest

from common.database import dispose_engines, get_async_session_maker
from scripts.init_db import main, seed_device
from services.session_service.database import SqlDeviceRegistry


class TestInitDb:
    @pytest.mark.asyncio
    async def test_creates_schema_and_registers_device(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'init.db'}"

        exit_code = await main(
            [
                "--database-url", url,
                "--tenant-id", "tenant-7",
                "--device-id", "DEV-7",
                "--device-name", "Press 7",
                "--factory-name", "Plant B",
            ]
        )

        assert exit_code == 0
        registry = SqlDeviceRegistry(session_maker=get_async_session_maker(url))
        device = await registry.resolve_device("tenant-7", "DEV-7")
        assert device.name == "Press 7"
        assert device.is_active is True
        assert await registry.get_factory_name(device.factory_id) == "Plant B"
        await dispose_engines()

    @pytest.mark.asyncio
    async def test_seeding_twice_keeps_one_device(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'init.db'}"
        assert await main(["--database-url", url]) == 0

        first = await seed_device("tenant-7", "DEV-7", "Press 7", "Plant B", database_url=url)
        second = await seed_device("tenant-7", "DEV-7", "Renamed", "Plant C", database_url=url)

        assert second.id == first.id
        assert second.name == "Press 7"
        await dispose_engines()
