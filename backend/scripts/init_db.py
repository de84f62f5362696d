"""
Session Database Initialization Script.

Creates the session service schema (sessions, export jobs and the registry
tables) on the configured database and can register a factory and a device so
a development environment can ingest sessions straight away.

Device and factory management belongs to the registry; this script only
covers local setup and tests.

**Example Usage:**
    ```bash
    # Create the schema on DATABASE_URL (or the POSTGRES_* database)
    python scripts/init_db.py

    # Create the schema and register device DEV-1 in a new factory
    python scripts/init_db.py --tenant-id tenant-123 --device-id DEV-1 \
        --device-name "Press 1" --factory-name "Plant A"
    ```

**Error Handling:**
    - Exits with code 0 on success
    - Exits with code 1 on failure (database connection, SQL errors, etc.)
"""

import argparse
import asyncio
from pathlib import Path
import sys

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy import select

load_dotenv()

# Add the project's root directory to the Python path
sys.path.append(str(Path(__file__).parent.parent.resolve()))

from common.database import dispose_engines, get_async_db_session, get_async_session_maker, init_database  # noqa: E402
from common.models import Device, Factory  # noqa: E402


async def seed_device(
    tenant_id: str,
    device_id: str,
    device_name: str,
    factory_name: str,
    database_url: str | None = None,
) -> Device:
    """
    Register a device, creating its factory by name if the tenant has none.

    Idempotent: an existing (tenant_id, device_id) is returned unchanged.
    """
    session_maker = get_async_session_maker(database_url)
    async with get_async_db_session(session_maker) as session:
        existing = (
            await session.execute(
                select(Device).where(Device.tenant_id == tenant_id, Device.device_id == device_id)
            )
        ).scalar_one_or_none()
        if existing is not None:
            logger.info(f"Device {device_id} already registered for tenant {tenant_id}")
            return existing

        factory = (
            await session.execute(
                select(Factory).where(Factory.tenant_id == tenant_id, Factory.name == factory_name)
            )
        ).scalar_one_or_none()
        if factory is None:
            factory = Factory(tenant_id=tenant_id, name=factory_name)
            session.add(factory)
            await session.flush()
            logger.info(f"Created factory '{factory_name}' ({factory.id}) for tenant {tenant_id}")

        device = Device(
            tenant_id=tenant_id,
            device_id=device_id,
            name=device_name,
            factory_id=factory.id,
        )
        session.add(device)
        await session.flush()

    logger.info(f"Registered device {device_id} in factory '{factory_name}'")
    return device


async def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create the session service schema")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy async URL")
    parser.add_argument("--tenant-id")
    parser.add_argument("--device-id")
    parser.add_argument("--device-name", default="Device")
    parser.add_argument("--factory-name", default="Default Factory")
    args = parser.parse_args(argv)

    if bool(args.tenant_id) != bool(args.device_id):
        parser.error("--tenant-id and --device-id must be given together")

    try:
        await init_database(args.database_url)
        if args.device_id:
            await seed_device(
                args.tenant_id,
                args.device_id,
                args.device_name,
                args.factory_name,
                database_url=args.database_url,
            )
    except Exception as e:
        logger.error(f"✗ Database initialization failed: {e}")
        return 1
    finally:
        await dispose_engines()

    logger.info("✓ Session database ready")
    return 0


if __name__ == "__main__":
    logger.add("logs/init_db.log", rotation="500 MB")  # For logging to a file

    sys.exit(asyncio.run(main()))
