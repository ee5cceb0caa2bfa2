"""
Schema provisioning and version check.

The history tables are created once per database and stamped with
SCHEMA_VERSION in schema_meta. Readers call ``ensure_provisioned`` and get a
``SchemaNotProvisioned`` error instead of discovering missing tables mid-query.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from core.errors import SchemaNotProvisioned
from db.models import SchemaMeta, utcnow
from db.session import Base

logger = structlog.get_logger()

SCHEMA_COMPONENT = "inventory_history"
SCHEMA_VERSION = 1


async def provision_schema(engine: AsyncEngine) -> None:
    """Create all tables and record the schema version. Idempotent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        row = (
            await conn.execute(select(SchemaMeta.version).where(SchemaMeta.component == SCHEMA_COMPONENT))
        ).first()
        if row is None:
            await conn.execute(
                SchemaMeta.__table__.insert().values(
                    component=SCHEMA_COMPONENT, version=SCHEMA_VERSION, applied_at=utcnow()
                )
            )
        elif row.version != SCHEMA_VERSION:
            await conn.execute(
                SchemaMeta.__table__.update()
                .where(SchemaMeta.component == SCHEMA_COMPONENT)
                .values(version=SCHEMA_VERSION, applied_at=utcnow())
            )
    logger.info("schema.provisioned", component=SCHEMA_COMPONENT, version=SCHEMA_VERSION)


async def get_schema_version(db: AsyncSession) -> int | None:
    """Return the recorded version, or None when schema_meta is absent or empty."""
    try:
        result = await db.execute(select(SchemaMeta.version).where(SchemaMeta.component == SCHEMA_COMPONENT))
    except ProgrammingError:
        await db.rollback()
        return None
    except OperationalError as exc:
        # SQLite reports a missing table as an operational error
        if "no such table" not in str(exc):
            raise
        await db.rollback()
        return None
    return result.scalar_one_or_none()


async def ensure_provisioned(db: AsyncSession) -> None:
    """Raise SchemaNotProvisioned unless the recorded version matches SCHEMA_VERSION."""
    version = await get_schema_version(db)
    if version != SCHEMA_VERSION:
        raise SchemaNotProvisioned(found=version, expected=SCHEMA_VERSION)
