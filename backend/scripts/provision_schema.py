#!/usr/bin/env python3
"""Create the inventory history tables and stamp the schema version.

Usage:
  python backend/scripts/provision_schema.py
  python backend/scripts/provision_schema.py --check
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

# Add backend/ to import path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import get_settings
from db.schema import SCHEMA_VERSION, get_schema_version, provision_schema


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    engine = create_async_engine(args.database_url or settings.database_url)
    try:
        if not args.check:
            await provision_schema(engine)
        async with AsyncSession(engine) as db:
            found = await get_schema_version(db)
    finally:
        await engine.dispose()
    return {"expected": SCHEMA_VERSION, "found": found, "provisioned": found == SCHEMA_VERSION}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provision the StockPulse history schema")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--check", action="store_true", help="Only report the recorded schema version")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    result = asyncio.run(_run(args))
    print(json.dumps(result))
    return 0 if result["provisioned"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
