"""Apply pending SQL migrations in filename order and record them in schema_migrations.

Usage: python scripts/apply_migrations.py [--dir migrations] [--dry-run]
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from soundmatch.infra import postgres

CREATE_TRACKING_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


def migration_version(filename: str) -> str:
    """`0001_matching.sql` -> `0001`."""
    return filename.split("_", 1)[0]


def pending_files(migration_dir: Path, applied: set[str]) -> list[Path]:
    files = sorted(p for p in migration_dir.iterdir() if p.suffix == ".sql")
    return [p for p in files if migration_version(p.name) not in applied]


async def main(migration_dir: Path, dry_run: bool) -> int:
    if not migration_dir.is_dir():
        print(f"Migrations directory not found: {migration_dir}")
        return 1

    pool = await postgres.init_pool()
    try:
        async with pool.acquire() as conn:
            await conn.execute(CREATE_TRACKING_TABLE)
            rows = await conn.fetch("SELECT version FROM schema_migrations")
            applied = {row["version"] for row in rows}
            todo = pending_files(migration_dir, applied)
            if not todo:
                print("No pending migrations.")
                return 0
            for path in todo:
                version = migration_version(path.name)
                if dry_run:
                    print(f"Would apply {path.name}")
                    continue
                print(f"Applying {path.name}...")
                async with conn.transaction():
                    await conn.execute(path.read_text(encoding="utf-8"))
                    await conn.execute(
                        "INSERT INTO schema_migrations (version, filename) VALUES ($1, $2)",
                        version,
                        path.name,
                    )
                print(f"Applied {path.name}")
    finally:
        await postgres.close_pool()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--dir", default=str(BACKEND_ROOT / "migrations"))
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    sys.exit(asyncio.run(main(Path(os.path.expanduser(args.dir)), args.dry_run)))
