"""
Apply the QuickBooks schema migrations to DATABASE_URL

    python run_migration.py                      # every file in migrations/, in name order
    python run_migration.py migrations/001_create_qbo_tables.sql

Each file runs in its own transaction; a failing statement rolls that file back.
"""
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from sqlalchemy import text

from cnstrct.database import engine

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def split_statements(sql: str) -> list[str]:
    """Split a SQL script on semicolons, dropping comment lines and blanks"""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def apply_migration(path: Path) -> int:
    """Execute one .sql file atomically; returns the number of statements run"""
    statements = split_statements(path.read_text())
    logger.info(f"📄 {path.name}: {len(statements)} statements")

    with engine.begin() as conn:
        for number, statement in enumerate(statements, 1):
            logger.debug(f"  [{number}/{len(statements)}] {statement.splitlines()[0]}")
            conn.execute(text(statement))

    return len(statements)


def pending_files(args: list[str]) -> list[Path]:
    if args:
        return [Path(arg) for arg in args]
    return sorted(MIGRATIONS_DIR.glob("*.sql"))


if __name__ == "__main__":
    files = pending_files(sys.argv[1:])
    missing = [str(path) for path in files if not path.is_file()]
    if missing or not files:
        logger.error(f"❌ No migration to apply: {', '.join(missing) or MIGRATIONS_DIR}")
        sys.exit(1)

    for path in files:
        try:
            count = apply_migration(path)
        except Exception as e:
            logger.error(f"❌ {path.name} rolled back: {e}")
            sys.exit(1)
        logger.info(f"✅ {path.name} applied ({count} statements)")
