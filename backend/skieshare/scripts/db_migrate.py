import logging
import subprocess
import sys

from sqlalchemy import create_engine, inspect

from skieshare.core.database import DATABASE_URL

logger = logging.getLogger("skieshare")


def main():
    sync_url = DATABASE_URL.replace("+aiosqlite", "").replace("+asyncpg", "")
    engine = create_engine(sync_url)
    insp = inspect(engine)

    has_alembic = insp.has_table("alembic_version")
    existing_core_tables = any(insp.has_table(t) for t in ("users", "profiles", "files", "shared_links"))

    if existing_core_tables and not has_alembic:
        logger.info("[db-migrate] Existing tables detected without alembic_version, stamping head")
        subprocess.run(["alembic", "stamp", "head"], check=True)
    else:
        logger.info("[db-migrate] has_alembic=%s existing_core_tables=%s", has_alembic, existing_core_tables)

    subprocess.run(["alembic", "upgrade", "head"], check=True)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    try:
        main()
    except subprocess.CalledProcessError as e:
        logger.error("[db-migrate] Alembic command failed: %s", e)
        sys.exit(e.returncode)
    except Exception as e:
        logger.error("[db-migrate] Unexpected error: %s", e)
        sys.exit(1)
