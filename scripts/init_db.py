#!/usr/bin/env python3
"""
Create the College Edge tables.

    python scripts/init_db.py            # create missing tables
    python scripts/init_db.py --check    # connection test only
    python scripts/init_db.py --drop     # drop everything first (asks)
    python scripts/init_db.py --status   # row count per table
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from college_edge.models import Base, SessionLocal, engine, init_db

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger("init_db")


def check_connection() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("❌ Database connection failed: %s", e)
        return False
    logger.info("✅ Connected to %s", engine.url.render_as_string(hide_password=True))
    return True


def drop_tables(assume_yes: bool = False) -> bool:
    """Drop every College Edge table.  Irreversible."""
    logger.warning("⚠️  About to drop %d tables", len(Base.metadata.tables))
    if not assume_yes:
        answer = input("This deletes all ratings, lines and bets. Type 'yes' to confirm: ")
        if answer.strip().lower() != "yes":
            logger.info("Aborted.")
            return False
    Base.metadata.drop_all(bind=engine)
    logger.info("✅ Tables dropped")
    return True


def table_status() -> None:
    existing = set(inspect(engine).get_table_names())
    db = SessionLocal()
    try:
        for name in sorted(Base.metadata.tables):
            if name not in existing:
                logger.info("  %-20s missing", name)
                continue
            count = db.execute(text(f"SELECT COUNT(*) FROM {name}")).scalar()
            logger.info("  %-20s %d rows", name, count)
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the College Edge database")
    parser.add_argument("--check", action="store_true", help="Only test the connection")
    parser.add_argument("--drop", action="store_true", help="Drop all tables first (DANGER!)")
    parser.add_argument("--yes", action="store_true", help="Skip the --drop confirmation")
    parser.add_argument("--status", action="store_true", help="Print row counts and exit")
    args = parser.parse_args()

    if not check_connection():
        return 1
    if args.check:
        return 0
    if args.status:
        table_status()
        return 0

    if args.drop and not drop_tables(assume_yes=args.yes):
        return 1

    before = set(inspect(engine).get_table_names())
    init_db()
    created = sorted(set(inspect(engine).get_table_names()) - before)
    logger.info("🎉 Database ready (%d new tables: %s)", len(created), ", ".join(created) or "none")
    return 0


if __name__ == "__main__":
    sys.exit(main())
