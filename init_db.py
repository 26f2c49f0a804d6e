#!/usr/bin/env python3
"""Initialize the database schema."""
import os
import sys
import logging

from dotenv import load_dotenv

from models import Base
from storage import Storage

logger = logging.getLogger("init_db")


def main() -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(message)s')

    database_url = os.environ.get('DATABASE_URL', 'sqlite:///fintrack.db')
    logger.info("Creating database tables on %s ...", database_url.split('://')[0])
    Storage(database_url).create_all()

    for table in Base.metadata.sorted_tables:
        logger.info("  - %s", table.name)
    logger.info("Database tables created successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
