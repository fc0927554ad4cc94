"""
PostgreSQL connection helper.
Provides get_db() for use by services and jobs.
"""

import os
import logging

import psycopg2
import psycopg2.extensions
from psycopg2.extras import DictCursor
from dotenv import load_dotenv

# Load .env variables from the project root
load_dotenv()

logger = logging.getLogger(__name__)


class ClosingConnection(psycopg2.extensions.connection):
    """
    Connection that closes itself when its `with` block ends.

    psycopg2's own context manager only commits or rolls back the
    transaction; the connection would otherwise stay open.
    """

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            return super().__exit__(exc_type, exc_value, traceback)
        finally:
            self.close()


def get_database_url() -> str:
    """
    Read DATABASE_URL from the environment.

    Raises:
        RuntimeError: If the variable is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set. Please set the environment variable.")
    return url


def get_db():
    """
    Returns a new psycopg2 connection with dictionary-based row access.

    Usage:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(...)

    Leaving the outer block commits (or rolls back on error) and closes
    the connection.

    Returns:
        ClosingConnection: A connection object with DictCursor factory.

    Raises:
        psycopg2.Error: If connection fails.
    """
    try:
        return psycopg2.connect(
            get_database_url(),
            connection_factory=ClosingConnection,
            cursor_factory=DictCursor,
        )
    except Exception as e:
        logger.error(f"Error connecting to database: {e}")
        # Re-raise the exception so the caller knows the connection failed
        raise
