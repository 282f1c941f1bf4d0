import logging
from typing import Optional

import psycopg

from config.config_models import PGPASSWORD_DEFAULT, PostgresSettings

module_logger = logging.getLogger(__name__)


def build_conninfo(pg_settings: PostgresSettings) -> str:
    """Build a libpq key/value connection string from the settings."""
    conn_kwargs = {
        "dbname": pg_settings.database,
        "user": pg_settings.user,
        "password": pg_settings.password,
        "host": pg_settings.host,
        "port": pg_settings.port,
    }
    return " ".join(
        f"{key}={value}" for key, value in conn_kwargs.items() if value not in (None, "")
    )


def get_db_connection(
    pg_settings: Optional[PostgresSettings] = None,
) -> Optional[psycopg.Connection]:
    """
    Attempts to establish a connection to a PostgreSQL database using Psycopg 3.

    The connection is opened in autocommit mode; callers group statements with
    ``conn.transaction()`` blocks so a nested block becomes a savepoint.

    Args:
        pg_settings: Connection settings. Built from PG_* environment
            variables and defaults when omitted.

    Returns:
        Optional[psycopg.Connection]: A connection object if the connection
        is successful, None otherwise.
    """
    settings_to_use = pg_settings or PostgresSettings()

    if settings_to_use.password == PGPASSWORD_DEFAULT:
        module_logger.critical(
            "CRITICAL: Default placeholder password is being used for database "
            "connection. Please configure a strong password via PG_PASSWORD, "
            "the config file or --pgpassword."
        )

    conninfo_str = build_conninfo(settings_to_use)
    try:
        module_logger.debug(
            f"Attempting to connect to database {settings_to_use.database} on "
            f"{settings_to_use.host}:{settings_to_use.port}"
        )
        conn = psycopg.connect(conninfo_str, autocommit=True)
        module_logger.info(
            f"Connected to database {settings_to_use.database} on "
            f"{settings_to_use.host}:{settings_to_use.port} using Psycopg 3."
        )
        return conn
    except psycopg.OperationalError as e:
        module_logger.error(
            f"Psycopg 3 database connection failed (OperationalError): {e}",
            exc_info=True,
        )
    except psycopg.Error as e:
        module_logger.error(
            f"Psycopg 3 database connection failed: {e}", exc_info=True
        )
    return None
