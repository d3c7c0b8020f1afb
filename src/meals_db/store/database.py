"""Engine construction and reachability checks for the Meals DB store."""

from __future__ import annotations

import logging

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import make_url

logger = logging.getLogger(__name__)


def create_db_engine(
    database_url: str, connect_timeout: int = 10, read_timeout: int = 60
) -> Engine:
    """Build the pooled SQLAlchemy engine for the Meals DB database.

    The engine is created once per process and handed to every store; it
    is never held in module state.

    Args:
        database_url: SQLAlchemy URL.
        connect_timeout: Seconds to wait for a connection (or pool slot).
        read_timeout: Seconds to wait for a query result (MySQL only).

    Returns:
        A lazily connecting ``Engine``.
    """
    url = make_url(database_url)
    kwargs: dict = {"pool_pre_ping": True}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"timeout": connect_timeout}
    else:
        kwargs["pool_timeout"] = connect_timeout
        kwargs["pool_recycle"] = 3600
        if url.get_backend_name() == "mysql":
            kwargs["connect_args"] = {
                "connect_timeout": connect_timeout,
                "read_timeout": read_timeout,
            }

    logger.debug(
        "Creating engine for %s", url.render_as_string(hide_password=True)
    )
    return create_engine(url, **kwargs)


def check_connection(engine: Engine) -> str:
    """Run a trivial query and return the server dialect name.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: If the database is unreachable.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return engine.dialect.name
