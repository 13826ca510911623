from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.schemas.massive_import import HealthResponse

logger = logging.getLogger(__name__)

SIZING_ENV_VARS = (
    "MASSIVE_IMPORT_CHUNK_SUB_BATCH_SIZE",
    "MASSIVE_IMPORT_STANDALONE_SUB_BATCH_SIZE",
    "MASSIVE_IMPORT_RESPONSE_ERROR_SAMPLE",
    "MASSIVE_IMPORT_JOB_ERROR_SAMPLE",
)


def _validate_env() -> None:
    """
    Validate environment variables before anything touches the database.

    Every problem is collected and raised together as one RuntimeError:
    - a PostgreSQL database URL must resolve;
    - ingestion sizing variables, when set, must be positive integers.
    """

    from db.config import resolve_database_url

    errors: list[str] = []

    try:
        database_url = resolve_database_url()
    except RuntimeError as exc:
        errors.append(str(exc))
    else:
        if not database_url.startswith("postgresql"):
            errors.append("The database URL must point at PostgreSQL.")

    for name in SIZING_ENV_VARS:
        raw_value = os.getenv(name)
        if raw_value is None:
            continue
        if not raw_value.strip().isdigit() or int(raw_value) < 1:
            errors.append(f"{name}='{raw_value}' is not valid. Use a positive integer.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # Per-record warnings are the signal during an import; connection chatter is not.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _check_db() -> None:
    """Run SELECT 1 on a pooled connection. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from db.session import get_engine

    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Refuse to start unless every ORM table, and every column on it, exists.

    Does NOT auto-migrate; a missing table or column means `alembic upgrade head`
    has not been run against this database.
    """

    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers the import tables on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    existing_tables = set(inspector.get_table_names())
    problems: list[str] = []

    for table_name, table in sorted(Base.metadata.tables.items()):
        if table_name not in existing_tables:
            problems.append(f"table {table_name}")
            continue
        live_columns = {column["name"] for column in inspector.get_columns(table_name)}
        problems.extend(
            f"column {table_name}.{column.name}"
            for column in table.columns
            if column.name not in live_columns
        )

    if problems:
        logger.critical(
            "Schema mismatch: %d object(s) missing from the database: %s. "
            "Run 'alembic upgrade head' and restart.",
            len(problems),
            ", ".join(problems),
        )
        raise RuntimeError(f"Schema mismatch ({', '.join(problems)}). Run migrations and restart.")


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Check the database and schema, then mark the app ready; dispose the pool on exit."""
    _check_db()
    _check_schema()
    logger.info("Database connectivity and schema confirmed")

    application.state.ready = True
    try:
        yield
    finally:
        application.state.ready = False
        from db.session import dispose_engine

        dispose_engine()
        logger.info("Database engine disposed")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Massive Import API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    application.state.ready = False

    from app.api.routers import entities_router, massive_import_router

    application.include_router(massive_import_router)
    application.include_router(entities_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck() -> HealthResponse | JSONResponse:
        try:
            _check_db()
        except RuntimeError:
            return JSONResponse(
                status_code=503,
                content=HealthResponse(status="unavailable", database="unreachable", ready=False).model_dump(),
            )
        ready = bool(getattr(application.state, "ready", False))
        return HealthResponse(status="ok" if ready else "starting", database="ok", ready=ready)

    return application


app = create_app()
