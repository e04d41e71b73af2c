"""Neo4j driver and connection management."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from functools import wraps
from typing import ParamSpec, TypeVar

from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable

from echoes.core import ErrorCode
from echoes.core.base import DatabaseErrorDetails
from echoes.core.config import settings
from echoes.core.errors import StoreError
from echoes.core.logging import get_logger
from echoes.infrastructure.neo4j.queries import SCHEMA_STATEMENTS

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


@asynccontextmanager
async def create_neo4j_driver(
    max_connection_pool_size: int = 50,
    max_connection_lifetime: int = 3600,
) -> AsyncGenerator[AsyncDriver]:
    """Connected Neo4j driver, closed when the context exits.

    Yields:
        AsyncDriver: Connected Neo4j driver

    Raises:
        StoreError: If the database cannot be reached
    """
    logger.info(
        "Creating Neo4j driver",
        uri=settings.neo4j_uri,
        pool_size=max_connection_pool_size,
        connection_lifetime=max_connection_lifetime,
    )

    driver = AsyncGraphDatabase.driver(
        settings.neo4j_uri,
        auth=(settings.neo4j_user, settings.neo4j_password.get_secret_value()),
        max_connection_pool_size=max_connection_pool_size,
        max_connection_lifetime=max_connection_lifetime,
    )

    try:
        await driver.verify_connectivity()
    except (ServiceUnavailable, Neo4jError, OSError) as e:
        await driver.close()
        raise StoreError(
            message=f"Cannot connect to Neo4j at {settings.neo4j_uri}",
            code=ErrorCode.DB_CONNECTION,
            details=DatabaseErrorDetails(
                source="neo4j_driver",
                operation="verify_connectivity",
                service_name="Neo4j",
                endpoint=settings.neo4j_uri,
            ),
        ) from e
    logger.info("Neo4j connection established")

    try:
        yield driver
    finally:
        await driver.close()
        logger.info("Neo4j driver closed")


async def ensure_schema(driver: AsyncDriver) -> None:
    """Create the memory id constraint and lookup indexes if they are missing."""
    async with driver.session() as session:
        for statement in SCHEMA_STATEMENTS:
            await session.run(statement)
    logger.info("Neo4j schema ensured", statements=len(SCHEMA_STATEMENTS))


def neo4j_errors(
    operation: str,
    source: str,
    label: str | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Translate driver exceptions into StoreError so callers see one failure type."""

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            details = DatabaseErrorDetails(source=source, operation=operation, service_name="Neo4j", label=label)
            try:
                return await func(*args, **kwargs)
            except Neo4jError as e:
                raise StoreError(
                    message=f"Neo4j query failed during {operation}: {e!s}",
                    code=ErrorCode.DB_QUERY,
                    details=details,
                ) from e
            except DriverError as e:
                raise StoreError(
                    message=f"Neo4j unavailable during {operation}",
                    code=ErrorCode.DB_CONNECTION,
                    details=details,
                ) from e

        return wrapper

    return decorator
