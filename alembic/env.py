import asyncio

from alembic import context
from sqlalchemy.ext.asyncio import create_async_engine

from boxcheckr.core.config import Settings
from boxcheckr.db.session import Base

target_metadata = Base.metadata


def _do_run_migrations(connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
    with context.begin_transaction():
        context.run_migrations()


async def _run_async_migrations(url: str) -> None:
    engine = create_async_engine(url)
    async with engine.connect() as connection:
        await connection.run_sync(_do_run_migrations)
    await engine.dispose()


def run_migrations_offline(url: str) -> None:
    context.configure(url=url, target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


url = Settings().database_url
if context.is_offline_mode():
    run_migrations_offline(url)
else:
    asyncio.run(_run_async_migrations(url))
