"""Async SQLAlchemy engine and session factory for the article tables."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from copydesk.config import get_database_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
  pass


def _database_url() -> str | None:
  """Return the configured DSN with the asyncpg driver selected."""
  database_url = get_database_settings().pg_dsn
  if database_url and database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
  return database_url


def get_db_engine() -> AsyncEngine | None:
  """Create the engine on first use; None when no DSN is configured."""
  global _engine
  if _engine is None:
    database_url = _database_url()
    if not database_url:
      return None
    settings = get_database_settings()
    _engine = create_async_engine(database_url, echo=settings.debug, future=True, pool_pre_ping=True, connect_args={"timeout": settings.pg_connect_timeout})
  return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
  global _session_factory
  if _session_factory is None:
    engine = get_db_engine()
    if engine is None:
      raise RuntimeError("Database connection is not configured (COPYDESK_PG_DSN is missing).")
    _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
  return _session_factory


async def dispose_engine() -> None:
  """Close pooled connections if the engine was ever created."""
  global _engine, _session_factory
  if _engine is None:
    return
  await _engine.dispose()
  logger.info("Database engine disposed")
  _engine = None
  _session_factory = None
