from __future__ import annotations

import os

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# Load env before anything else
load_dotenv()

# Environment variables
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# SQLAlchemy engine & session
engine = create_async_engine(DATABASE_URL, echo=False, future=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

# Declarative base for models
Base = declarative_base()


async def create_all_tables() -> None:
    """Create tables directly; used for SQLite dev databases where Alembic is not run."""
    # Import models so they register on Base.metadata
    import app.models.registry  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
