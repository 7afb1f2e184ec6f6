"""
Pytest configuration and shared fixtures for the PSV backend tests.

This module provides:
- Database fixtures (in-memory async SQLite by default)
- Data factories (comments, dimensions, stored stance vectors)
- A deterministic scoring-oracle stub
"""

import os
import uuid
from typing import Dict, Optional, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from psv_python_backend.models import Base, Comment, CommentStanceVector, DeliberationDimension


# ============================================================================
# Test Database Configuration
# ============================================================================

@pytest.fixture(scope="session")
def test_database_url():
    """Get test database URL from environment or use in-memory SQLite."""
    return os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def db_engine(test_database_url):
    """Fresh schema per test."""
    if test_database_url.startswith("sqlite"):
        engine = create_async_engine(
            test_database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(test_database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    SessionLocal = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with SessionLocal() as session:
        yield session


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def comment_factory(db_session):
    async def _create(
        post_id: uuid.UUID,
        content: str = "Test comment",
        group_id: Optional[uuid.UUID] = None,
        status: str = "published",
        deleted: bool = False,
    ) -> Comment:
        comment = Comment(
            id=uuid.uuid4(),
            post_id=post_id,
            group_id=group_id,
            content=content,
            status=status,
            deleted=deleted,
        )
        db_session.add(comment)
        await db_session.commit()
        await db_session.refresh(comment)
        return comment

    return _create


@pytest.fixture
def dimension_factory(db_session):
    async def _create(
        name: str = "economic_impact",
        post_id: Optional[uuid.UUID] = None,
        group_id: Optional[uuid.UUID] = None,
        position: int = 0,
        active: bool = True,
    ) -> DeliberationDimension:
        dimension = DeliberationDimension(
            id=uuid.uuid4(),
            post_id=post_id,
            group_id=group_id,
            dimension_name=name,
            dimension_description=f"How the comment views {name.replace('_', ' ')}",
            scale_negative_label="Strongly against",
            scale_positive_label="Strongly in favour",
            position=position,
            active=active,
        )
        db_session.add(dimension)
        await db_session.commit()
        await db_session.refresh(dimension)
        return dimension

    return _create


@pytest.fixture
def vector_factory(db_session):
    """Store a stance vector directly, bypassing the oracle."""
    async def _create(
        comment: Comment,
        dimension: DeliberationDimension,
        stance_value: float,
        confidence: float = 1.0,
    ) -> CommentStanceVector:
        vector = CommentStanceVector(
            id=uuid.uuid4(),
            comment_id=comment.id,
            dimension_id=dimension.id,
            stance_value=stance_value,
            confidence=confidence,
            explanation="seeded",
        )
        db_session.add(vector)
        await db_session.commit()
        await db_session.refresh(vector)
        return vector

    return _create


# ============================================================================
# Scoring Oracle Stub
# ============================================================================

class StubOracle:
    """
    Deterministic stand-in for ``StanceOracle``.

    ``scores`` maps a dimension name (or a ``(comment_text, dimension_name)``
    pair) to a ``(stance_value, confidence)`` tuple.
    """

    def __init__(self, scores: Optional[Dict] = None, default: Tuple[float, float] = (0.0, 0.5)):
        self.scores = scores or {}
        self.default = default
        self.calls = []

    async def score(self, comment_text, dimension):
        self.calls.append((comment_text, dimension.dimension_name))
        key = (comment_text, dimension.dimension_name)
        stance, confidence = self.scores.get(
            key, self.scores.get(dimension.dimension_name, self.default)
        )
        return {
            "stance_value": stance,
            "confidence": confidence,
            "explanation": f"stub score for {dimension.dimension_name}",
            "raw_response": {"stub": True},
            "processing_time_ms": 1,
        }


@pytest.fixture
def stub_oracle_factory():
    return StubOracle


# ============================================================================
# Pytest Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that touch the database"
    )
