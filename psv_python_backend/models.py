"""
SQLAlchemy models for the Perspectivized Stance Vector backend

Comments are owned by the deliberation platform and only read here.
Dimensions and stance vectors are owned by this package.
"""

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey,
    Index, Integer, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
import uuid

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Comment(Base):
    """A published contribution to a post (read-only to this package)"""
    __tablename__ = "comments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    post_id = Column(Uuid(as_uuid=True), nullable=False)
    group_id = Column(Uuid(as_uuid=True))

    content = Column(Text, nullable=False)
    status = Column(String(32), nullable=False, default="published")  # 'published', 'draft', 'hidden'
    deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_comments_post', 'post_id', 'status', 'deleted'),
    )


class DeliberationDimension(Base):
    """An axis of comparison scoped to a post, or to a group when post_id is NULL"""
    __tablename__ = "deliberation_dimensions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    post_id = Column(Uuid(as_uuid=True))
    group_id = Column(Uuid(as_uuid=True))

    dimension_name = Column(String(255), nullable=False)
    dimension_description = Column(Text, nullable=False)
    scale_negative_label = Column(String(255), nullable=False)
    scale_positive_label = Column(String(255), nullable=False)

    position = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)  # Soft delete only

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    stance_vectors = relationship("CommentStanceVector", back_populates="dimension")

    __table_args__ = (
        Index('idx_dimensions_post', 'post_id'),
        Index('idx_dimensions_group', 'group_id'),
        Index('idx_dimensions_active', 'active'),
    )


class CommentStanceVector(Base):
    """One (comment, dimension) stance score"""
    __tablename__ = "comment_stance_vectors"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    comment_id = Column(Uuid(as_uuid=True), ForeignKey('comments.id', ondelete='CASCADE'), nullable=False)
    dimension_id = Column(Uuid(as_uuid=True), ForeignKey('deliberation_dimensions.id', ondelete='CASCADE'), nullable=False)

    stance_value = Column(Float, nullable=False)  # -1.0 to 1.0
    confidence = Column(Float, nullable=False)  # 0.0 to 1.0
    explanation = Column(Text)

    # Diagnostics only, never interpreted
    raw_oracle_response = Column(JSONType)
    processing_time_ms = Column(Integer)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    dimension = relationship("DeliberationDimension", back_populates="stance_vectors")

    __table_args__ = (
        UniqueConstraint('comment_id', 'dimension_id', name='unique_comment_dimension'),
        CheckConstraint('stance_value >= -1.0 AND stance_value <= 1.0', name='check_stance_value_range'),
        CheckConstraint('confidence >= 0.0 AND confidence <= 1.0', name='check_stance_confidence_range'),
        Index('idx_stance_vectors_comment', 'comment_id'),
        Index('idx_stance_vectors_dimension', 'dimension_id'),
    )


class AppSetting(Base):
    """Key/value runtime settings (oracle overrides live here)"""
    __tablename__ = "app_settings"

    key = Column(String(128), primary_key=True)
    value = Column(JSONType, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
