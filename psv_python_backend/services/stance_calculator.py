"""
Stance Calculator Service

Computes a comment's perspectivized stance vector: one (stance, confidence)
pair per applicable dimension, scored by the oracle and upserted by
(comment_id, dimension_id).
"""

import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from psv_python_backend.models import Comment, CommentStanceVector, DeliberationDimension
from psv_python_backend.services.dimension_registry import get_dimensions
from psv_python_backend.services.oracle_config import load_oracle_config
from psv_python_backend.services.psv_results import NOT_CONFIGURED, NOT_FOUND, failure, lookup_uuid
from psv_python_backend.services.stance_oracle import StanceOracle, clamp

logger = logging.getLogger(__name__)

# Dialects whose INSERT supports ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


async def fetch_active_stance_rows(
    db: AsyncSession,
    comment_ids: Iterable[uuid.UUID],
) -> List[Tuple[CommentStanceVector, DeliberationDimension]]:
    """
    Stored vectors for the given comments, joined to their dimensions.

    Inactive dimensions are excluded. Rows come back ordered by comment,
    then dimension position.
    """
    ids = list(comment_ids)
    if not ids:
        return []

    result = await db.execute(
        select(CommentStanceVector, DeliberationDimension)
        .join(DeliberationDimension, CommentStanceVector.dimension_id == DeliberationDimension.id)
        .where(
            CommentStanceVector.comment_id.in_(ids),
            DeliberationDimension.active.is_(True),
        )
        .order_by(
            CommentStanceVector.comment_id,
            DeliberationDimension.position.asc(),
            DeliberationDimension.id,
        )
        # Upserts bypass the identity map; refresh any already-loaded rows
        .execution_options(populate_existing=True)
    )
    return [(vector, dimension) for vector, dimension in result.all()]


def _comment_not_found(comment_id) -> Dict[str, Any]:
    return failure(NOT_FOUND, f"Comment {comment_id} not found", comment_id=str(comment_id))


class StanceCalculator:
    """Scores comments against their deliberation dimensions"""

    def __init__(self, db_session: AsyncSession, oracle: Optional[StanceOracle] = None):
        self.db = db_session
        self.oracle = oracle

    async def _get_oracle(self) -> StanceOracle:
        if self.oracle is None:
            config = await load_oracle_config(self.db)
            self.oracle = StanceOracle(config)
        return self.oracle

    async def _get_comment(self, comment_id: Union[str, uuid.UUID]) -> Optional[Comment]:
        comment_uuid = lookup_uuid(comment_id)
        if comment_uuid is None:
            return None
        return await self.db.get(Comment, comment_uuid)

    async def resolve_dimensions(self, comment: Comment) -> List[DeliberationDimension]:
        """Post-level dimensions, falling back to the group-level set"""
        dimensions = await get_dimensions(self.db, post_id=comment.post_id)

        if not dimensions and comment.group_id is not None:
            dimensions = await get_dimensions(self.db, group_id=comment.group_id)

        return dimensions

    async def calculate_stance_vector(self, comment_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """
        Score a comment on every applicable dimension and persist the results

        Returns:
            {
                "success": True,
                "comment_id": str,
                "dimensions": [{dimension_id, dimension, stance_value, confidence,
                                explanation, processing_time_ms}],
                "total_processing_time_ms": int,
                "average_time_per_dimension_ms": int
            }
            or a failure result (not_found / not_configured)
        """
        overall_start = time.perf_counter()

        comment = await self._get_comment(comment_id)
        if comment is None:
            return _comment_not_found(comment_id)

        dimensions = await self.resolve_dimensions(comment)
        if not dimensions:
            logger.warning("No dimensions found for comment %s (post %s)", comment.id, comment.post_id)
            return failure(
                NOT_CONFIGURED,
                "No dimensions configured for this deliberation",
                comment_id=str(comment.id),
            )

        oracle = await self._get_oracle()

        # One oracle call in flight per comment
        results = []
        for dimension in dimensions:
            analysis = await oracle.score(comment.content, dimension)
            stance_value = clamp(float(analysis["stance_value"]), -1.0, 1.0)
            confidence = clamp(float(analysis["confidence"]), 0.0, 1.0)

            await self._upsert_vector(
                comment_id=comment.id,
                dimension_id=dimension.id,
                stance_value=stance_value,
                confidence=confidence,
                explanation=analysis["explanation"],
                raw_response=analysis.get("raw_response"),
                processing_time_ms=analysis.get("processing_time_ms"),
            )

            results.append({
                "dimension_id": str(dimension.id),
                "dimension": dimension.dimension_name,
                "stance_value": stance_value,
                "confidence": confidence,
                "explanation": analysis["explanation"],
                "processing_time_ms": analysis.get("processing_time_ms"),
            })

            logger.info(
                "Calculated stance for comment %s on %s: stance=%.3f confidence=%.3f",
                comment.id, dimension.dimension_name, stance_value, confidence,
            )

        total_ms = int((time.perf_counter() - overall_start) * 1000)
        return {
            "success": True,
            "comment_id": str(comment.id),
            "dimensions": results,
            "total_processing_time_ms": total_ms,
            "average_time_per_dimension_ms": round(total_ms / len(dimensions)),
        }

    async def recalculate_stance_vector(self, comment_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """Drop every stored vector for the comment, then score it again"""
        comment = await self._get_comment(comment_id)
        if comment is None:
            return _comment_not_found(comment_id)

        deleted = await self.db.execute(
            delete(CommentStanceVector).where(CommentStanceVector.comment_id == comment.id)
        )
        await self.db.commit()
        logger.info("Deleted %s stance vectors for comment %s before recalculation",
                    deleted.rowcount, comment.id)

        return await self.calculate_stance_vector(comment.id)

    async def get_stance_vector(self, comment_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """Stored vector on active dimensions, ordered by dimension position"""
        comment = await self._get_comment(comment_id)
        if comment is None:
            return _comment_not_found(comment_id)

        rows = await fetch_active_stance_rows(self.db, [comment.id])
        return {
            "success": True,
            "comment_id": str(comment.id),
            "vector": [
                {
                    "dimension": dimension.dimension_name,
                    "dimension_id": str(dimension.id),
                    "stance_value": vector.stance_value,
                    "confidence": vector.confidence,
                    "explanation": vector.explanation,
                    "updated_at": vector.updated_at.isoformat() if vector.updated_at else None,
                }
                for vector, dimension in rows
            ],
        }

    async def _upsert_vector(
        self,
        *,
        comment_id: uuid.UUID,
        dimension_id: uuid.UUID,
        stance_value: float,
        confidence: float,
        explanation: str,
        raw_response: Optional[Dict[str, Any]],
        processing_time_ms: Optional[int],
    ) -> None:
        """Single-statement upsert keyed by the (comment_id, dimension_id) unique constraint"""
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Stance vector upsert not supported on {dialect}")

        stmt = insert(CommentStanceVector).values(
            id=uuid.uuid4(),
            comment_id=comment_id,
            dimension_id=dimension_id,
            stance_value=stance_value,
            confidence=confidence,
            explanation=explanation,
            raw_oracle_response=raw_response,
            processing_time_ms=processing_time_ms,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["comment_id", "dimension_id"],
            set_={
                "stance_value": stmt.excluded.stance_value,
                "confidence": stmt.excluded.confidence,
                "explanation": stmt.excluded.explanation,
                "raw_oracle_response": stmt.excluded.raw_oracle_response,
                "processing_time_ms": stmt.excluded.processing_time_ms,
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)
        await self.db.commit()


def summarize_vector(rows: Sequence[Tuple[CommentStanceVector, DeliberationDimension]]) -> List[Dict[str, Any]]:
    """Compact per-dimension view used by the consensus analyzer"""
    return [
        {
            "dimension_id": str(dimension.id),
            "dimension_name": dimension.dimension_name,
            "position": dimension.position,
            "stance_value": vector.stance_value,
            "confidence": vector.confidence,
        }
        for vector, dimension in rows
    ]
