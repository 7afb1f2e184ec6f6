"""
Consensus Analyzer Service

Compares and aggregates stored stance vectors to surface common ground,
points of contention and polarization. Read-only: never calls the scoring
oracle and never writes stance data.

Agreement levels (cosine or per-dimension similarity):
- strong_agreement:   >= 0.8
- partial_agreement:  >= 0.5
- orthogonal:         >= -0.2  (talking past each other)
- partial_opposition: >= -0.5
- strong_opposition:  below that

Per-dimension similarity is 1 - |a - b| / 2, which lives in [0, 1], so only
the signed overall cosine can reach the opposition labels.
"""

import logging
import statistics
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from psv_python_backend.config import PSV_SIMILARITY_THRESHOLD
from psv_python_backend.models import Comment
from psv_python_backend.services.dimension_registry import get_dimensions
from psv_python_backend.services.psv_results import NO_DATA, NOT_FOUND, failure, lookup_uuid
from psv_python_backend.services.stance_calculator import fetch_active_stance_rows, summarize_vector

logger = logging.getLogger(__name__)

COMMON_GROUND_THRESHOLD = 0.7
CONTENTION_THRESHOLD = 0.5

HIGH_CONSENSUS_MAX_STD = 0.3
MODERATE_CONSENSUS_MAX_STD = 0.6


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """
    Cosine similarity in [-1, 1].

    Mismatched lengths, empty input and zero-magnitude vectors all return 0.0
    (no evidence of a relationship).
    """
    if len(vector_a) != len(vector_b) or len(vector_a) == 0:
        return 0.0

    vec_a = np.asarray(vector_a, dtype=float)
    vec_b = np.asarray(vector_b, dtype=float)

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def classify_agreement(score: float) -> str:
    if score >= 0.8:
        return "strong_agreement"
    if score >= 0.5:
        return "partial_agreement"
    if score >= -0.2:
        return "orthogonal"
    if score >= -0.5:
        return "partial_opposition"
    return "strong_opposition"


def classify_consensus(standard_deviation: float) -> str:
    if standard_deviation < HIGH_CONSENSUS_MAX_STD:
        return "high"
    if standard_deviation < MODERATE_CONSENSUS_MAX_STD:
        return "moderate"
    return "low"


def dimension_similarity(stance_a: float, stance_b: float) -> float:
    """Map a stance gap in [0, 2] onto a similarity in [0, 1]"""
    return 1 - abs(stance_a - stance_b) / 2


@dataclass
class AggregateStance:
    dimension_id: str
    dimension_name: str
    position: int
    average_stance: float
    standard_deviation: float
    sample_size: int
    confidence_level: float
    consensus: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def aggregate_dimension(dimension_id: str, dimension_name: str, position: int,
                        stances: Sequence[float], confidences: Sequence[float]) -> AggregateStance:
    """Confidence-weighted mean plus unweighted population spread for one dimension"""
    total_confidence = sum(confidences)
    weighted_sum = sum(s * c for s, c in zip(stances, confidences))
    average_stance = weighted_sum / total_confidence if total_confidence > 0 else 0.0

    standard_deviation = statistics.pstdev(stances)

    return AggregateStance(
        dimension_id=dimension_id,
        dimension_name=dimension_name,
        position=position,
        average_stance=average_stance,
        standard_deviation=standard_deviation,
        sample_size=len(stances),
        confidence_level=statistics.fmean(confidences),
        consensus=classify_consensus(standard_deviation),
    )


def compare_stance_vectors(vector_a: List[Dict[str, Any]],
                           vector_b: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Align two summarized vectors on their shared dimensions and compare them.

    Returns None when the vectors share no dimension.
    """
    by_dimension_b = {entry["dimension_id"]: entry for entry in vector_b}
    common = [entry for entry in vector_a if entry["dimension_id"] in by_dimension_b]
    if not common:
        return None

    aligned_a = []
    aligned_b = []
    breakdown = []

    for entry_a in common:
        entry_b = by_dimension_b[entry_a["dimension_id"]]
        aligned_a.append(entry_a["stance_value"])
        aligned_b.append(entry_b["stance_value"])

        similarity = dimension_similarity(entry_a["stance_value"], entry_b["stance_value"])
        breakdown.append({
            "dimension_name": entry_a["dimension_name"],
            "dimension_id": entry_a["dimension_id"],
            "comment_a_stance": entry_a["stance_value"],
            "comment_b_stance": entry_b["stance_value"],
            "similarity": similarity,
            "agreement": classify_agreement(similarity),
            "avg_confidence": (entry_a["confidence"] + entry_b["confidence"]) / 2,
        })

    overall_similarity = cosine_similarity(aligned_a, aligned_b)

    common_ground = [d["dimension_name"] for d in breakdown if d["similarity"] >= COMMON_GROUND_THRESHOLD]
    points_of_contention = [d["dimension_name"] for d in breakdown if d["similarity"] < CONTENTION_THRESHOLD]

    # Most similar first
    breakdown.sort(key=lambda d: d["similarity"], reverse=True)

    return {
        "overall_similarity": overall_similarity,
        "overall_agreement": classify_agreement(overall_similarity),
        "dimension_breakdown": breakdown,
        "common_ground": common_ground,
        "points_of_contention": points_of_contention,
        "analysis_metadata": {
            "dimensions_analyzed": len(breakdown),
            "average_confidence": statistics.fmean(d["avg_confidence"] for d in breakdown),
        },
    }


def generate_recommendations(polarized: List[AggregateStance],
                             consensus: List[AggregateStance]) -> List[Dict[str, str]]:
    recommendations = []

    if consensus:
        recommendations.append({
            "type": "common_ground",
            "message": f"Build on agreement in: {', '.join(d.dimension_name for d in consensus)}",
        })

    if polarized:
        recommendations.append({
            "type": "bridge_building",
            "message": (
                "Focus dialogue on understanding differences in: "
                f"{', '.join(d.dimension_name for d in polarized)}"
            ),
        })

    return recommendations


def _serialize_aggregate(aggregate: Dict[str, Any]) -> Dict[str, Any]:
    if not aggregate["success"]:
        return aggregate
    return dict(aggregate, aggregate_stances=[a.to_dict() for a in aggregate["aggregate_stances"]])


def _polarization_from_aggregate(aggregate: Dict[str, Any]) -> Dict[str, Any]:
    """Contrast high-spread (polarized) dimensions with high-consensus ones"""
    if not aggregate["success"]:
        return aggregate

    stances = aggregate["aggregate_stances"]
    polarized = [d for d in stances if d.consensus == "low"]
    consensus = [d for d in stances if d.consensus == "high"]

    return {
        "success": True,
        "post_id": aggregate["post_id"],
        "overall_polarization": "high" if len(polarized) > len(consensus) else "low",
        "polarized_dimensions": [
            {"dimension": d.dimension_name, "standard_deviation": d.standard_deviation}
            for d in polarized
        ],
        "consensus_dimensions": [
            {
                "dimension": d.dimension_name,
                "average_stance": d.average_stance,
                "standard_deviation": d.standard_deviation,
            }
            for d in consensus
        ],
        "recommendations": generate_recommendations(polarized, consensus),
    }


def _post_not_found(post_id) -> Dict[str, Any]:
    return failure(NOT_FOUND, f"Post {post_id} not found", post_id=str(post_id))


class ConsensusAnalyzer:
    """Agreement, aggregation and polarization over stored stance vectors"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _published_comment_ids(self, post_id: uuid.UUID,
                                     exclude: Optional[uuid.UUID] = None) -> List[uuid.UUID]:
        query = select(Comment.id).where(
            Comment.post_id == post_id,
            Comment.deleted.is_(False),
            Comment.status == "published",
        )
        if exclude is not None:
            query = query.where(Comment.id != exclude)
        result = await self.db.execute(query.order_by(Comment.created_at, Comment.id))
        return list(result.scalars().all())

    async def _load_vectors(self, comment_ids: List[uuid.UUID]) -> Dict[uuid.UUID, List[Dict[str, Any]]]:
        rows = await fetch_active_stance_rows(self.db, comment_ids)
        grouped = defaultdict(list)
        for vector, dimension in rows:
            grouped[vector.comment_id].append((vector, dimension))
        return {comment_id: summarize_vector(pairs) for comment_id, pairs in grouped.items()}

    async def get_comment_vector(self, comment_id: Union[str, uuid.UUID]) -> Optional[List[Dict[str, Any]]]:
        """Summarized active-dimension vector for one comment, or None if unscored"""
        comment_uuid = lookup_uuid(comment_id)
        if comment_uuid is None:
            return None
        vectors = await self._load_vectors([comment_uuid])
        return vectors.get(comment_uuid)

    async def analyze_agreement(self, comment_id_a: Union[str, uuid.UUID],
                                comment_id_b: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """
        Compare two comments' stance vectors

        Returns:
            {
                "success": True,
                "comment_id_a": str, "comment_id_b": str,
                "overall_similarity": float (cosine, -1..1),
                "overall_agreement": str,
                "dimension_breakdown": [...],   # most similar first
                "common_ground": [dimension names],
                "points_of_contention": [dimension names],
                "analysis_metadata": {"dimensions_analyzed": int, "average_confidence": float}
            }
        """
        uuid_a = lookup_uuid(comment_id_a)
        uuid_b = lookup_uuid(comment_id_b)
        for raw_id, parsed in ((comment_id_a, uuid_a), (comment_id_b, uuid_b)):
            if parsed is None:
                return failure(NOT_FOUND, f"Comment {raw_id} not found", comment_id=str(raw_id))

        vectors = await self._load_vectors([uuid_a, uuid_b])
        vector_a = vectors.get(uuid_a)
        vector_b = vectors.get(uuid_b)

        if not vector_a or not vector_b:
            return failure(NO_DATA, "One or both comments do not have stance vectors calculated")

        comparison = compare_stance_vectors(vector_a, vector_b)
        if comparison is None:
            return failure(NO_DATA, "No common dimensions between the two comments")

        return {
            "success": True,
            "comment_id_a": str(uuid_a),
            "comment_id_b": str(uuid_b),
            **comparison,
        }

    async def _post_aggregate(self, post_uuid: uuid.UUID) -> Dict[str, Any]:
        """Aggregate with ``AggregateStance`` rows, shared by the public post-level operations"""
        comment_ids = await self._published_comment_ids(post_uuid)
        if not comment_ids:
            return failure(NO_DATA, "No comments found for this post", post_id=str(post_uuid))

        rows = await fetch_active_stance_rows(self.db, comment_ids)
        if not rows:
            return failure(NO_DATA, "No stance vectors calculated for this post yet", post_id=str(post_uuid))

        groups = defaultdict(lambda: {"stances": [], "confidences": []})
        dimensions = {}
        scored_comments = set()
        for vector, dimension in rows:
            dimensions[dimension.id] = dimension
            groups[dimension.id]["stances"].append(vector.stance_value)
            groups[dimension.id]["confidences"].append(vector.confidence)
            scored_comments.add(vector.comment_id)

        aggregates = [
            aggregate_dimension(
                str(dimension_id),
                dimensions[dimension_id].dimension_name,
                dimensions[dimension_id].position,
                values["stances"],
                values["confidences"],
            )
            for dimension_id, values in groups.items()
        ]
        aggregates.sort(key=lambda a: (a.position, a.dimension_name))

        return {
            "success": True,
            "post_id": str(post_uuid),
            "aggregate_stances": aggregates,
            "metadata": {
                "total_comments": len(comment_ids),
                "comments_with_vectors": len(scored_comments),
                "dimensions_analyzed": len(aggregates),
            },
        }

    async def calculate_post_aggregate(self, post_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """
        Community position and spread per dimension for a post

        Each ``aggregate_stances`` entry is a dict with dimension_id,
        dimension_name, position, average_stance, standard_deviation,
        sample_size, confidence_level and consensus.
        """
        post_uuid = lookup_uuid(post_id)
        if post_uuid is None:
            return _post_not_found(post_id)
        return _serialize_aggregate(await self._post_aggregate(post_uuid))

    async def find_similar_stances(self, comment_id: Union[str, uuid.UUID],
                                   threshold: float = PSV_SIMILARITY_THRESHOLD) -> Dict[str, Any]:
        """
        Other comments in the same post whose overall similarity is at least
        ``threshold``, most similar first. Linear in the post's comment count.
        """
        comment_uuid = lookup_uuid(comment_id)
        comment = await self.db.get(Comment, comment_uuid) if comment_uuid else None
        if comment is None:
            return failure(NOT_FOUND, f"Comment {comment_id} not found", comment_id=str(comment_id))

        target_vector = await self.get_comment_vector(comment_uuid)
        if not target_vector:
            return failure(NO_DATA, "Target comment does not have stance vectors")

        other_ids = await self._published_comment_ids(comment.post_id, exclude=comment_uuid)
        other_vectors = await self._load_vectors(other_ids)

        similar = []
        for other_id in other_ids:
            other_vector = other_vectors.get(other_id)
            if not other_vector:
                continue
            comparison = compare_stance_vectors(target_vector, other_vector)
            if comparison is None or comparison["overall_similarity"] < threshold:
                continue
            similar.append({
                "comment_id": str(other_id),
                "similarity": comparison["overall_similarity"],
                "agreement": comparison["overall_agreement"],
                "common_ground": comparison["common_ground"],
            })

        similar.sort(key=lambda s: s["similarity"], reverse=True)

        logger.info("Found %d similar stances for comment %s (threshold %.2f)",
                    len(similar), comment_uuid, threshold)
        return {
            "success": True,
            "target_comment_id": str(comment_uuid),
            "similar_comments": similar,
            "threshold": threshold,
        }

    async def analyze_polarization(self, post_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """Polarized vs consensus dimensions for a post, with recommendations"""
        post_uuid = lookup_uuid(post_id)
        if post_uuid is None:
            return _post_not_found(post_id)
        return _polarization_from_aggregate(await self._post_aggregate(post_uuid))

    async def get_deliberation_overview(self, post_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """Dimensions, community aggregate and polarization for one post"""
        post_uuid = lookup_uuid(post_id)
        if post_uuid is None:
            return _post_not_found(post_id)

        dimensions = await get_dimensions(self.db, post_id=post_uuid)
        aggregate = await self._post_aggregate(post_uuid)

        return {
            "post_id": str(post_uuid),
            "dimensions": [
                {
                    "id": str(d.id),
                    "name": d.dimension_name,
                    "description": d.dimension_description,
                    "negative_label": d.scale_negative_label,
                    "positive_label": d.scale_positive_label,
                }
                for d in dimensions
            ],
            "aggregate": _serialize_aggregate(aggregate),
            "polarization": _polarization_from_aggregate(aggregate),
        }
