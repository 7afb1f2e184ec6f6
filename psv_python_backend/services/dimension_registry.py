"""
Deliberation dimension registry.

Owns the axes a post (or, as a fallback, a group) is compared on:
template instantiation, custom creation, updates and soft deactivation.
Dimensions are never hard-deleted; stance vectors keep pointing at
retired ones and consensus queries filter on ``active``.
"""

import logging
import uuid
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from psv_python_backend.models import DeliberationDimension
from psv_python_backend.schemas import DimensionCreate, DimensionUpdate
from psv_python_backend.services.psv_results import NOT_FOUND, failure, lookup_uuid, parse_uuid

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "general"


def _template(*dimensions: Dict[str, Any]) -> tuple:
    return tuple(MappingProxyType(dict(d, position=i)) for i, d in enumerate(dimensions))


# Read-only lookup data; instantiate copies, never mutate
DIMENSION_TEMPLATES: Mapping[str, tuple] = MappingProxyType({
    "climate_policy": _template(
        {
            "dimension_name": "economic_impact",
            "dimension_description": "Economic costs and opportunities of the proposed policy",
            "scale_negative_label": "High cost, negative economic impact",
            "scale_positive_label": "Economic opportunity, positive ROI",
        },
        {
            "dimension_name": "environmental_urgency",
            "dimension_description": "Urgency of addressing environmental concerns",
            "scale_negative_label": "Not urgent, can wait",
            "scale_positive_label": "Critical, immediate action needed",
        },
        {
            "dimension_name": "technological_feasibility",
            "dimension_description": "Technical feasibility and readiness of solutions",
            "scale_negative_label": "Not feasible with current technology",
            "scale_positive_label": "Technologically achievable now",
        },
        {
            "dimension_name": "social_equity",
            "dimension_description": "Fair distribution of costs and benefits across society",
            "scale_negative_label": "Unfair burden on certain groups",
            "scale_positive_label": "Fair and equitable distribution",
        },
        {
            "dimension_name": "international_cooperation",
            "dimension_description": "Level of international coordination required",
            "scale_negative_label": "Unilateral, national action",
            "scale_positive_label": "Multilateral, global coordination",
        },
    ),
    "public_health": _template(
        {
            "dimension_name": "public_safety",
            "dimension_description": "Impact on public health and safety",
            "scale_negative_label": "Minimal safety benefit",
            "scale_positive_label": "Critical for public safety",
        },
        {
            "dimension_name": "individual_freedom",
            "dimension_description": "Impact on personal freedoms and choices",
            "scale_negative_label": "Restricts individual freedom",
            "scale_positive_label": "Preserves personal autonomy",
        },
        {
            "dimension_name": "healthcare_access",
            "dimension_description": "Accessibility and equity of healthcare services",
            "scale_negative_label": "Limited access, inequitable",
            "scale_positive_label": "Universal, equitable access",
        },
        {
            "dimension_name": "cost_effectiveness",
            "dimension_description": "Cost-benefit ratio of health interventions",
            "scale_negative_label": "High cost, low benefit",
            "scale_positive_label": "Cost-effective, high ROI",
        },
    ),
    "urban_development": _template(
        {
            "dimension_name": "community_impact",
            "dimension_description": "Effect on existing community and residents",
            "scale_negative_label": "Disrupts community, displacement",
            "scale_positive_label": "Strengthens community cohesion",
        },
        {
            "dimension_name": "environmental_sustainability",
            "dimension_description": "Environmental impact and sustainability",
            "scale_negative_label": "Environmentally harmful",
            "scale_positive_label": "Sustainable, eco-friendly",
        },
        {
            "dimension_name": "economic_development",
            "dimension_description": "Economic growth and job creation",
            "scale_negative_label": "Minimal economic benefit",
            "scale_positive_label": "Strong economic growth",
        },
        {
            "dimension_name": "infrastructure_quality",
            "dimension_description": "Quality of infrastructure and services",
            "scale_negative_label": "Poor infrastructure, inadequate services",
            "scale_positive_label": "High-quality, modern infrastructure",
        },
    ),
    "general": _template(
        {
            "dimension_name": "feasibility",
            "dimension_description": "Practical feasibility of implementation",
            "scale_negative_label": "Not feasible, impractical",
            "scale_positive_label": "Highly feasible, practical",
        },
        {
            "dimension_name": "impact",
            "dimension_description": "Expected positive impact and effectiveness",
            "scale_negative_label": "Low impact, ineffective",
            "scale_positive_label": "High impact, very effective",
        },
        {
            "dimension_name": "fairness",
            "dimension_description": "Fairness and equity of the proposal",
            "scale_negative_label": "Unfair, inequitable",
            "scale_positive_label": "Fair and equitable",
        },
        {
            "dimension_name": "risk",
            "dimension_description": "Risk level and potential downsides",
            "scale_negative_label": "High risk, many downsides",
            "scale_positive_label": "Low risk, minimal downsides",
        },
    ),
})

UUIDLike = Union[str, uuid.UUID]


def _optional_uuid(value: Optional[UUIDLike], field_name: str) -> Optional[uuid.UUID]:
    return parse_uuid(value, field_name) if value is not None else None


def list_templates() -> List[Dict[str, Any]]:
    """Template names with the dimension names each one creates."""
    return [
        {
            "name": name,
            "dimensions": [d["dimension_name"] for d in dimensions],
        }
        for name, dimensions in DIMENSION_TEMPLATES.items()
    ]


def serialize_dimension(dimension: DeliberationDimension) -> dict:
    """Convert an ORM ``DeliberationDimension`` to a response-compatible dict."""
    return {
        "id": str(dimension.id),
        "post_id": str(dimension.post_id) if dimension.post_id else None,
        "group_id": str(dimension.group_id) if dimension.group_id else None,
        "name": dimension.dimension_name,
        "description": dimension.dimension_description,
        "negative_label": dimension.scale_negative_label,
        "positive_label": dimension.scale_positive_label,
        "position": dimension.position,
        "active": dimension.active,
    }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_dimensions(db: AsyncSession, post_id: Optional[UUIDLike] = None,
                         group_id: Optional[UUIDLike] = None) -> List[DeliberationDimension]:
    """
    Active dimensions ordered by position.

    A post id selects that post's dimensions only. Without one, a group id
    selects the group-level set (dimensions with no post assigned).
    Malformed ids match nothing.
    """
    query = select(DeliberationDimension).where(DeliberationDimension.active.is_(True))

    if post_id is not None:
        post_uuid = lookup_uuid(post_id)
        if post_uuid is None:
            return []
        query = query.where(DeliberationDimension.post_id == post_uuid)
    elif group_id is not None:
        group_uuid = lookup_uuid(group_id)
        if group_uuid is None:
            return []
        query = query.where(
            DeliberationDimension.group_id == group_uuid,
            DeliberationDimension.post_id.is_(None),
        )
    else:
        return []

    result = await db.execute(query.order_by(DeliberationDimension.position.asc()))
    return list(result.scalars().all())


async def get_dimension_by_id(db: AsyncSession,
                              dimension_id: UUIDLike) -> Optional[DeliberationDimension]:
    """Fetch a dimension regardless of its active flag, or ``None``."""
    dimension_uuid = lookup_uuid(dimension_id)
    if dimension_uuid is None:
        return None

    query = select(DeliberationDimension).where(DeliberationDimension.id == dimension_uuid)
    result = await db.execute(query)
    return result.scalar_one_or_none()


def _dimension_not_found(dimension_id: UUIDLike) -> Dict[str, Any]:
    logger.warning("Dimension %s not found", dimension_id)
    return failure(NOT_FOUND, f"Dimension {dimension_id} not found", dimension_id=str(dimension_id))


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_from_template(db: AsyncSession, template_name: str,
                               post_id: Optional[UUIDLike] = None,
                               group_id: Optional[UUIDLike] = None) -> List[DeliberationDimension]:
    """
    Instantiate a named template for a post and/or group.

    Unknown names fall back to the ``general`` template.
    """
    template = DIMENSION_TEMPLATES.get(template_name)
    if template is None:
        logger.info("Unknown dimension template %r, using %r", template_name, DEFAULT_TEMPLATE)
        template = DIMENSION_TEMPLATES[DEFAULT_TEMPLATE]

    post_uuid = _optional_uuid(post_id, "post_id")
    group_uuid = _optional_uuid(group_id, "group_id")

    dimensions = [
        DeliberationDimension(
            id=uuid.uuid4(),
            post_id=post_uuid,
            group_id=group_uuid,
            active=True,
            **dict(spec),
        )
        for spec in template
    ]
    db.add_all(dimensions)
    await db.commit()
    for dimension in dimensions:
        await db.refresh(dimension)

    logger.info(
        "Created %d dimensions from template %s (post=%s, group=%s)",
        len(dimensions), template_name, post_uuid, group_uuid,
    )
    return dimensions


async def ensure_post_dimensions(db: AsyncSession, post_id: UUIDLike,
                                 template_name: str = DEFAULT_TEMPLATE,
                                 group_id: Optional[UUIDLike] = None) -> List[DeliberationDimension]:
    """Return the post's active dimensions, instantiating the template only if it has none."""
    existing = await get_dimensions(db, post_id=post_id)
    if existing:
        logger.info("Post %s already has %d dimensions; template not applied", post_id, len(existing))
        return existing
    return await create_from_template(db, template_name, post_id=post_id, group_id=group_id)


async def create_custom_dimension(db: AsyncSession,
                                  data: Union[Dict[str, Any], DimensionCreate]) -> DeliberationDimension:
    """Create a dimension from a payload. Raises ``ValueError`` on invalid payloads."""
    payload = data if isinstance(data, DimensionCreate) else DimensionCreate.model_validate(data)

    dimension = DeliberationDimension(id=uuid.uuid4(), active=True, **payload.model_dump())
    db.add(dimension)
    await db.commit()
    await db.refresh(dimension)
    logger.info("Created custom dimension %s (%s)", dimension.id, dimension.dimension_name)
    return dimension


async def update_dimension(db: AsyncSession, dimension_id: UUIDLike,
                           updates: Union[Dict[str, Any], DimensionUpdate]) -> Dict[str, Any]:
    """
    Patch editable fields.

    Returns ``{"success": True, "dimension": {...}}`` or a not-found result.
    Raises ``ValueError`` on an invalid patch.
    """
    patch = updates if isinstance(updates, DimensionUpdate) else DimensionUpdate.model_validate(updates)
    dimension = await get_dimension_by_id(db, dimension_id)
    if dimension is None:
        return _dimension_not_found(dimension_id)

    for field, value in patch.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(dimension, field, value)

    await db.commit()
    await db.refresh(dimension)
    logger.info("Updated dimension %s", dimension.id)
    return {"success": True, "dimension": serialize_dimension(dimension)}


async def deactivate_dimension(db: AsyncSession, dimension_id: UUIDLike) -> Dict[str, Any]:
    """Soft-delete a dimension. Returns the deactivated dimension or a not-found result."""
    dimension = await get_dimension_by_id(db, dimension_id)
    if dimension is None:
        return _dimension_not_found(dimension_id)

    dimension.active = False

    await db.commit()
    await db.refresh(dimension)
    logger.info("Deactivated dimension %s", dimension.id)
    return {"success": True, "dimension": serialize_dimension(dimension)}
