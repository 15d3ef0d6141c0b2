"""Tenant lineage policy: tolerances, durations and blend compatibility.

Global defaults come from `app.config.settings`; a tenant may override any
of them with a `tenant_config` row keyed "lineage_policy".  Malformed
override values are ignored and the default kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.lineage.entities import Batch, LineageSnapshot, Lot

logger = logging.getLogger(__name__)

BLEND_RULES = ("permissive", "same_yeast", "same_style", "same_recipe")


@dataclass(frozen=True)
class LineagePolicy:
    packaging_tolerance_liters: float = 1.0
    conditioning_duration_days: int = 7
    blend_compatibility: str = "permissive"


def resolve_policy(settings, snapshot: LineageSnapshot) -> LineagePolicy:
    """Merge the global settings with the tenant's "lineage_policy" override."""
    tolerance = settings.packaging_tolerance_liters
    duration = settings.conditioning_duration_days
    rule = settings.blend_compatibility

    override = snapshot.config.get("lineage_policy") or {}
    if not isinstance(override, dict):
        logger.warning(
            "Ignoring non-object lineage_policy",
            extra={"tenant_id": snapshot.tenant_id},
        )
        override = {}

    value = override.get("packaging_tolerance_liters")
    if value is not None:
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
            tolerance = float(value)
        else:
            _warn(snapshot, "packaging_tolerance_liters", value)

    value = override.get("conditioning_duration_days")
    if value is not None:
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            duration = value
        else:
            _warn(snapshot, "conditioning_duration_days", value)

    value = override.get("blend_compatibility")
    if value is not None:
        if value in BLEND_RULES:
            rule = value
        else:
            _warn(snapshot, "blend_compatibility", value)

    return LineagePolicy(
        packaging_tolerance_liters=tolerance,
        conditioning_duration_days=duration,
        blend_compatibility=rule,
    )


def _warn(snapshot: LineageSnapshot, key: str, value) -> None:
    logger.warning(
        "Ignoring malformed lineage policy value",
        extra={"tenant_id": snapshot.tenant_id, "key": key, "value": repr(value)},
    )


# ── Blend compatibility ─────────────────────────────────────

def blend_incompatibilities(
    snapshot: LineageSnapshot, lots: list[Lot], rule: str
) -> list[str]:
    """Return the reasons `lots` may not be blended under `rule` (empty = allowed).

    The engine is recipe-agnostic: the rule is chosen by the caller or the
    tenant policy.  Lots whose batches have no recipe never make a rule fail.
    """
    if rule == "permissive":
        return []

    recipes = []
    for lot in lots:
        for lb in snapshot.lot_batches_for(lot.id):
            batch: Batch | None = snapshot.batches.get(lb.batch_id)
            if batch is None or batch.recipe_id is None:
                continue
            recipe = snapshot.recipes.get(batch.recipe_id)
            if recipe is not None:
                recipes.append(recipe)

    if rule == "same_recipe":
        names = sorted({r.id for r in recipes})
        if len(names) > 1:
            return [f"{len(names)} different recipes"]
    elif rule == "same_style":
        styles = sorted({r.style for r in recipes if r.style})
        if len(styles) > 1:
            return [f"different styles: {', '.join(styles)}"]
    elif rule == "same_yeast":
        strains = sorted({r.yeast_strain for r in recipes if r.yeast_strain})
        if len(strains) > 1:
            return [f"different yeast strains: {', '.join(strains)}"]
    return []
