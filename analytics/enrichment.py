from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from analytics.kinematics import extract_attempt_features
from data.models import Attempt, BasicFeatures, FeatureSet, FullFeatures, PointerSample, Spatial, Timing

logger = logging.getLogger(__name__)

EnrichmentResult = Union[FullFeatures, BasicFeatures]


def _recorded_number(block: Dict[str, Any], key: str) -> Optional[float]:
    value = block.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def build_basic_features(attempt: Attempt, prev_click_t_ms: Optional[float]) -> BasicFeatures:
    reaction_time_ms = _recorded_number(attempt.recorded_timing, "reactionTimeMs")
    if reaction_time_ms is None and attempt.click.clicked and attempt.click.t_ms is not None:
        reaction_time_ms = attempt.click.t_ms - attempt.spawn_t_ms

    inter_tap_ms = None
    if prev_click_t_ms is not None and attempt.click.t_ms is not None:
        inter_tap_ms = attempt.click.t_ms - prev_click_t_ms

    features = FeatureSet(
        timing=Timing(reaction_time_ms=reaction_time_ms, inter_tap_ms=inter_tap_ms),
        spatial=Spatial(error_dist_norm=_recorded_number(attempt.recorded_spatial, "errorDistNorm")),
    )
    return BasicFeatures(features)


def enrich_attempt(
    attempt: Attempt,
    samples: Sequence[PointerSample],
    prev_click_t_ms: Optional[float] = None,
) -> EnrichmentResult:
    if not samples or not attempt.click.clicked or attempt.click.t_ms is None:
        return build_basic_features(attempt, prev_click_t_ms)
    try:
        features = extract_attempt_features(
            samples,
            spawn_t_ms=attempt.spawn_t_ms,
            click_t_ms=attempt.click.t_ms,
            target=attempt.target,
            prev_click_t_ms=prev_click_t_ms,
        )
    except Exception as exc:
        logger.warning("Feature extraction failed for attempt %s, using basic features: %s", attempt.attempt_id, exc)
        return build_basic_features(attempt, prev_click_t_ms)
    return FullFeatures(features)


def merge_features(attempt: Attempt, result: EnrichmentResult) -> Dict[str, Any]:
    record = attempt.to_dict()
    record.update(result.features.to_dict())
    record["featureSource"] = result.source
    return record


def enrich_attempts(attempts: Sequence[Attempt], samples: Sequence[PointerSample]) -> List[Dict[str, Any]]:
    """
    Enrich a batch in arrival order. Each attempt sees the previous attempt's
    click time as its inter-tap reference.
    """
    ordered = sorted(samples, key=lambda s: s.t_ms)
    enriched: List[Dict[str, Any]] = []
    prev_click_t_ms: Optional[float] = None
    for attempt in attempts:
        result = enrich_attempt(attempt, ordered, prev_click_t_ms)
        enriched.append(merge_features(attempt, result))
        prev_click_t_ms = attempt.click.t_ms
    return enriched
