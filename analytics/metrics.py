from typing import Dict, List, Optional

# (feature name, attempt block, field)
TIMING_FEATURES = (
    ("reactionTime", "timing", "reactionTimeMs"),
    ("movementTime", "timing", "movementTimeMs"),
    ("interTapTime", "timing", "interTapMs"),
)

HIT_FEATURES = (
    ("errorDist", "spatial", "errorDistNorm"),
    ("pathLength", "spatial", "pathLengthNorm"),
    ("directDist", "spatial", "directDistNorm"),
    ("straightness", "spatial", "straightness"),
    ("meanSpeed", "kinematics", "meanSpeed"),
    ("peakSpeed", "kinematics", "peakSpeed"),
    ("speedVar", "kinematics", "speedVar"),
    ("meanAccel", "kinematics", "meanAccel"),
    ("peakAccel", "kinematics", "peakAccel"),
    ("jerkRMS", "kinematics", "jerkRMS"),
    ("submovementCount", "kinematics", "submovementCount"),
    ("overshootCount", "kinematics", "overshootCount"),
    ("ID", "fitts", "ID"),
    ("throughput", "fitts", "throughput"),
)

TREND_FEATURES = (
    ("hitRate_trend", "hitRate"),
    ("throughput_trend", "throughput_mean"),
)


def mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def std(values: List[float]) -> Optional[float]:
    # population std, not Bessel-corrected
    if len(values) < 2:
        return None
    m = sum(values) / len(values)
    return (sum((v - m) ** 2 for v in values) / len(values)) ** 0.5


def median(values: List[float]) -> Optional[float]:
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def collect(attempts: List[dict], block: str, field: str) -> List[float]:
    values = []
    for a in attempts:
        value = (a.get(block) or {}).get(field)
        if value is None or isinstance(value, bool):
            continue
        values.append(float(value))
    return values


def is_hit(attempt: dict) -> bool:
    return bool((attempt.get("click") or {}).get("hit"))


def summarize_round(attempts: List[dict]) -> Optional[dict]:
    if not attempts:
        return None

    hits = [a for a in attempts if is_hit(a)]
    features: Dict[str, Optional[float]] = {}

    for name, block, field in TIMING_FEATURES:
        values = collect(attempts, block, field)
        features[f"{name}_mean"] = mean(values)
        features[f"{name}_std"] = std(values)
        features[f"{name}_median"] = median(values)

    for name, block, field in HIT_FEATURES:
        values = collect(hits, block, field)
        features[f"{name}_mean"] = mean(values)
        features[f"{name}_std"] = std(values)

    features["nAttempts"] = len(attempts)
    features["nHits"] = len(hits)
    features["nMisses"] = len(attempts) - len(hits)
    features["hitRate"] = len(hits) / len(attempts) if attempts else 0
    return features


def round_counts(features: dict) -> dict:
    return {
        "nTargets": features["nAttempts"],
        "nHits": features["nHits"],
        "nMisses": features["nMisses"],
        "hitRate": features["hitRate"],
    }


def summarize_session(round_features: Dict[int, Optional[dict]]) -> dict:
    """
    Flatten per-round features under r{n}_ and add first-to-last trends
    over the rounds that actually have a value.
    """
    session: dict = {}
    for round_no in sorted(round_features):
        rf = round_features[round_no]
        if not rf:
            continue
        for key, value in rf.items():
            session[f"r{round_no}_{key}"] = value

    for trend_key, source_key in TREND_FEATURES:
        series = [
            round_features[r][source_key]
            for r in sorted(round_features)
            if round_features[r] and round_features[r].get(source_key) is not None
        ]
        if len(series) > 1:
            session[trend_key] = series[-1] - series[0]
    return session


def attempt_stats(attempts: List[dict], rounds=(1, 2, 3)) -> dict:
    stats = {"total": len(attempts), "rounds": {}}
    for round_no in rounds:
        in_round = [a for a in attempts if a.get("round") == round_no]
        hits = [a for a in in_round if is_hit(a)]
        n = len(in_round)
        stats["rounds"][str(round_no)] = {
            "totalAttempts": n,
            "hits": len(hits),
            "misses": n - len(hits),
            "hitRate": len(hits) / n if n > 0 else 0,
            "avgReactionTime": (
                sum((a.get("timing") or {}).get("reactionTimeMs") or 0 for a in in_round) / n if n > 0 else None
            ),
            "avgMovementTime": (
                sum((a.get("timing") or {}).get("movementTimeMs") or 0 for a in in_round) / n if n > 0 else None
            ),
            "avgThroughput": (
                sum((a.get("fitts") or {}).get("throughput") or 0 for a in hits) / len(hits) if hits else None
            ),
        }
    return stats
