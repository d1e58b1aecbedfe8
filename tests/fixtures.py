"""
Builders for pointer traces and attempt payloads shared across tests.
"""
from typing import Any, Dict, List, Optional, Sequence

from data.models import Attempt, PointerSample

# 40 Hz straight line along x, one sample per 25 ms, speed exactly 1.0/s
STRAIGHT_XS = [0.0, 0.025, 0.05, 0.075, 0.1]
STRAIGHT_TS = [0.0, 25.0, 50.0, 75.0, 100.0]

# approach, overshoot past x=0.13, come back to x=0.10
OVERSHOOT_XS = [0.0, 0.04, 0.08, 0.095, 0.115, 0.13, 0.11, 0.10]


def make_samples(
    xs: Sequence[float],
    ts: Sequence[float],
    ys: Optional[Sequence[float]] = None,
    round_no: int = 1,
) -> List[PointerSample]:
    ys = ys if ys is not None else [0.0] * len(xs)
    return [PointerSample(round=round_no, t_ms=t, x=x, y=y) for x, y, t in zip(xs, ys, ts)]


def sample_payload(x: float, t_ms: float, y: float = 0.0, round_no: int = 1) -> Dict[str, Any]:
    return {"round": round_no, "t_ms": t_ms, "x": x, "y": y, "isDown": False, "pointerType": "mouse"}


def attempt_payload(
    attempt_id: str = "a-1",
    round_no: int = 1,
    spawn_t_ms: float = 0.0,
    click_t_ms: Optional[float] = 100.0,
    hit: bool = True,
    target: Optional[Dict[str, float]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    clicked = click_t_ms is not None
    payload = {
        "round": round_no,
        "attemptId": attempt_id,
        "bubbleId": f"b-{attempt_id}",
        "spawn_t_ms": spawn_t_ms,
        "target": target or {"x": 0.1, "y": 0.0, "radius": 0.02},
        "click": {
            "clicked": clicked,
            "hit": hit and clicked,
            "missType": ("hit" if hit else "bubble_miss") if clicked else "timeout",
            "t_ms": click_t_ms,
            "x": 0.1 if clicked else None,
            "y": 0.0 if clicked else None,
        },
    }
    payload.update(extra)
    return payload


def make_attempt(**kwargs: Any) -> Attempt:
    return Attempt.from_dict(attempt_payload(**kwargs))


def enriched_attempt(
    round_no: int = 1,
    hit: bool = True,
    reaction_time_ms: Optional[float] = None,
    movement_time_ms: Optional[float] = None,
    throughput: Optional[float] = None,
    error_dist: Optional[float] = None,
) -> Dict[str, Any]:
    """A stored attempt record as the aggregation layer reads it."""
    return {
        "round": round_no,
        "click": {"clicked": True, "hit": hit},
        "timing": {"reactionTimeMs": reaction_time_ms, "movementTimeMs": movement_time_ms, "interTapMs": None},
        "spatial": {"errorDistNorm": error_dist},
        "kinematics": {},
        "fitts": {"throughput": throughput},
    }
