from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from config.settings import LabelConfig

ROUNDS = (1, 2, 3)
POINTER_TYPES = ("mouse", "touch", "pen", "unknown")
MISS_TYPES = ("hit", "bubble_miss", "stage_miss", "timeout", "unknown")


class InvalidRecordError(ValueError):
    pass


def _pick(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRecordError(f"{name}_must_be_number")
    number = float(value)
    if not math.isfinite(number):
        raise InvalidRecordError(f"{name}_must_be_finite")
    return number


def _as_optional_float(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    return _as_float(value, name)


def _as_int(value: Any, name: str) -> int:
    number = _as_float(value, name)
    if not number.is_integer():
        raise InvalidRecordError(f"{name}_must_be_integer")
    return int(number)


def parse_round(value: Any) -> int:
    try:
        round_no = _as_int(value, "round")
    except InvalidRecordError:
        raise InvalidRecordError("round_must_be_1_2_or_3")
    if round_no not in ROUNDS:
        raise InvalidRecordError("round_must_be_1_2_or_3")
    return round_no


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


@dataclass(frozen=True)
class PointerSample:
    """
    One pointer position, coordinates normalized to 0..1
    """
    round: int
    t_ms: float
    x: float
    y: float
    is_down: bool = False
    pointer_type: str = "mouse"

    @classmethod
    def from_dict(cls, raw: Any) -> "PointerSample":
        if not isinstance(raw, dict):
            raise InvalidRecordError("sample_must_be_object")
        pointer_type = str(raw.get("pointerType") or "mouse")
        if pointer_type not in POINTER_TYPES:
            pointer_type = "unknown"
        return cls(
            round=parse_round(raw.get("round")),
            t_ms=_as_float(_pick(raw, "t_ms", "tms"), "t_ms"),
            x=_as_float(raw.get("x"), "x"),
            y=_as_float(raw.get("y"), "y"),
            is_down=bool(raw.get("isDown", False)),
            pointer_type=pointer_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round,
            "t_ms": self.t_ms,
            "x": self.x,
            "y": self.y,
            "isDown": self.is_down,
            "pointerType": self.pointer_type,
        }


@dataclass(frozen=True)
class Target:
    x: float
    y: float
    radius: float

    @classmethod
    def from_dict(cls, raw: Any) -> "Target":
        if not isinstance(raw, dict):
            raise InvalidRecordError("target_must_be_object")
        radius = _as_float(raw.get("radius"), "target_radius")
        if radius < 0:
            raise InvalidRecordError("target_radius_must_be_non_negative")
        return cls(
            x=_as_float(raw.get("x"), "target_x"),
            y=_as_float(raw.get("y"), "target_y"),
            radius=radius,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y, "radius": self.radius}


@dataclass(frozen=True)
class Click:
    clicked: bool = False
    hit: bool = False
    miss_type: str = "unknown"
    t_ms: Optional[float] = None
    x: Optional[float] = None
    y: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: Any) -> "Click":
        raw = _as_dict(raw)
        miss_type = str(raw.get("missType") or "unknown")
        if miss_type not in MISS_TYPES:
            raise InvalidRecordError(f"unknown_miss_type:{miss_type}")
        return cls(
            clicked=bool(raw.get("clicked", False)),
            hit=bool(raw.get("hit", False)),
            miss_type=miss_type,
            t_ms=_as_optional_float(_pick(raw, "t_ms", "tms"), "click_t_ms"),
            x=_as_optional_float(raw.get("x"), "click_x"),
            y=_as_optional_float(raw.get("y"), "click_y"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clicked": self.clicked,
            "hit": self.hit,
            "missType": self.miss_type,
            "t_ms": self.t_ms,
            "x": self.x,
            "y": self.y,
        }


@dataclass(frozen=True)
class Attempt:
    """
    One bubble: spawn -> click or timeout
    """
    round: int
    attempt_id: str
    bubble_id: str
    spawn_t_ms: float
    target: Target
    click: Click
    despawn_t_ms: Optional[float] = None
    ttl_ms: Optional[float] = None
    column: Optional[int] = None
    speed_norm: Optional[float] = None
    # client-side measurements, only read by the basic fallback
    recorded_timing: Dict[str, Any] = field(default_factory=dict)
    recorded_spatial: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Any) -> "Attempt":
        if not isinstance(raw, dict):
            raise InvalidRecordError("attempt_must_be_object")
        attempt_id = raw.get("attemptId")
        bubble_id = raw.get("bubbleId")
        if attempt_id is None or str(attempt_id) == "":
            raise InvalidRecordError("attempt_id_required")
        if bubble_id is None or str(bubble_id) == "":
            raise InvalidRecordError("bubble_id_required")
        return cls(
            round=parse_round(raw.get("round")),
            attempt_id=str(attempt_id),
            bubble_id=str(bubble_id),
            spawn_t_ms=_as_float(_pick(raw, "spawn_t_ms", "spawnTms"), "spawn_t_ms"),
            target=Target.from_dict(raw.get("target")),
            click=Click.from_dict(raw.get("click")),
            despawn_t_ms=_as_optional_float(_pick(raw, "despawn_t_ms", "despawnTms"), "despawn_t_ms"),
            ttl_ms=_as_optional_float(raw.get("ttlMs"), "ttl_ms"),
            column=_as_int(raw["column"], "column") if raw.get("column") is not None else None,
            speed_norm=_as_optional_float(raw.get("speedNorm"), "speed_norm"),
            recorded_timing=_as_dict(raw.get("timing")),
            recorded_spatial=_as_dict(raw.get("spatial")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "round": self.round,
            "attemptId": self.attempt_id,
            "bubbleId": self.bubble_id,
            "spawn_t_ms": self.spawn_t_ms,
            "target": self.target.to_dict(),
            "click": self.click.to_dict(),
        }
        if self.despawn_t_ms is not None:
            out["despawn_t_ms"] = self.despawn_t_ms
        if self.ttl_ms is not None:
            out["ttlMs"] = self.ttl_ms
        if self.column is not None:
            out["column"] = self.column
        if self.speed_norm is not None:
            out["speedNorm"] = self.speed_norm
        return out


@dataclass(frozen=True)
class Timing:
    reaction_time_ms: Optional[float] = None
    movement_time_ms: Optional[float] = None
    inter_tap_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reactionTimeMs": self.reaction_time_ms,
            "movementTimeMs": self.movement_time_ms,
            "interTapMs": self.inter_tap_ms,
        }


@dataclass(frozen=True)
class Spatial:
    error_dist_norm: Optional[float] = None
    path_length_norm: Optional[float] = None
    direct_dist_norm: Optional[float] = None
    straightness: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errorDistNorm": self.error_dist_norm,
            "pathLengthNorm": self.path_length_norm,
            "directDistNorm": self.direct_dist_norm,
            "straightness": self.straightness,
        }


@dataclass(frozen=True)
class Kinematics:
    mean_speed: Optional[float] = None
    peak_speed: Optional[float] = None
    speed_var: Optional[float] = None
    mean_accel: Optional[float] = None
    peak_accel: Optional[float] = None
    jerk_rms: Optional[float] = None
    submovement_count: Optional[int] = None
    overshoot_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meanSpeed": self.mean_speed,
            "peakSpeed": self.peak_speed,
            "speedVar": self.speed_var,
            "meanAccel": self.mean_accel,
            "peakAccel": self.peak_accel,
            "jerkRMS": self.jerk_rms,
            "submovementCount": self.submovement_count,
            "overshootCount": self.overshoot_count,
        }


@dataclass(frozen=True)
class Fitts:
    D: Optional[float] = None
    W: Optional[float] = None
    ID: Optional[float] = None
    throughput: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"D": self.D, "W": self.W, "ID": self.ID, "throughput": self.throughput}


@dataclass(frozen=True)
class FeatureSet:
    timing: Timing = Timing()
    spatial: Spatial = Spatial()
    kinematics: Kinematics = Kinematics()
    fitts: Fitts = Fitts()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timing": self.timing.to_dict(),
            "spatial": self.spatial.to_dict(),
            "kinematics": self.kinematics.to_dict(),
            "fitts": self.fitts.to_dict(),
        }


@dataclass(frozen=True)
class FullFeatures:
    """Extractor ran on the pointer trace."""
    features: FeatureSet
    source: str = "full"


@dataclass(frozen=True)
class BasicFeatures:
    """Fallback: no trace, no click, or the extractor failed."""
    features: FeatureSet
    source: str = "basic"


@dataclass(frozen=True)
class Label:
    level: str = "unknown"
    score: Optional[float] = None
    source: str = "none"
    version: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Any, config: LabelConfig = LabelConfig()) -> "Label":
        if not isinstance(raw, dict) or not raw.get("level"):
            raise InvalidRecordError("label_level_required")
        level = str(raw["level"])
        if level not in config.levels:
            raise InvalidRecordError(f"unknown_label_level:{level}")
        source = str(raw.get("source") or config.default_source)
        if source not in config.sources:
            raise InvalidRecordError(f"unknown_label_source:{source}")
        version = raw.get("version")
        if version is not None:
            version = _as_int(version, "label_version")
        return cls(
            level=level,
            score=_as_optional_float(raw.get("score"), "label_score"),
            source=source,
            version=version,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "score": self.score,
            "source": self.source,
            "version": self.version,
        }
