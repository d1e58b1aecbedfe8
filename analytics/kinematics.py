"""
Per-attempt motor features from the pointer trace.

One attempt is the window between bubble spawn and click. Inside it we find
where the pointer actually starts moving, then derive timing, path geometry,
the velocity -> acceleration -> jerk chain, corrective submovements,
overshoots and Fitts' law throughput. Coordinates are normalized (0..1),
time is in ms on input and seconds for derivatives.

Everything here is pure: no I/O, no logging, and a value that cannot be
computed (zero radius, zero path, empty derivative) comes back as None.
"""
from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from config.settings import ExtractionConfig
from data.models import FeatureSet, Fitts, Kinematics, PointerSample, Spatial, Target, Timing

DEFAULT_CONFIG = ExtractionConfig()


def _dist(ax: float, ay: float, bx: float, by: float) -> float:
    return math.hypot(ax - bx, ay - by)


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def moving_average(values: Sequence[float], window: int = 5) -> List[float]:
    """Centered moving average, truncated at the edges."""
    if len(values) < window:
        return list(values)
    half = window // 2
    out = []
    for i in range(len(values)):
        lo = max(0, i - half)
        hi = min(len(values), i + half + 1)
        chunk = values[lo:hi]
        out.append(sum(chunk) / len(chunk))
    return out


def differentiate(
    times: Sequence[float],
    xs: Sequence[float],
    ys: Sequence[float],
) -> Tuple[List[float], List[float], List[float], List[float]]:
    """
    Finite differences of a 2-D series over time (seconds).

    Steps with non-positive dt are skipped. Each derived value is stamped with
    the later sample's time so the result can be differentiated again.
    Returns (times, dx/dt, dy/dt, magnitude).
    """
    out_t: List[float] = []
    out_x: List[float] = []
    out_y: List[float] = []
    out_mag: List[float] = []
    for i in range(1, len(times)):
        dt = times[i] - times[i - 1]
        if dt <= 0:
            continue
        vx = (xs[i] - xs[i - 1]) / dt
        vy = (ys[i] - ys[i - 1]) / dt
        out_t.append(times[i])
        out_x.append(vx)
        out_y.append(vy)
        out_mag.append(math.hypot(vx, vy))
    return out_t, out_x, out_y, out_mag


def find_movement_start(segment: Sequence[PointerSample], epsilon: float) -> int:
    x0, y0 = segment[0].x, segment[0].y
    for i in range(1, len(segment)):
        if _dist(segment[i].x, segment[i].y, x0, y0) > epsilon:
            return i - 1
    return 0


def count_submovements(speed: Sequence[float], peak_speed: Optional[float], config: ExtractionConfig) -> int:
    if peak_speed is None:
        return 0
    threshold = config.submovement_peak_ratio * peak_speed
    smoothed = moving_average(speed, config.smoothing_window)
    count = 0
    for i in range(1, len(smoothed) - 1):
        if smoothed[i - 1] < smoothed[i] > smoothed[i + 1] and smoothed[i] >= threshold:
            count += 1
    return count


def _count_reversals(d: Sequence[float], delta: float, gate: Optional[float] = None) -> int:
    count = 0
    for i in range(2, len(d)):
        dd_prev = d[i - 1] - d[i - 2]
        dd = d[i] - d[i - 1]
        if dd_prev < -delta and dd > delta and (gate is None or d[i] < gate):
            count += 1
    return count


def _reverses(prev_step: float, step: float, threshold: float) -> bool:
    return (prev_step > threshold and step < -threshold) or (prev_step < -threshold and step > threshold)


def count_overshoots(moving: Sequence[PointerSample], target: Target, config: ExtractionConfig) -> int:
    """
    Max over three detectors: gated distance reversals over the whole
    movement, ungated reversals in the final approach, and x/y oscillation
    near the target.
    """
    d = [_dist(s.x, s.y, target.x, target.y) for s in moving]
    gate = config.overshoot_gate_radii * target.radius

    global_reversals = _count_reversals(d, config.reversal_delta, gate)

    final_reversals = 0
    if len(moving) > config.final_phase_min_samples:
        start = int(math.floor(len(moving) * config.final_phase_start))
        final_reversals = _count_reversals(d[start:], config.reversal_delta)

    oscillations = 0
    if len(moving) > config.oscillation_min_samples:
        step = config.oscillation_step
        for i in range(3, len(moving)):
            if d[i] >= gate:
                continue
            x_rev = _reverses(moving[i - 1].x - moving[i - 2].x, moving[i].x - moving[i - 1].x, step)
            y_rev = _reverses(moving[i - 1].y - moving[i - 2].y, moving[i].y - moving[i - 1].y, step)
            if x_rev or y_rev:
                oscillations += 1

    return max(global_reversals, final_reversals, oscillations)


def fitts_metrics(direct_dist: float, target: Target, movement_time_ms: float, config: ExtractionConfig) -> Fitts:
    width = 2 * target.radius
    index = math.log2(direct_dist / width + 1) if width > 0 else None
    mt_sec = max(movement_time_ms / 1000.0, config.min_movement_time_sec)
    throughput = index / mt_sec if index is not None else None
    return Fitts(D=direct_dist, W=width, ID=index, throughput=throughput)


def extract_attempt_features(
    samples: Sequence[PointerSample],
    spawn_t_ms: float,
    click_t_ms: float,
    target: Target,
    prev_click_t_ms: Optional[float] = None,
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> FeatureSet:
    reaction_time_ms = click_t_ms - spawn_t_ms
    inter_tap_ms = click_t_ms - prev_click_t_ms if prev_click_t_ms is not None else None

    segment = [s for s in samples if spawn_t_ms <= s.t_ms <= click_t_ms]
    if len(segment) < config.min_segment_samples:
        return FeatureSet(timing=Timing(reaction_time_ms=reaction_time_ms, inter_tap_ms=inter_tap_ms))

    moving = segment[find_movement_start(segment, config.movement_epsilon):]
    first, last = moving[0], moving[-1]
    movement_time_ms = last.t_ms - first.t_ms

    path_length = sum(
        _dist(moving[i].x, moving[i].y, moving[i - 1].x, moving[i - 1].y) for i in range(1, len(moving))
    )
    direct_dist = _dist(first.x, first.y, target.x, target.y)
    spatial = Spatial(
        error_dist_norm=_dist(last.x, last.y, target.x, target.y) / target.radius if target.radius > 0 else None,
        path_length_norm=path_length,
        direct_dist_norm=direct_dist,
        straightness=direct_dist / path_length if path_length > 0 else None,
    )

    t_sec = [s.t_ms / 1000.0 for s in moving]
    vel_t, vx, vy, speed = differentiate(t_sec, [s.x for s in moving], [s.y for s in moving])
    acc_t, ax, ay, accel = differentiate(vel_t, vx, vy)
    _, _, _, jerk = differentiate(acc_t, ax, ay)

    mean_speed = _mean(speed)
    peak_speed = max(speed) if speed else None
    speed_var = _mean([(v - mean_speed) ** 2 for v in speed]) if speed else None
    jerk_sq = _mean([j * j for j in jerk])

    kinematics = Kinematics(
        mean_speed=mean_speed,
        peak_speed=peak_speed,
        speed_var=speed_var,
        mean_accel=_mean(accel),
        peak_accel=max(accel) if accel else None,
        jerk_rms=math.sqrt(jerk_sq) if jerk_sq is not None else None,
        submovement_count=count_submovements(speed, peak_speed, config),
        overshoot_count=count_overshoots(moving, target, config),
    )

    return FeatureSet(
        timing=Timing(
            reaction_time_ms=reaction_time_ms,
            movement_time_ms=movement_time_ms,
            inter_tap_ms=inter_tap_ms,
        ),
        spatial=spatial,
        kinematics=kinematics,
        fitts=fitts_metrics(direct_dist, target, movement_time_ms, config),
    )
