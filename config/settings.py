from dataclasses import dataclass


@dataclass(frozen=True)
class ExtractionConfig:
    min_segment_samples: int = 4
    movement_epsilon: float = 0.003      # ~0.3% of the short screen side
    smoothing_window: int = 5
    submovement_peak_ratio: float = 0.15
    overshoot_gate_radii: float = 4.0
    reversal_delta: float = 0.001
    final_phase_start: float = 0.7       # tail = last 30% of the moving segment
    final_phase_min_samples: int = 5
    oscillation_min_samples: int = 4
    oscillation_step: float = 0.002
    min_movement_time_sec: float = 0.05


@dataclass(frozen=True)
class StoreConfig:
    trace_bucket_capacity: int = 5000
    attempt_bucket_capacity: int = 2000
    raw_retention_days: int = 90


@dataclass(frozen=True)
class LabelConfig:
    levels: tuple = ("normal", "mild", "moderate", "severe", "unknown")
    sources: tuple = ("self_report", "percentile", "clinician", "hybrid", "none")
    default_level: str = "unknown"
    default_source: str = "none"
