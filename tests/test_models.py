import pytest

from data.models import Attempt, InvalidRecordError, Label, PointerSample, Target
from tests.fixtures import attempt_payload


class TestPointerSample:
    def test_aliases_and_defaults(self):
        sample = PointerSample.from_dict({"round": 2, "tms": 12, "x": 0.5, "y": 0.25, "pointerType": "stylus"})
        assert sample.t_ms == 12.0
        assert sample.is_down is False
        assert sample.pointer_type == "unknown"

    @pytest.mark.parametrize(
        "raw",
        [
            {"round": 0, "t_ms": 1, "x": 0, "y": 0},
            {"round": "1", "t_ms": 1, "x": 0, "y": 0},
            {"round": 1, "t_ms": float("nan"), "x": 0, "y": 0},
            {"round": 1, "t_ms": 1, "x": True, "y": 0},
            {"round": float("inf"), "t_ms": 1, "x": 0, "y": 0},
            {"round": float("nan"), "t_ms": 1, "x": 0, "y": 0},
            {"round": 1.5, "t_ms": 1, "x": 0, "y": 0},
            "not-a-dict",
        ],
    )
    def test_rejects(self, raw):
        with pytest.raises(InvalidRecordError):
            PointerSample.from_dict(raw)

    def test_round_accepts_integral_float(self):
        sample = PointerSample.from_dict({"round": 2.0, "t_ms": 1, "x": 0, "y": 0})
        assert sample.round == 2


class TestAttempt:
    def test_round_trip_fields(self):
        raw = attempt_payload("a-9", round_no=3, spawnTms=5.0, ttlMs=1500, column=1)
        del raw["spawn_t_ms"]
        attempt = Attempt.from_dict(raw)
        assert attempt.spawn_t_ms == 5.0
        out = attempt.to_dict()
        assert out["ttlMs"] == 1500.0
        assert out["column"] == 1
        assert "despawn_t_ms" not in out

    def test_requires_ids(self):
        raw = attempt_payload()
        raw["attemptId"] = ""
        with pytest.raises(InvalidRecordError, match="attempt_id_required"):
            Attempt.from_dict(raw)

    @pytest.mark.parametrize("column", [float("inf"), float("-inf"), float("nan"), 1.5, "2"])
    def test_rejects_bad_column(self, column):
        with pytest.raises(InvalidRecordError, match="column_must_be"):
            Attempt.from_dict(attempt_payload(column=column))

    def test_integral_float_column(self):
        assert Attempt.from_dict(attempt_payload(column=3.0)).column == 3

    def test_negative_radius(self):
        with pytest.raises(InvalidRecordError):
            Target.from_dict({"x": 0, "y": 0, "radius": -0.1})


class TestLabel:
    def test_defaults(self):
        label = Label.from_dict({"level": "mild"})
        assert label.source == "none"
        assert label.score is None

    def test_unknown_source(self):
        with pytest.raises(InvalidRecordError, match="unknown_label_source"):
            Label.from_dict({"level": "mild", "source": "oracle"})

    @pytest.mark.parametrize("version", [float("inf"), float("nan"), 2.5, True])
    def test_rejects_bad_version(self, version):
        with pytest.raises(InvalidRecordError, match="label_version_must_be"):
            Label.from_dict({"level": "mild", "version": version})

    def test_level_required(self):
        with pytest.raises(InvalidRecordError):
            Label.from_dict({"score": 0.2})
