import pytest

from analytics.metrics import attempt_stats, median, round_counts, std, summarize_round, summarize_session
from tests.fixtures import enriched_attempt


def _round(n_hits, n_misses, round_no=1, throughput=2.0):
    hits = [
        enriched_attempt(round_no=round_no, hit=True, reaction_time_ms=400.0 + 10 * i, throughput=throughput)
        for i in range(n_hits)
    ]
    misses = [enriched_attempt(round_no=round_no, hit=False, reaction_time_ms=900.0) for _ in range(n_misses)]
    return hits + misses


class TestStats:
    def test_std_is_population(self):
        assert std([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]) == pytest.approx(2.0)

    def test_std_needs_two_values(self):
        assert std([]) is None
        assert std([3.0]) is None

    def test_median(self):
        assert median([]) is None
        assert median([3.0, 1.0, 2.0]) == 2.0
        assert median([4.0, 1.0, 3.0, 2.0]) == 2.5


class TestRoundFeatures:
    def test_empty_round_is_none(self):
        assert summarize_round([]) is None

    def test_counts(self):
        features = summarize_round(_round(6, 4))
        assert round_counts(features) == {"nTargets": 10, "nHits": 6, "nMisses": 4, "hitRate": 0.6}

    def test_timing_over_all_attempts(self):
        attempts = [
            enriched_attempt(hit=True, reaction_time_ms=200.0),
            enriched_attempt(hit=False, reaction_time_ms=600.0),
        ]
        features = summarize_round(attempts)
        assert features["reactionTime_mean"] == 400.0
        assert features["reactionTime_std"] == 200.0
        assert features["reactionTime_median"] == 400.0
        assert features["movementTime_mean"] is None

    def test_spatial_over_hits_only(self):
        attempts = [
            enriched_attempt(hit=True, error_dist=0.2),
            enriched_attempt(hit=True, error_dist=0.4),
            enriched_attempt(hit=False, error_dist=5.0),
        ]
        features = summarize_round(attempts)
        assert features["errorDist_mean"] == pytest.approx(0.3)
        assert features["errorDist_std"] == pytest.approx(0.1)

    def test_single_value_has_no_std(self):
        features = summarize_round([enriched_attempt(hit=True, throughput=3.0)])
        assert features["throughput_mean"] == 3.0
        assert features["throughput_std"] is None

    def test_all_misses(self):
        features = summarize_round(_round(0, 3))
        assert features["hitRate"] == 0
        assert features["throughput_mean"] is None
        assert features["reactionTime_mean"] == 900.0

    def test_recompute_is_stable(self):
        attempts = _round(6, 4)
        assert summarize_round(attempts) == summarize_round(attempts)


class TestSessionFeatures:
    def test_missing_middle_round(self):
        per_round = {
            1: summarize_round(_round(5, 5, round_no=1, throughput=2.0)),
            2: None,
            3: summarize_round(_round(8, 2, round_no=3, throughput=3.5)),
        }
        session = summarize_session(per_round)
        assert session["hitRate_trend"] == pytest.approx(0.3)
        assert session["throughput_trend"] == pytest.approx(1.5)
        assert session["r1_nAttempts"] == 10
        assert not any(k.startswith("r2_") for k in session)

    def test_single_round_has_no_trend(self):
        session = summarize_session({1: summarize_round(_round(2, 1)), 2: None, 3: None})
        assert "hitRate_trend" not in session
        assert "throughput_trend" not in session
        assert session["r1_hitRate"] == pytest.approx(2 / 3)

    def test_no_rounds(self):
        assert summarize_session({1: None, 2: None, 3: None}) == {}


class TestAttemptStats:
    def test_per_round_breakdown(self):
        attempts = _round(2, 2, round_no=1) + _round(1, 0, round_no=3, throughput=4.0)
        stats = attempt_stats(attempts)
        assert stats["total"] == 5
        r1 = stats["rounds"]["1"]
        assert r1["totalAttempts"] == 4
        assert r1["hitRate"] == 0.5
        assert r1["avgThroughput"] == 2.0
        assert stats["rounds"]["2"]["totalAttempts"] == 0
        assert stats["rounds"]["2"]["avgReactionTime"] is None
        assert stats["rounds"]["3"]["avgThroughput"] == 4.0
