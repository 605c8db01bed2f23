import pytest

from guardian.domain.schemas import RiskAction, RiskLevel
from guardian.services.risk_scorer import DEFAULT_WEIGHTS, CompositeRiskScorer


@pytest.fixture
def scorer():
    return CompositeRiskScorer(medium_threshold=0.40, critical_threshold=0.70)


def test_weighted_sum_with_literal_inputs(scorer, make_results):
    results = make_results(
        anomaly=0.1, behavior=0.2, amount=0.05,
        merchant=0.0, biometric=0.0, network=0.0,
    )
    decision = scorer.compute(results)

    assert decision.score == pytest.approx(0.0775)
    assert decision.level == RiskLevel.LOW
    assert decision.action == RiskAction.ALLOW


def test_all_signals_at_one_is_critical(scorer, make_results):
    decision = scorer.compute(make_results(**{name: 1.0 for name in DEFAULT_WEIGHTS}))
    assert decision.score == pytest.approx(1.0)
    assert decision.action == RiskAction.BLOCK


def test_missing_signal_contributes_zero(scorer, make_results):
    decision = scorer.compute(make_results(anomaly=1.0))
    assert decision.score == pytest.approx(0.30)
    assert decision.level == RiskLevel.LOW


def test_unknown_signal_is_ignored(scorer, make_results):
    decision = scorer.compute(make_results(anomaly=0.5, graph=1.0))
    assert decision.score == pytest.approx(0.15)


def test_score_exactly_at_medium_threshold_is_medium(scorer):
    assert scorer.level_for(0.40) == RiskLevel.MEDIUM
    assert scorer.level_for(0.399999) == RiskLevel.LOW


def test_score_exactly_at_critical_threshold_is_critical(scorer):
    assert scorer.level_for(0.70) == RiskLevel.CRITICAL
    assert scorer.level_for(0.699999) == RiskLevel.MEDIUM


def test_threshold_hit_through_weights(make_results):
    scorer   = CompositeRiskScorer(
        weights={"a": 0.5, "b": 0.5}, medium_threshold=0.4, critical_threshold=0.7,
    )
    decision = scorer.compute(make_results(a=0.4, b=0.4))
    assert decision.level == RiskLevel.MEDIUM
    assert decision.action == RiskAction.REVIEW


def test_arrival_order_does_not_change_score(scorer, make_results):
    forward  = make_results(anomaly=0.33, behavior=0.71, network=0.12)
    backward = dict(reversed(list(forward.items())))
    assert scorer.compute(forward) == scorer.compute(backward)


@pytest.mark.parametrize("weights", [
    {"a": 0.5, "b": 0.4},
    {"a": 1.2, "b": -0.2},
])
def test_invalid_weights_rejected(weights):
    with pytest.raises(ValueError):
        CompositeRiskScorer(weights=weights, medium_threshold=0.4, critical_threshold=0.7)


def test_invalid_thresholds_rejected():
    with pytest.raises(ValueError):
        CompositeRiskScorer(medium_threshold=0.8, critical_threshold=0.7)
