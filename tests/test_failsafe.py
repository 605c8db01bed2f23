import time

import pytest

from guardian.core.exceptions import OrchestratorDeadlineExceeded
from guardian.domain.schemas import RiskAction, RiskLevel
from guardian.services.failsafe import FailsafeController, FailsafeState, RequestGuard
from guardian.services.risk_scorer import CompositeRiskScorer


@pytest.fixture
def controller():
    scorer = CompositeRiskScorer(medium_threshold=0.40, critical_threshold=0.70)
    return FailsafeController(scorer, deadline_s=0.2, budget_s=0.05)


def test_guard_starts_normal(controller):
    guard = controller.start()
    assert guard.state is FailsafeState.NORMAL
    assert not guard.tripped
    assert guard.reason is None
    assert 0 < guard.remaining_s <= 0.2


def test_trip_is_one_way_and_keeps_first_reason():
    guard = RequestGuard(deadline_s=0.2)
    guard.trip("deadline_exceeded")
    guard.trip("unexpected_error:KeyError")

    assert guard.tripped
    assert guard.reason == "deadline_exceeded"


def test_check_deadline_raises_when_exceeded():
    guard = RequestGuard(deadline_s=0.01, started_at=time.perf_counter() - 1.0)
    with pytest.raises(OrchestratorDeadlineExceeded) as exc_info:
        guard.check_deadline()
    assert exc_info.value.elapsed_ms > exc_info.value.deadline_ms
    assert guard.remaining_s == 0.0


def test_fallback_without_results_is_review(controller):
    guard = controller.start()
    guard.trip("deadline_exceeded")

    decision = controller.fallback(guard)

    assert decision.level == RiskLevel.MEDIUM
    assert decision.action == RiskAction.REVIEW
    assert decision.score == pytest.approx(0.40)


def test_fallback_never_allows_even_with_low_partials(controller, make_results):
    guard    = controller.start()
    decision = controller.fallback(guard, make_results(anomaly=0.0, behavior=0.0))

    assert decision.action != RiskAction.ALLOW
    assert guard.tripped


def test_fallback_keeps_critical_partials(controller, make_results):
    guard   = controller.start()
    results = make_results(
        anomaly=1.0, behavior=1.0, amount=1.0,
        merchant=1.0, biometric=1.0, network=1.0,
    )
    decision = controller.fallback(guard, results)

    assert decision.level == RiskLevel.CRITICAL
    assert decision.action == RiskAction.BLOCK
    assert decision.score == pytest.approx(1.0)


def test_fallback_runs_within_budget(controller):
    guard   = controller.start()
    started = time.perf_counter()
    controller.fallback(guard)
    assert (time.perf_counter() - started) < controller.budget_s
