"""
failsafe.py
-----------
Controlador failsafe del análisis de riesgo.

Máquina de estados por request (cada request arranca en NORMAL):

  NORMAL ──(deadline global superado | excepción inesperada)──► FAILSAFE

  - No hay transición de vuelta a NORMAL dentro del mismo request.
  - En FAILSAFE se sintetiza una decisión conservadora: nivel MEDIUM o
    superior, acción REVIEW (o BLOCK si las señales ya resueltas daban
    CRITICAL). Nunca ALLOW.
  - El camino failsafe es síncrono y sin I/O; debe completar dentro de
    FAILSAFE_BUDGET_MS. Si no lo hace, se loguea como error.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from guardian.core.config import settings
from guardian.core.exceptions import OrchestratorDeadlineExceeded
from guardian.domain.schemas import RiskDecision, RiskLevel, SignalResult
from guardian.services.risk_scorer import ACTION_BY_LEVEL, CompositeRiskScorer

logger = logging.getLogger(__name__)


class FailsafeState(str, Enum):
    NORMAL   = "NORMAL"
    FAILSAFE = "FAILSAFE"


@dataclass
class RequestGuard:
    """Estado failsafe de UN request. No se comparte entre requests."""
    deadline_s: float
    started_at: float          = field(default_factory=time.perf_counter)
    state:      FailsafeState  = FailsafeState.NORMAL
    reason:     Optional[str]  = None

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000

    @property
    def remaining_s(self) -> float:
        return max(0.0, self.deadline_s - self.elapsed_ms / 1000)

    @property
    def tripped(self) -> bool:
        return self.state is FailsafeState.FAILSAFE

    def check_deadline(self) -> None:
        elapsed = self.elapsed_ms
        if elapsed > self.deadline_s * 1000:
            raise OrchestratorDeadlineExceeded(elapsed, self.deadline_s * 1000)

    def trip(self, reason: str) -> None:
        # Solo la primera causa queda registrada
        if self.state is FailsafeState.NORMAL:
            self.state  = FailsafeState.FAILSAFE
            self.reason = reason


class FailsafeController:

    def __init__(
        self,
        scorer: CompositeRiskScorer,
        deadline_s: Optional[float] = None,
        budget_s: Optional[float] = None,
    ):
        self.scorer = scorer
        self.deadline_s = (
            deadline_s if deadline_s is not None else settings.RISK_DEADLINE_MS / 1000
        )
        self.budget_s = (
            budget_s if budget_s is not None else settings.FAILSAFE_BUDGET_MS / 1000
        )

    def start(self) -> RequestGuard:
        return RequestGuard(deadline_s=self.deadline_s)

    def fallback(
        self,
        guard: RequestGuard,
        partial_results: Optional[Mapping[str, SignalResult]] = None,
    ) -> RiskDecision:
        """
        Decisión conservadora para un request en estado FAILSAFE.

        Si el dispatcher alcanzó a resolver las señales se usan como piso:
        una evaluación ya CRITICAL no se degrada a REVIEW.
        """
        started = time.perf_counter()
        guard.trip(guard.reason or "unexpected")

        level = RiskLevel.MEDIUM
        score = self.scorer.medium_threshold

        if partial_results:
            try:
                partial = self.scorer.compute(partial_results)
                if partial.level is RiskLevel.CRITICAL:
                    level = RiskLevel.CRITICAL
                score = max(score, partial.score)
            except Exception as e:
                logger.error(f"[Failsafe] Resultados parciales inutilizables: {e}")

        decision = RiskDecision(score=score, level=level, action=ACTION_BY_LEVEL[level])

        spent_ms = (time.perf_counter() - started) * 1000
        if spent_ms > self.budget_s * 1000:
            logger.error(
                f"[Failsafe] Camino failsafe tardó {spent_ms:.2f}ms "
                f"(presupuesto {self.budget_s * 1000:.0f}ms)"
            )

        logger.warning(
            f"[Failsafe] Activado — reason={guard.reason}  "
            f"elapsed={guard.elapsed_ms:.1f}ms  action={decision.action.value}"
        )
        return decision
