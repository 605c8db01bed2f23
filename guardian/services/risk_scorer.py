"""
risk_scorer.py
--------------
Combina los SignalResult en un score compuesto y una decisión.

Fórmula: Risk = Σ Wi · Si   (pesos fijos, suman exactamente 1.0)

  anomaly   = 0.30  : desviación estadística del historial
  behavior  = 0.20  : dispositivo, receptor, moneda, antigüedad
  amount    = 0.15  : monto vs promedio y límite absoluto
  merchant  = 0.10  : categoría de comercio y canal
  biometric = 0.15  : liveness y cadencia de tecleo
  network   = 0.10  : anonimizadores y país de la IP

Umbrales (configurables vía settings):
  score <  MEDIUM_THRESHOLD                      → LOW      → ALLOW
  MEDIUM_THRESHOLD <= score < CRITICAL_THRESHOLD → MEDIUM   → REVIEW
  score >= CRITICAL_THRESHOLD                    → CRITICAL → BLOCK

Un score exactamente en el umbral cae en el bucket de MAYOR riesgo.
Determinista: sin aleatoriedad, score redondeado a 6 decimales.
"""

import logging
import math
from typing import Mapping, Optional

from guardian.core.config import settings
from guardian.domain.schemas import RiskAction, RiskDecision, RiskLevel, SignalResult

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: dict[str, float] = {
    "anomaly":   0.30,
    "behavior":  0.20,
    "amount":    0.15,
    "merchant":  0.10,
    "biometric": 0.15,
    "network":   0.10,
}

ACTION_BY_LEVEL: dict[RiskLevel, RiskAction] = {
    RiskLevel.LOW:      RiskAction.ALLOW,
    RiskLevel.MEDIUM:   RiskAction.REVIEW,
    RiskLevel.CRITICAL: RiskAction.BLOCK,
}


class CompositeRiskScorer:

    def __init__(
        self,
        weights: Optional[Mapping[str, float]] = None,
        medium_threshold: Optional[float] = None,
        critical_threshold: Optional[float] = None,
    ):
        self.weights = dict(weights if weights is not None else DEFAULT_WEIGHTS)
        total = sum(self.weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Los pesos deben sumar 1.0 (suman {total})")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError("Los pesos no pueden ser negativos")

        self.medium_threshold = (
            medium_threshold if medium_threshold is not None
            else settings.MEDIUM_THRESHOLD
        )
        self.critical_threshold = (
            critical_threshold if critical_threshold is not None
            else settings.CRITICAL_THRESHOLD
        )
        if not 0.0 < self.medium_threshold < self.critical_threshold <= 1.0:
            raise ValueError("Se requiere 0 < medium < critical <= 1")

    def compute(self, signal_results: Mapping[str, SignalResult]) -> RiskDecision:
        # Se itera sobre los pesos (orden fijo), no sobre los resultados:
        # el orden de llegada nunca afecta la suma
        score = 0.0
        for name, weight in self.weights.items():
            result = signal_results.get(name)
            if result is not None:
                score += weight * result.score

        score = round(max(0.0, min(1.0, score)), 6)
        level = self.level_for(score)

        logger.debug(f"[RiskScorer] score={score}  level={level.value}")
        return RiskDecision(score=score, level=level, action=ACTION_BY_LEVEL[level])

    def level_for(self, score: float) -> RiskLevel:
        if score >= self.critical_threshold:
            return RiskLevel.CRITICAL
        if score >= self.medium_threshold:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW
