"""
amount_scorer.py
----------------
Señal de monto: compara el monto contra el promedio histórico del
usuario y contra el límite absoluto configurado (HIGH_AMOUNT_LIMIT).
"""

from typing import Optional

from guardian.core.config import settings
from guardian.domain.schemas import TransactionRequest
from guardian.services.feature_extractor import FeatureRecord
from guardian.services.signal_provider import SignalEvaluation, SignalProvider

PENALTY_AMOUNT_10X_AVERAGE = 0.70
PENALTY_AMOUNT_3X_AVERAGE  = 0.40
PENALTY_ABOVE_LIMIT        = 0.30

AMOUNT_RATIO_HIGH   = 10.0
AMOUNT_RATIO_MEDIUM = 3.0


class AmountScorer(SignalProvider):

    name = "amount"

    def __init__(
        self,
        timeout: Optional[float] = None,
        high_amount_limit: Optional[float] = None,
    ):
        super().__init__(timeout)
        self.high_amount_limit = (
            high_amount_limit
            if high_amount_limit is not None
            else settings.HIGH_AMOUNT_LIMIT
        )

    async def evaluate(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> SignalEvaluation:
        result = SignalEvaluation()

        ratio = features.get("amount_ratio", 1.0)
        if ratio > AMOUNT_RATIO_HIGH:
            result.add(PENALTY_AMOUNT_10X_AVERAGE, "AMOUNT_OVER_10X_AVERAGE")
        elif ratio > AMOUNT_RATIO_MEDIUM:
            result.add(PENALTY_AMOUNT_3X_AVERAGE, "AMOUNT_OVER_3X_AVERAGE")

        if features["amount"] >= self.high_amount_limit:
            result.add(PENALTY_ABOVE_LIMIT, "AMOUNT_ABOVE_LIMIT")

        result.metadata["amount_ratio"] = round(ratio, 4)
        return result
