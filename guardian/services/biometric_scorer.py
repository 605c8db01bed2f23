"""
biometric_scorer.py
-------------------
Señal biométrica conductual. No clasifica biometría por sí misma: usa
el liveness_score que entrega el SDK y compara la velocidad de tecleo
contra la línea base del usuario.

Sin muestra biométrica la señal es neutra (0.0). No penalizamos a
clientes que no envían muestra, como los de canal API o POS.
"""

from guardian.domain.schemas import TransactionRequest
from guardian.services.feature_extractor import FeatureRecord
from guardian.services.signal_provider import SignalEvaluation, SignalProvider

PENALTY_LIVENESS_FAILED    = 0.80   # liveness < 0.3
PENALTY_LIVENESS_WEAK      = 0.40   # liveness < 0.6
PENALTY_TYPING_FAR         = 0.30   # desviación de tecleo > 100%
PENALTY_TYPING_DRIFT       = 0.15   # desviación de tecleo > 50%

LIVENESS_FAILED = 0.3
LIVENESS_WEAK   = 0.6


class BiometricScorer(SignalProvider):

    name = "biometric"

    async def evaluate(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> SignalEvaluation:
        result = SignalEvaluation()

        if not features.flag("has_biometric"):
            result.reason_codes.append("BIOMETRIC_SAMPLE_ABSENT")
            result.metadata["skipped"] = True
            return result

        liveness = features.get("liveness_score", 1.0)
        if liveness < LIVENESS_FAILED:
            result.add(PENALTY_LIVENESS_FAILED, "LIVENESS_FAILED")
        elif liveness < LIVENESS_WEAK:
            result.add(PENALTY_LIVENESS_WEAK, "LIVENESS_WEAK")

        deviation = features.get("typing_deviation")
        if deviation > 1.0:
            result.add(PENALTY_TYPING_FAR, "TYPING_CADENCE_MISMATCH")
        elif deviation > 0.5:
            result.add(PENALTY_TYPING_DRIFT, "TYPING_CADENCE_DRIFT")

        return result
