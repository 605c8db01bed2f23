"""
anomaly_detector.py
-------------------
Señal de anomalía estadística: qué tan lejos está esta transacción del
comportamiento histórico del usuario.

Factores:
  1. Z-score del monto contra media/desviación del perfil
  2. Hora fuera del horario habitual
  3. Transacciones en ráfaga (< 60s desde la anterior)
  4. Dispositivo emulado o rooteado
"""

from guardian.domain.schemas import TransactionRequest
from guardian.services.feature_extractor import FeatureRecord
from guardian.services.signal_provider import SignalEvaluation, SignalProvider

PENALTY_ZSCORE_EXTREME = 0.60   # |z| >= 4
PENALTY_ZSCORE_HIGH    = 0.35   # |z| >= 2.5
PENALTY_UNUSUAL_HOUR   = 0.25
PENALTY_RAPID_TX       = 0.25
PENALTY_EMULATOR       = 0.50
PENALTY_ROOTED         = 0.20

ZSCORE_EXTREME      = 4.0
ZSCORE_HIGH         = 2.5
RAPID_TX_SECONDS    = 60.0


class AnomalyDetector(SignalProvider):

    name = "anomaly"

    async def evaluate(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> SignalEvaluation:
        result = SignalEvaluation()

        z = abs(features.get("amount_zscore"))
        if z >= ZSCORE_EXTREME:
            result.add(PENALTY_ZSCORE_EXTREME, "AMOUNT_ZSCORE_EXTREME")
        elif z >= ZSCORE_HIGH:
            result.add(PENALTY_ZSCORE_HIGH, "AMOUNT_ZSCORE_HIGH")

        if features.flag("is_unusual_hour"):
            result.add(PENALTY_UNUSUAL_HOUR, f"UNUSUAL_HOUR_{int(features['hour'])}H")

        if features.get("seconds_since_last_tx") < RAPID_TX_SECONDS:
            result.add(PENALTY_RAPID_TX, "RAPID_SUCCESSIVE_TX")

        if features.flag("is_emulator"):
            result.add(PENALTY_EMULATOR, "EMULATOR_DETECTED")
        elif features.flag("is_rooted"):
            result.add(PENALTY_ROOTED, "ROOTED_DEVICE")

        result.metadata["amount_zscore"] = round(features.get("amount_zscore"), 4)
        return result
