"""
behavior_scorer.py
------------------
Señal conductual: cambios en los hábitos del usuario que suelen
acompañar a un account takeover.

Factores analizados:
  1. Dispositivo nunca visto          → posible sesión robada
  2. Receptor nuevo                   → primer pago a esta persona
  3. Cambio de moneda habitual        → posible fraude cross-border
  4. Cuenta en su primera semana      → período de mayor riesgo estadístico

Usuarios sin historial no acumulan penalizaciones de patrón: no hay
línea base contra la cual comparar y solo generaríamos falsos positivos.
"""

from guardian.domain.schemas import TransactionRequest
from guardian.services.feature_extractor import FeatureRecord
from guardian.services.signal_provider import SignalEvaluation, SignalProvider

PENALTY_NEW_DEVICE        = 0.35
PENALTY_NEW_RECEIVER      = 0.20
PENALTY_CURRENCY_CHANGE   = 0.20
PENALTY_FIRST_WEEK_USER   = 0.25

FIRST_WEEK_DAYS = 7


class BehaviorScorer(SignalProvider):

    name = "behavior"

    async def evaluate(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> SignalEvaluation:
        result = SignalEvaluation()

        if features.get("tx_count") == 0:
            result.reason_codes.append("LEARNING_PERIOD_ACTIVE")
            return result

        if features.flag("is_new_device"):
            result.add(PENALTY_NEW_DEVICE, "NEW_DEVICE_FOR_USER")

        if features.flag("is_new_receiver"):
            result.add(PENALTY_NEW_RECEIVER, "NEW_RECEIVER_FIRST_TX")

        if features.flag("currency_mismatch"):
            result.add(PENALTY_CURRENCY_CHANGE, f"CURRENCY_CHANGE_TO_{request.currency}")

        age = int(features.get("account_age_days"))
        if age < FIRST_WEEK_DAYS:
            result.add(PENALTY_FIRST_WEEK_USER, f"FIRST_WEEK_USER_DAY_{age}")

        return result
