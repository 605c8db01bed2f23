"""
merchant_scorer.py
------------------
Señal del comercio/receptor: riesgo base de la categoría de comercio,
ajustado por el canal de origen. Una transferencia a un receptor nuevo
suma una penalización adicional (patrón típico de cuentas mula).
"""

from guardian.domain.schemas import MerchantCategory, TransactionRequest
from guardian.services.feature_extractor import FeatureRecord
from guardian.services.signal_provider import SignalEvaluation, SignalProvider

CHANNEL_WEIGHT                 = 0.5
PENALTY_TRANSFER_NEW_RECEIVER  = 0.20
HIGH_RISK_MERCHANT             = 0.30
HIGH_RISK_CHANNEL              = 0.50


class MerchantScorer(SignalProvider):

    name = "merchant"

    async def evaluate(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> SignalEvaluation:
        result = SignalEvaluation()

        merchant_risk = features.get("merchant_risk")
        channel_risk  = features.get("channel_risk")

        result.score += merchant_risk + channel_risk * CHANNEL_WEIGHT
        if merchant_risk >= HIGH_RISK_MERCHANT:
            result.reason_codes.append(f"MERCHANT_{request.merchant_category.value}")
        if channel_risk >= HIGH_RISK_CHANNEL:
            result.reason_codes.append(f"HIGH_RISK_CHANNEL_{request.channel.value}")

        if (
            request.merchant_category == MerchantCategory.TRANSFER
            and features.flag("is_new_receiver")
        ):
            result.add(PENALTY_TRANSFER_NEW_RECEIVER, "TRANSFER_TO_NEW_RECEIVER")

        return result
