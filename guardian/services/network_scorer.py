"""
network_scorer.py
-----------------
Señal de red: anonimizadores (Tor, VPN, proxy), IPs de datacenter y
país de la IP distinto del país habitual del usuario.

Los flags de red los enriquece el gateway antes de llegar al motor.
"""

from guardian.domain.schemas import TransactionRequest
from guardian.services.feature_extractor import FeatureRecord
from guardian.services.signal_provider import SignalEvaluation, SignalProvider

PENALTY_TOR              = 0.60
PENALTY_VPN              = 0.25
PENALTY_PROXY            = 0.25
PENALTY_HOSTING          = 0.20
PENALTY_COUNTRY_MISMATCH = 0.30


class NetworkScorer(SignalProvider):

    name = "network"

    async def evaluate(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> SignalEvaluation:
        result = SignalEvaluation()

        if features.flag("is_tor"):
            result.add(PENALTY_TOR, "TOR_EXIT_NODE")
        if features.flag("is_vpn"):
            result.add(PENALTY_VPN, "VPN_DETECTED")
        if features.flag("is_proxy"):
            result.add(PENALTY_PROXY, "PROXY_DETECTED")
        if features.flag("is_hosting"):
            result.add(PENALTY_HOSTING, "DATACENTER_IP")

        if features.flag("country_mismatch"):
            result.add(
                PENALTY_COUNTRY_MISMATCH,
                f"IP_COUNTRY_{request.network.ip_country.upper()}_NOT_HOME",
            )

        return result
