"""
feature_extractor.py
--------------------
Convierte (transacción, perfil histórico) en un FeatureRecord plano.

Función pura y total: no hace I/O, no lanza para ninguna transacción
estructuralmente válida. Si el perfil no tiene historial, cada feature
toma su valor neutro de población (ratio 1.0, z-score 0, "no es nuevo").

El FeatureRecord se produce una vez por request y lo consumen todas las
señales en paralelo, por eso es de solo lectura.
"""

import math
from dataclasses import dataclass
from datetime import timezone
from types import MappingProxyType
from typing import Mapping

from guardian.domain.schemas import Channel, MerchantCategory, TransactionRequest
from guardian.services.profile_store import UserProfile


# Riesgo base por canal de origen
CHANNEL_RISK: dict[Channel, float] = {
    Channel.MOBILE: 0.10,
    Channel.POS:    0.10,
    Channel.ATM:    0.20,
    Channel.WEB:    0.30,
    Channel.API:    0.50,
}

# Riesgo base por categoría de comercio
MERCHANT_RISK: dict[MerchantCategory, float] = {
    MerchantCategory.POS:          0.05,
    MerchantCategory.SUBSCRIPTION: 0.10,
    MerchantCategory.UNKNOWN:      0.20,
    MerchantCategory.ECOMMERCE:    0.30,
    MerchantCategory.TRANSFER:     0.35,
    MerchantCategory.ATM:          0.40,
}

# Horario habitual asumido para usuarios sin historial (7:00 a 22:59)
POPULATION_TYPICAL_HOURS = frozenset(range(7, 23))

# Neutro para "segundos desde la última tx" cuando no hay historial: 30 días
NEUTRAL_SECONDS_SINCE_LAST_TX = 60.0 * 60 * 24 * 30


@dataclass(frozen=True)
class FeatureRecord:
    """Mapping inmutable nombre → valor numérico."""
    values: Mapping[str, float]

    def __getitem__(self, name: str) -> float:
        return self.values[name]

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str, default: float = 0.0) -> float:
        return self.values.get(name, default)

    def flag(self, name: str) -> bool:
        return self.values.get(name, 0.0) >= 1.0

    def as_dict(self) -> dict[str, float]:
        return dict(self.values)


def extract(request: TransactionRequest, profile: UserProfile) -> FeatureRecord:
    amount = float(request.amount)
    hour   = request.timestamp.astimezone(timezone.utc).hour

    # ── Monto vs historial ────────────────────────────────────────────
    if profile.has_history and profile.avg_amount > 0:
        amount_ratio = amount / profile.avg_amount
    else:
        amount_ratio = 1.0

    if profile.has_history and profile.std_amount > 0:
        amount_zscore = (amount - profile.avg_amount) / profile.std_amount
    else:
        amount_zscore = 0.0

    # ── Patrón horario ────────────────────────────────────────────────
    typical_hours   = profile.typical_hours or POPULATION_TYPICAL_HOURS
    is_unusual_hour = hour not in typical_hours

    # ── Dispositivo, receptor, moneda ─────────────────────────────────
    device_id     = request.device.device_id
    is_new_device = bool(
        device_id and profile.known_devices and device_id not in profile.known_devices
    )
    is_new_receiver = bool(
        profile.has_history and request.receiver_id not in profile.known_receivers
    )
    currency_mismatch = bool(
        profile.primary_currency and request.currency != profile.primary_currency
    )

    if profile.last_transaction_ts > 0:
        seconds_since_last_tx = max(
            0.0, request.timestamp.timestamp() - profile.last_transaction_ts
        )
    else:
        seconds_since_last_tx = NEUTRAL_SECONDS_SINCE_LAST_TX

    # ── Red ───────────────────────────────────────────────────────────
    network = request.network
    country_mismatch = bool(
        network.ip_country
        and profile.home_country
        and network.ip_country.upper() != profile.home_country.upper()
    )

    # ── Biometría ─────────────────────────────────────────────────────
    sample = request.biometric
    typing_deviation = 0.0
    if sample and sample.typing_speed_cpm and profile.typical_typing_speed > 0:
        typing_deviation = (
            abs(sample.typing_speed_cpm - profile.typical_typing_speed)
            / profile.typical_typing_speed
        )

    values = {
        "amount":                amount,
        "log_amount":            math.log10(amount + 1.0),
        "amount_ratio":          amount_ratio,
        "amount_zscore":         amount_zscore,
        "hour":                  float(hour),
        "is_unusual_hour":       float(is_unusual_hour),
        "is_new_device":         float(is_new_device),
        "is_new_receiver":       float(is_new_receiver),
        "currency_mismatch":     float(currency_mismatch),
        "account_age_days":      profile.age_days(request.timestamp.timestamp()),
        "tx_count":              float(profile.tx_count),
        "seconds_since_last_tx": seconds_since_last_tx,
        "channel_risk":          CHANNEL_RISK.get(request.channel, 0.2),
        "merchant_risk":         MERCHANT_RISK.get(request.merchant_category, 0.2),
        "is_vpn":                float(network.is_vpn),
        "is_proxy":              float(network.is_proxy),
        "is_tor":                float(network.is_tor),
        "is_hosting":            float(network.is_hosting),
        "country_mismatch":      float(country_mismatch),
        "is_emulator":           float(request.device.is_emulator),
        "is_rooted":             float(request.device.is_rooted),
        "has_biometric":         float(sample is not None),
        "liveness_score":        sample.liveness_score if sample else 1.0,
        "typing_deviation":      typing_deviation,
    }
    return FeatureRecord(values=MappingProxyType(values))
