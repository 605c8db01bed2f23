"""
schemas.py
----------
Schemas Pydantic para validación de requests y responses del motor.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    IPvAnyAddress,
    field_validator,
    model_validator,
)


# ─────────────────────────────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────────────────────────────

class Channel(str, Enum):
    MOBILE = "MOBILE"
    WEB    = "WEB"
    API    = "API"
    POS    = "POS"
    ATM    = "ATM"


class MerchantCategory(str, Enum):
    ECOMMERCE    = "ECOMMERCE"
    ATM          = "ATM"
    POS          = "POS"
    TRANSFER     = "TRANSFER"
    SUBSCRIPTION = "SUBSCRIPTION"
    UNKNOWN      = "UNKNOWN"


class RiskLevel(str, Enum):
    LOW      = "LOW"
    MEDIUM   = "MEDIUM"
    CRITICAL = "CRITICAL"


class RiskAction(str, Enum):
    ALLOW  = "ALLOW"
    REVIEW = "REVIEW"
    BLOCK  = "BLOCK"


class SignalStatus(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED    = "failed"


# ─────────────────────────────────────────────────────────────────────
# REQUEST
# ─────────────────────────────────────────────────────────────────────

class NetworkMetadata(BaseModel):
    """Contexto de red del cliente (enriquecido por el gateway)."""
    ip_address: Optional[IPvAnyAddress] = None
    ip_country: Optional[str] = Field(None, min_length=2, max_length=2)
    is_vpn:     bool = False
    is_proxy:   bool = False
    is_tor:     bool = False
    is_hosting: bool = False

    model_config = ConfigDict(frozen=True, extra="ignore")


class DeviceMetadata(BaseModel):
    device_id:   Optional[str] = Field(None, min_length=1)
    is_emulator: bool = False
    is_rooted:   bool = False

    model_config = ConfigDict(frozen=True, extra="ignore")


class BiometricSample(BaseModel):
    """
    Muestra conductual capturada por el SDK del cliente.
    liveness_score lo calcula el SDK: 1.0 = persona real con certeza.
    """
    typing_speed_cpm: Optional[float] = Field(None, gt=0)
    touch_pressure:   Optional[float] = Field(None, ge=0, le=1)
    liveness_score:   float           = Field(..., ge=0, le=1)

    model_config = ConfigDict(frozen=True, extra="ignore")


class TransactionRequest(BaseModel):
    # ── Identificadores ────────────────────────────────────────────────
    transaction_id: str     = Field(..., min_length=1, max_length=64)
    sender_id:      str     = Field(..., min_length=1)
    receiver_id:    str     = Field(..., min_length=1)

    # ── Monto ─────────────────────────────────────────────────────────
    # Mismo rango que la columna Numeric(18, 2) del ledger; NaN e Infinity se rechazan
    amount:   Decimal = Field(
        ..., gt=0, max_digits=18, decimal_places=2, allow_inf_nan=False
    )
    currency: str     = Field(..., min_length=3, max_length=3)

    # ── Contexto ──────────────────────────────────────────────────────
    channel:           Channel          = Channel.MOBILE
    merchant_category: MerchantCategory = MerchantCategory.UNKNOWN
    timestamp:         datetime         = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    network:   NetworkMetadata           = Field(default_factory=NetworkMetadata)
    device:    DeviceMetadata            = Field(default_factory=DeviceMetadata)
    biometric: Optional[BiometricSample] = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("currency")
    @classmethod
    def currency_iso(cls, v: str) -> str:
        """Código ISO-4217: tres letras, se normaliza a mayúsculas."""
        if not v.isalpha():
            raise ValueError("La moneda debe ser un código ISO de 3 letras.")
        return v.upper()

    @field_validator("timestamp")
    @classmethod
    def timestamp_aware(cls, v: datetime) -> datetime:
        # Timestamps sin zona se interpretan como UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def sender_is_not_receiver(self):
        if self.sender_id == self.receiver_id:
            raise ValueError("El emisor y el receptor no pueden ser el mismo.")
        return self


# ─────────────────────────────────────────────────────────────────────
# RESULTADOS
# ─────────────────────────────────────────────────────────────────────

class SignalResult(BaseModel):
    """Salida de un proveedor de señal. Se consume una sola vez por el scorer."""
    name:        str
    score:       float        = Field(..., ge=0.0, le=1.0)
    status:      SignalStatus = SignalStatus.COMPLETED
    metadata:    dict         = Field(default_factory=dict)
    duration_ms: float        = Field(0.0, ge=0.0)

    model_config = ConfigDict(frozen=True)

    @property
    def reason_codes(self) -> list[str]:
        return list(self.metadata.get("reason_codes", []))


class RiskDecision(BaseModel):
    score:  float = Field(..., ge=0.0, le=1.0)
    level:  RiskLevel
    action: RiskAction

    model_config = ConfigDict(frozen=True)


class TransactionResponse(BaseModel):
    transaction_id:  str
    decision:        RiskDecision
    signals:         dict[str, SignalResult] = Field(
        default_factory=dict,
        description="Desglose por señal, en orden de registro de proveedores",
    )
    reason_codes:    list[str]     = Field(default_factory=list)
    processing_ms:   float         = Field(..., ge=0.0)
    failsafe:        bool          = False
    failsafe_reason: Optional[str] = None
    signature:       str           = Field(..., min_length=64)


# ─────────────────────────────────────────────────────────────────────
# LEDGER
# ─────────────────────────────────────────────────────────────────────

class LedgerRecord(BaseModel):
    """Registro append-only de una decisión emitida."""
    transaction_id:     str
    sender_id:          str
    receiver_id:        str
    amount:             Decimal
    currency:           str
    score:              float
    level:              RiskLevel
    action:             RiskAction
    failsafe:           bool
    failsafe_reason:    Optional[str] = None
    reason_codes:       list[str]     = Field(default_factory=list)
    signals:            dict          = Field(default_factory=dict)
    network:            dict          = Field(default_factory=dict)
    response_signature: str
    processing_ms:      float
    created_at:         datetime      = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_response(
        cls, request: TransactionRequest, response: TransactionResponse
    ) -> "LedgerRecord":
        return cls(
            transaction_id     = request.transaction_id,
            sender_id          = request.sender_id,
            receiver_id        = request.receiver_id,
            amount             = request.amount,
            currency           = request.currency,
            score              = response.decision.score,
            level              = response.decision.level,
            action             = response.decision.action,
            failsafe           = response.failsafe,
            failsafe_reason    = response.failsafe_reason,
            reason_codes       = response.reason_codes,
            signals            = {
                name: {"score": s.score, "status": s.status.value}
                for name, s in response.signals.items()
            },
            network            = request.network.model_dump(mode="json"),
            response_signature = response.signature,
            processing_ms      = response.processing_ms,
        )
