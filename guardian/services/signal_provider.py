"""
signal_provider.py
------------------
Contrato común de todas las señales de riesgo.

Cada proveedor recibe (request, features) y produce un SignalResult con
score en [0, 1] dentro de su timeout, o lanza una excepción. El timeout
y el reemplazo por el valor neutro los aplica el SignalDispatcher, no
el proveedor.

Reglas de independencia:
  - Un proveedor solo lee el TransactionRequest y el FeatureRecord.
  - Nunca lee la salida de otro proveedor.
  - Nunca muta estado compartido visible fuera de sí mismo.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from guardian.core.config import settings
from guardian.domain.schemas import SignalResult, SignalStatus, TransactionRequest
from guardian.services.feature_extractor import FeatureRecord


@dataclass
class SignalEvaluation:
    """
    Acumulador interno de un proveedor.
    score: suma de penalizaciones (se clampea a [0, 1] al cerrar).
    """
    score: float = 0.0
    reason_codes: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def add(self, points: float, code: str) -> None:
        self.score += points
        self.reason_codes.append(code)


class SignalProvider(ABC):
    """
    Base de los proveedores de señal.

    default_score es el valor neutro documentado que el dispatcher usa
    cuando la señal hace timeout o falla.
    """

    name: str = "signal"
    default_score: float = 0.0

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = (
            timeout if timeout is not None else settings.SIGNAL_TIMEOUT_MS / 1000
        )

    async def score(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> SignalResult:
        start  = time.perf_counter()
        result = await self.evaluate(request, features)
        return SignalResult(
            name        = self.name,
            score       = round(max(0.0, min(1.0, result.score)), 6),
            status      = SignalStatus.COMPLETED,
            metadata    = {"reason_codes": result.reason_codes, **result.metadata},
            duration_ms = (time.perf_counter() - start) * 1000,
        )

    def neutral_result(
        self,
        status: SignalStatus,
        error: str,
        duration_ms: float = 0.0,
    ) -> SignalResult:
        """Resultado sustituto cuando la señal hizo timeout o falló."""
        return SignalResult(
            name        = self.name,
            score       = self.default_score,
            status      = status,
            metadata    = {"reason_codes": [], "error": error},
            duration_ms = duration_ms,
        )

    @abstractmethod
    async def evaluate(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> SignalEvaluation:
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name} timeout={self.timeout}s>"
