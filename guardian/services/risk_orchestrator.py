"""
risk_orchestrator.py
--------------------
Orquestador principal del motor de riesgo GuardianAI.

Coordina extracción de features, señales, score compuesto y failsafe,
y produce una decisión accionable dentro del deadline global (200ms por
defecto). No contiene lógica de detección propia: delega en las señales
y agrega sus resultados.

Flujo de ejecución:
  1. Validación                →  < 1ms    único error que llega al caller
  2. Perfil del emisor         →  1-5ms    FeatureCache → ProfileStore (Redis)
  3. Extracción de features    →  < 1ms    función pura
  4. Dispatch paralelo         →  ≤ 150ms  6 señales, timeout individual
       ├─ anomaly     AnomalyDetector
       ├─ behavior    BehaviorScorer
       ├─ amount      AmountScorer
       ├─ merchant    MerchantScorer
       ├─ biometric   BiometricScorer
       └─ network     NetworkScorer
  5. Score compuesto           →  < 1ms    Σ Wi · Si → LOW / MEDIUM / CRITICAL
  6. Failsafe                  →  < 50ms   solo si hubo deadline o error
  7. HMAC-SHA256               →  < 1ms    firma de la respuesta
  8. Background tasks          →  async    ledger + perfil, fire-and-forget

Pasos 2 a 5 corren bajo asyncio.timeout(deadline). Si el deadline se
cumple o algo inesperado escapa, el request pasa a FAILSAFE y la
respuesta sale igual, completa, con failsafe=True.
"""

import asyncio
import hashlib
import hmac as hmac_lib
import json
import logging
from datetime import timezone
from typing import Any, Mapping, Optional, Sequence

from pydantic import ValidationError

from guardian.core.config import settings
from guardian.core.exceptions import (
    InvalidTransactionException,
    OrchestratorDeadlineExceeded,
)
from guardian.domain.schemas import (
    LedgerRecord,
    RiskAction,
    RiskDecision,
    SignalResult,
    SignalStatus,
    TransactionRequest,
    TransactionResponse,
)
from guardian.services.amount_scorer import AmountScorer
from guardian.services.anomaly_detector import AnomalyDetector
from guardian.services.behavior_scorer import BehaviorScorer
from guardian.services.biometric_scorer import BiometricScorer
from guardian.services.failsafe import FailsafeController, RequestGuard
from guardian.services.feature_cache import FeatureCache
from guardian.services.feature_extractor import extract
from guardian.services.ledger_sink import LedgerSink
from guardian.services.merchant_scorer import MerchantScorer
from guardian.services.network_scorer import NetworkScorer
from guardian.services.profile_store import ProfileStore
from guardian.services.risk_scorer import CompositeRiskScorer
from guardian.services.signal_dispatcher import SignalDispatcher
from guardian.services.signal_provider import SignalProvider

logger = logging.getLogger(__name__)


def build_default_providers(timeout: Optional[float] = None) -> list[SignalProvider]:
    """Las seis señales del motor, en el orden en que se reportan."""
    return [
        AnomalyDetector(timeout),
        BehaviorScorer(timeout),
        AmountScorer(timeout),
        MerchantScorer(timeout),
        BiometricScorer(timeout),
        NetworkScorer(timeout),
    ]


class RiskOrchestrator:

    def __init__(
        self,
        profile_store:   Optional[ProfileStore] = None,
        ledger:          Optional[LedgerSink] = None,
        providers:       Optional[Sequence[SignalProvider]] = None,
        scorer:          Optional[CompositeRiskScorer] = None,
        failsafe:        Optional[FailsafeController] = None,
        feature_cache:   Optional[FeatureCache] = None,
        hmac_secret:     Optional[str] = None,
        update_profiles: bool = True,
    ):
        self.profile_store = profile_store or ProfileStore()
        self.feature_cache = feature_cache or FeatureCache(
            ttl_seconds=settings.PROFILE_CACHE_TTL_SEC
        )
        self.dispatcher = SignalDispatcher(
            providers if providers is not None else build_default_providers()
        )
        self.scorer   = scorer or CompositeRiskScorer()
        self.failsafe = failsafe or FailsafeController(self.scorer)
        self.ledger   = ledger
        self.update_profiles = update_profiles
        self._hmac_secret = (hmac_secret or settings.GUARDIAN_HMAC_SECRET).encode()
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------ #
    #  Entry point                                                       #
    # ------------------------------------------------------------------ #

    async def analyze(
        self, request: TransactionRequest | Mapping[str, Any]
    ) -> TransactionResponse:
        """
        Analiza una transacción y retorna una decisión accionable.

        Solo lanza InvalidTransactionException. Cualquier otra falla se
        absorbe y se refleja en la respuesta (failsafe=True).
        """
        request = self.validate(request)
        guard   = self.failsafe.start()
        results: Optional[dict[str, SignalResult]] = None
        decision: Optional[RiskDecision] = None

        try:
            async with asyncio.timeout(self.failsafe.deadline_s):
                profile = await self.feature_cache.get_or_load(
                    request.sender_id, self.profile_store.get
                )
                features = extract(request, profile)
                results  = await self.dispatcher.dispatch(request, features)
                decision = self.scorer.compute(results)
            # El scorer es CPU puro y no cede el loop: puede pasarse del
            # deadline sin que el timeout lo interrumpa
            guard.check_deadline()

        except asyncio.TimeoutError:
            logger.warning(
                f"[Orchestrator] Deadline {self.failsafe.deadline_s * 1000:.0f}ms "
                f"superado tx={request.transaction_id}"
            )
            guard.trip("deadline_exceeded")

        except OrchestratorDeadlineExceeded as e:
            logger.warning(f"[Orchestrator] {e.message} tx={request.transaction_id}")
            guard.trip("deadline_exceeded")

        except Exception as e:
            logger.exception(
                f"[Orchestrator] Error inesperado tx={request.transaction_id}: {e}"
            )
            guard.trip(f"unexpected_error:{type(e).__name__}")

        if guard.tripped:
            decision = self.failsafe.fallback(guard, results)

        response = self._build_response(request, decision, results, guard)

        logger.info(
            f"[Orchestrator] DECISION — "
            f"tx={request.transaction_id}  sender={request.sender_id}  "
            f"score={decision.score}  level={decision.level.value}  "
            f"action={decision.action.value}  failsafe={response.failsafe}  "
            f"time={response.processing_ms:.1f}ms"
        )

        self._after_response(request, response)
        return response

    # ------------------------------------------------------------------ #
    #  Validación                                                        #
    # ------------------------------------------------------------------ #

    def validate(
        self, request: TransactionRequest | Mapping[str, Any]
    ) -> TransactionRequest:
        if isinstance(request, TransactionRequest):
            return request
        try:
            return TransactionRequest.model_validate(request)
        except ValidationError as e:
            errors = [
                {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ]
            raise InvalidTransactionException(errors=errors) from e

    # ------------------------------------------------------------------ #
    #  Construcción y firma de respuesta                                 #
    # ------------------------------------------------------------------ #

    def _build_response(
        self,
        request:  TransactionRequest,
        decision: RiskDecision,
        results:  Optional[dict[str, SignalResult]],
        guard:    RequestGuard,
    ) -> TransactionResponse:
        if results is None:
            # El pipeline no alcanzó a resolver las señales: desglose
            # completo con el valor neutro de cada proveedor
            results = {
                p.name: p.neutral_result(SignalStatus.TIMED_OUT, "pipeline_aborted")
                for p in self.dispatcher.providers
            }

        reason_codes: list[str] = []
        for result in results.values():
            reason_codes.extend(result.reason_codes)
        if guard.tripped:
            reason_codes.append(f"FAILSAFE_{guard.reason.upper()}")

        return TransactionResponse(
            transaction_id  = request.transaction_id,
            decision        = decision,
            signals         = results,
            reason_codes    = list(dict.fromkeys(reason_codes)),   # deduplicar sin perder orden
            processing_ms   = round(guard.elapsed_ms, 3),
            failsafe        = guard.tripped,
            failsafe_reason = guard.reason,
            signature       = self.sign(request.transaction_id, decision),
        )

    def sign(self, transaction_id: str, decision: RiskDecision) -> str:
        """
        Firma HMAC-SHA256 sobre transaction_id + action + score.
        El caller debe verificarla antes de actuar sobre la decisión.
        """
        signable = json.dumps(
            {
                "transaction_id": transaction_id,
                "action":         decision.action.value,
                "score":          decision.score,
            },
            sort_keys  = True,
            separators = (",", ":"),
        ).encode()
        return hmac_lib.new(self._hmac_secret, signable, hashlib.sha256).hexdigest()

    def verify(self, response: TransactionResponse) -> bool:
        expected = self.sign(response.transaction_id, response.decision)
        return hmac_lib.compare_digest(expected, response.signature)

    # ------------------------------------------------------------------ #
    #  Background updates, fire-and-forget                               #
    # ------------------------------------------------------------------ #

    def _after_response(
        self, request: TransactionRequest, response: TransactionResponse
    ) -> None:
        if self.ledger is not None:
            self.ledger.append(LedgerRecord.from_response(request, response))

        # Solo las transacciones permitidas alimentan el perfil del usuario
        if (
            self.update_profiles
            and not response.failsafe
            and response.decision.action is RiskAction.ALLOW
        ):
            task = asyncio.create_task(self._record_profile(request))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _record_profile(self, request: TransactionRequest) -> None:
        try:
            updated = await self.profile_store.record_transaction(
                user_id      = request.sender_id,
                amount       = float(request.amount),
                currency     = request.currency,
                hour         = request.timestamp.astimezone(timezone.utc).hour,
                timestamp    = request.timestamp.timestamp(),
                device_id    = request.device.device_id,
                receiver_id  = request.receiver_id,
                country      = request.network.ip_country,
                typing_speed = (
                    request.biometric.typing_speed_cpm if request.biometric else None
                ),
            )
            if updated is not None:
                self.feature_cache.put(updated)
            else:
                self.feature_cache.invalidate(request.sender_id)
        except Exception as e:
            logger.error(
                f"[Background] Error actualizando perfil user={request.sender_id}: {e}"
            )

    async def drain(self, timeout: float = 5.0) -> None:
        """Espera las tareas en background (shutdown y tests)."""
        if self._background:
            await asyncio.wait(set(self._background), timeout=timeout)
        if self.ledger is not None:
            await self.ledger.drain(timeout)
