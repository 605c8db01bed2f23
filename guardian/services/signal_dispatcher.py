"""
signal_dispatcher.py
--------------------
Ejecuta todas las señales en paralelo con timeout individual.

Flujo:
  1. Una asyncio.Task por proveedor, todas lanzadas a la vez
  2. Un guard por proveedor espera su task hasta proveedor.timeout
  3. Timeout → la task se cancela SIN esperarla y se usa el score neutro
     (status=timed_out). Un resultado tardío se descarta.
  4. Excepción → score neutro (status=failed). Nunca se propaga.
  5. Los resultados se indexan por nombre de proveedor en orden de
     registro, no en orden de llegada.

Garantía: dispatch() retorna en max(timeouts) + overhead mínimo, sin
importar cuántas señales fallen o cuelguen.

Si el dispatch completo es cancelado (deadline global del orquestador),
cada guard cancela la task de su proveedor antes de salir.
"""

import asyncio
import logging
import time
from typing import Sequence

from guardian.core.exceptions import SignalFailureException, SignalTimeoutException
from guardian.domain.schemas import SignalResult, SignalStatus, TransactionRequest
from guardian.services.feature_extractor import FeatureRecord
from guardian.services.signal_provider import SignalProvider

logger = logging.getLogger(__name__)


class SignalDispatcher:

    def __init__(self, providers: Sequence[SignalProvider]):
        names = [p.name for p in providers]
        if len(set(names)) != len(names):
            raise ValueError(f"Nombres de señal duplicados: {names}")
        self.providers = list(providers)

    @property
    def max_timeout(self) -> float:
        return max((p.timeout for p in self.providers), default=0.0)

    async def dispatch(
        self, request: TransactionRequest, features: FeatureRecord
    ) -> dict[str, SignalResult]:
        guards = [
            self._run_guarded(provider, request, features)
            for provider in self.providers
        ]
        # Los guards nunca lanzan: cada uno resuelve a un SignalResult
        results = await asyncio.gather(*guards)
        return {result.name: result for result in results}

    async def _run_guarded(
        self,
        provider: SignalProvider,
        request:  TransactionRequest,
        features: FeatureRecord,
    ) -> SignalResult:
        start = time.perf_counter()
        task  = asyncio.create_task(
            provider.score(request, features),
            name=f"signal:{provider.name}:{request.transaction_id}",
        )

        try:
            done, _ = await asyncio.wait({task}, timeout=provider.timeout)
        except asyncio.CancelledError:
            # Deadline global: no dejar la señal corriendo huérfana
            task.cancel()
            task.add_done_callback(_discard_late_result)
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000

        if not done:
            task.cancel()
            task.add_done_callback(_discard_late_result)
            error = SignalTimeoutException(provider.name, provider.timeout)
            logger.warning(f"[Dispatcher] {error.message} — usando score neutro")
            return provider.neutral_result(
                SignalStatus.TIMED_OUT, error.message, elapsed_ms
            )

        exc = task.exception() if not task.cancelled() else asyncio.CancelledError()
        if exc is not None:
            error = SignalFailureException(provider.name, exc)
            logger.error(f"[Dispatcher] {error.message} — usando score neutro")
            return provider.neutral_result(
                SignalStatus.FAILED, error.message, elapsed_ms
            )

        result = task.result()
        if result.name != provider.name:
            # El dispatcher indexa por identidad del proveedor, no por lo que
            # el proveedor diga de sí mismo
            result = result.model_copy(update={"name": provider.name})
        return result


def _discard_late_result(task: asyncio.Task) -> None:
    """Consume el resultado de una señal que llegó después de su timeout."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"[Dispatcher] Señal tardía {task.get_name()} falló: {exc!r}")
    else:
        logger.debug(f"[Dispatcher] Resultado tardío descartado: {task.get_name()}")
