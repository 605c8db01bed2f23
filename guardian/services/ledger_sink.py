"""
ledger_sink.py
--------------
Sink fire-and-forget del ledger de decisiones.

append() agenda la escritura con asyncio.create_task y retorna de
inmediato: el camino de respuesta nunca espera al ledger. Cualquier
fallo de escritura se loguea y se descarta, jamás llega al caller.

Las tasks pendientes se guardan en un set para que el GC no las
recolecte a mitad de vuelo; drain() las espera (shutdown y tests).
"""

import asyncio
import logging
from typing import Protocol

from guardian.domain.schemas import LedgerRecord

logger = logging.getLogger(__name__)


class LedgerWriter(Protocol):
    async def save(self, record: LedgerRecord): ...


class LedgerSink:

    def __init__(self, writer: LedgerWriter):
        self.writer = writer
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def append(self, record: LedgerRecord) -> None:
        write = self._write(record)
        try:
            task = asyncio.create_task(write, name=f"ledger:{record.transaction_id}")
        except RuntimeError as e:
            # Sin event loop activo no hay dónde agendar la escritura
            write.close()
            logger.error(f"[Ledger] No se pudo agendar tx={record.transaction_id}: {e}")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, record: LedgerRecord) -> None:
        try:
            await self.writer.save(record)
        except Exception as e:
            logger.error(
                f"[Ledger] Error escribiendo tx={record.transaction_id}: {e}"
            )

    async def drain(self, timeout: float = 5.0) -> None:
        """Espera las escrituras pendientes (máx timeout segundos)."""
        if not self._pending:
            return
        done, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.warning(f"[Ledger] {len(pending)} escrituras sin completar al drenar")
