"""
ledger_repository.py
--------------------
Repositorio del ledger de decisiones de riesgo.

Responsabilidades:
  - Cifrar los metadatos de red (IP, país, flags) con AES-256-GCM
    antes de persistirlos.
  - Insertar una fila en `risk_ledger` por cada decisión emitida.

Formato de cifrado: nonce (12 bytes) + ciphertext + tag (16 bytes).
Clave: sha256(SECRET_KEY) → 32 bytes exactos para AES-256.

A diferencia del LedgerSink, este repositorio SÍ lanza: cualquier fallo
se convierte en LedgerWriteException y el sink decide qué hacer con él.
"""

import hashlib
import json
import logging
import os
from typing import Callable

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy.ext.asyncio import AsyncSession

from guardian.core.config import settings
from guardian.core.exceptions import LedgerWriteException
from guardian.domain.models import RiskLedgerEntry
from guardian.domain.schemas import LedgerRecord

logger = logging.getLogger(__name__)

_AES_KEY: bytes = hashlib.sha256(settings.SECRET_KEY.encode()).digest()


def encrypt(data: bytes) -> bytes:
    """Cifra bytes con AES-256-GCM. El nonce se antepone al ciphertext."""
    aesgcm = AESGCM(_AES_KEY)
    nonce  = os.urandom(12)
    return nonce + aesgcm.encrypt(nonce, data, None)


def decrypt(blob: bytes) -> bytes:
    aesgcm = AESGCM(_AES_KEY)
    return aesgcm.decrypt(blob[:12], blob[12:], None)


class LedgerRepository:
    """
    Encapsula el INSERT en `risk_ledger`.

    Recibe una fábrica de sesiones, no una sesión: el ledger escribe en
    background, fuera del ciclo de vida de cualquier request HTTP.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self.session_factory = session_factory

    async def save(self, record: LedgerRecord) -> RiskLedgerEntry:
        entry = RiskLedgerEntry(
            transaction_id     = record.transaction_id,
            sender_id          = record.sender_id,
            receiver_id        = record.receiver_id,
            amount             = record.amount,
            currency           = record.currency,
            score              = record.score,
            level              = record.level.value,
            action             = record.action.value,
            failsafe           = record.failsafe,
            failsafe_reason    = record.failsafe_reason,
            reason_codes       = record.reason_codes,
            signals            = record.signals,
            encrypted_network  = encrypt(
                json.dumps(record.network, sort_keys=True).encode()
            ),
            response_signature = record.response_signature,
            processing_ms      = record.processing_ms,
            created_at         = record.created_at,
        )

        async with self.session_factory() as session:
            try:
                session.add(entry)
                await session.commit()
            except Exception as exc:
                await session.rollback()
                raise LedgerWriteException(
                    f"INSERT falló tx={record.transaction_id}: {exc}"
                ) from exc

        logger.info(
            f"[LedgerRepository] INSERT OK — "
            f"tx={record.transaction_id}  action={record.action.value}  "
            f"score={record.score}"
        )
        return entry
