"""
models.py
---------
Modelos SQLAlchemy del motor de riesgo GuardianAI.

Tablas:
  - RiskLedgerEntry → registro append-only de cada decisión emitida

Principios de diseño:
  - Solo INSERT: el ledger nunca se actualiza ni se borra
  - Metadatos de red (IP, país) como BYTEA → output cifrado AES-256-GCM
  - created_at siempre con timezone=True → auditoría correcta
  - transaction_id NO es único: un re-análisis idéntico genera otra fila
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, Index, Numeric, String, text
from sqlalchemy.dialects.postgresql import BYTEA, JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class RiskLedgerEntry(Base):
    __tablename__ = "risk_ledger"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_id:      Mapped[str] = mapped_column(String(64), nullable=False)
    receiver_id:    Mapped[str] = mapped_column(String(64), nullable=False)

    # Monto como Numeric para precisión exacta
    amount:   Mapped[float] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str]   = mapped_column(String(3), nullable=False)

    # Decisión
    score:  Mapped[float] = mapped_column(Float, nullable=False)
    level:  Mapped[str]   = mapped_column(String(10), nullable=False)
    action: Mapped[str]   = mapped_column(String(10), nullable=False)

    failsafe:        Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    failsafe_reason: Mapped[str]  = mapped_column(String(100), nullable=True)

    reason_codes: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )
    # Snapshot {señal: {score, status}} para trazabilidad
    signals: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )

    encrypted_network: Mapped[bytes] = mapped_column(BYTEA, nullable=False)

    response_signature: Mapped[str]   = mapped_column(String(64), nullable=False)
    processing_ms:      Mapped[float] = mapped_column(Float, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_ledger_transaction", "transaction_id"),
        Index("idx_ledger_sender_created", "sender_id", "created_at"),
        Index("idx_ledger_action", "action"),
    )
