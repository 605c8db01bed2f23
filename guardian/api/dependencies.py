"""
dependencies.py
---------------
Dependencias reutilizables para inyectar en los routers de FastAPI.

get_orchestrator:
  Retorna el orquestador singleton, cableado con Redis (perfiles) y
  PostgreSQL (ledger). En tests se reemplaza con
  app.dependency_overrides[get_orchestrator].
"""

from guardian.infrastructure.database.ledger_repository import LedgerRepository
from guardian.infrastructure.database.session import AsyncSessionLocal
from guardian.services.ledger_sink import LedgerSink
from guardian.services.risk_orchestrator import RiskOrchestrator

# ── Singleton ─────────────────────────────────────────────────────────
risk_orchestrator = RiskOrchestrator(
    ledger=LedgerSink(LedgerRepository(AsyncSessionLocal)),
)


def get_orchestrator() -> RiskOrchestrator:
    return risk_orchestrator
