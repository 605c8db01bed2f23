from typing import Any

from fastapi import APIRouter, Body, Depends

from guardian.api.dependencies import get_orchestrator
from guardian.domain.schemas import TransactionResponse
from guardian.services.risk_orchestrator import RiskOrchestrator

router = APIRouter(prefix="/v1/risk", tags=["Risk"])


@router.post("/analyze", response_model=TransactionResponse)
async def analyze_transaction(
    payload: dict[str, Any] = Body(...),
    orchestrator: RiskOrchestrator = Depends(get_orchestrator),
) -> TransactionResponse:
    # La validación la hace el orquestador: un payload inválido sale como
    # InvalidTransactionException → 422 en el handler global
    return await orchestrator.analyze(payload)
