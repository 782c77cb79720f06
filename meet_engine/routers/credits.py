# meet_engine/routers/credits.py
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from meet_engine.db.session import get_db
from meet_engine.schemas.credits import CreditGrant
from meet_engine.services.credit_service import CreditLedger

router = APIRouter()


@router.get("/{coach_id}/credits/{client_id}")
def read_balance(
        coach_id: str,
        client_id: str,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    ledger = CreditLedger(db)
    return {
        "coach_id": coach_id,
        "client_id": client_id,
        "credits_available": ledger.get_available_credits(coach_id, client_id),
    }


@router.post("/{coach_id}/credits/{client_id}/grant")
def grant_credits(
        coach_id: str,
        client_id: str,
        payload: CreditGrant,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    balance = CreditLedger(db).grant(coach_id, client_id, payload.amount, payload.reason)
    return {
        "coach_id": coach_id,
        "client_id": client_id,
        "credits_available": balance,
    }
