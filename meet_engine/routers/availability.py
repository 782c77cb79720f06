# meet_engine/routers/availability.py
from datetime import time
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from meet_engine.db.session import get_db
from meet_engine.schemas.availability import RuleGroupIn, RuleGroupKeyIn
from meet_engine.services.availability_service import (
    delete_rule_group,
    group_rules,
    list_rules,
    save_rule_group,
)

router = APIRouter()


def _key(k: RuleGroupKeyIn):
    if k.scope == "always":
        return (k.start_time, k.end_time, k.scope, None, None)
    return (k.start_time, k.end_time, k.scope, k.year, k.month)


@router.get("/{coach_id}/availability")
def read_availability(
        coach_id: str,
        year: Optional[int] = Query(default=None),
        month: Optional[int] = Query(default=None, ge=1, le=12),
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    rules = list_rules(db, coach_id, year, month)
    return {
        "coach_id": coach_id,
        "groups": [g.as_dict() for g in group_rules(rules)],
    }


@router.post("/{coach_id}/availability", status_code=201)
def save_availability(
        coach_id: str,
        payload: RuleGroupIn,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Create a rule group, or replace the one named in `replaces`.
    """
    rules = save_rule_group(
        db,
        coach_id=coach_id,
        weekdays=payload.weekdays,
        start_time=payload.start_time,
        end_time=payload.end_time,
        scope=payload.scope,
        year=payload.year,
        month=payload.month,
        timezone=payload.timezone,
        replaces=_key(payload.replaces) if payload.replaces else None,
    )
    groups = group_rules(rules)
    return {"coach_id": coach_id, "group": groups[0].as_dict() if groups else None}


@router.delete("/{coach_id}/availability")
def remove_availability(
        coach_id: str,
        start_time: time = Query(...),
        end_time: time = Query(...),
        scope: Literal["always", "month"] = Query(default="always"),
        year: Optional[int] = Query(default=None),
        month: Optional[int] = Query(default=None, ge=1, le=12),
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    key = RuleGroupKeyIn(start_time=start_time, end_time=end_time, scope=scope, year=year, month=month)
    deleted = delete_rule_group(db, coach_id=coach_id, key=_key(key))
    return {"coach_id": coach_id, "deleted": deleted}
