# finance_api/api/repasses.py
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from finance_api.api.deps import get_current_user_id
from finance_api.core.constants import CURRENCIES
from finance_api.db.session import get_db
from finance_api.schemas.repasse import (
    DeleteExecution,
    ForecastOut,
    RefreshPlanned,
    RepasseExecute,
    RepasseExecutionOut,
    RepasseRuleCreate,
    RepasseRuleOut,
    RepasseRuleUpdate,
)
from finance_api.services import repasse_service

router = APIRouter(tags=["repasses"])


# -------------------------------------------------------------------
# RULES
# -------------------------------------------------------------------

@router.get("", response_model=List[RepasseRuleOut])
def list_rules(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return repasse_service.list_rules(db, user_id)


@router.post("", response_model=RepasseRuleOut, status_code=status.HTTP_201_CREATED)
def create_rule(
    payload: RepasseRuleCreate,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return repasse_service.create_rule(db, user_id, payload)


@router.put("/{rule_id}", response_model=RepasseRuleOut)
def update_rule(
    rule_id: UUID,
    payload: RepasseRuleUpdate,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return repasse_service.update_rule(db, user_id, rule_id, payload)


@router.delete("/{rule_id}")
def delete_rule(
    rule_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    repasse_service.delete_rule(db, user_id, rule_id)
    return {"ok": True}


# -------------------------------------------------------------------
# FORECAST / EXECUTIONS
# -------------------------------------------------------------------

@router.get("/forecast", response_model=ForecastOut)
def get_forecast(
    ref_date: Optional[date] = Query(default=None, alias="date"),
    currency: str = Query(default="EUR"),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    currency = currency.upper() if currency.upper() in CURRENCIES else "EUR"
    return repasse_service.forecast(db, user_id, ref_date or date.today(), currency)


@router.get("/executions", response_model=List[RepasseExecutionOut])
def list_executions(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return repasse_service.list_executions(db, user_id, limit)


@router.patch("/execute", response_model=List[RepasseExecutionOut])
def execute_repasse(
    payload: RepasseExecute,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return repasse_service.execute(db, user_id, payload)


@router.patch("/refresh-planned")
def refresh_planned(
    payload: RefreshPlanned,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    written = repasse_service.refresh_planned(db, user_id, rule_id=payload.rule_id)
    return {"ok": True, "planned": written}


@router.patch("/delete-execution")
def delete_execution(
    payload: DeleteExecution,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    repasse_service.delete_execution(db, user_id, payload.execution_id)
    return {"ok": True}
