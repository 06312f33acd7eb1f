# finance_api/services/repasse_service.py
import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finance_api.core.constants import TX_CREDIT
from finance_api.models.account import Account
from finance_api.models.repasse import (
    RepasseExecution,
    RepasseRule,
    RepasseRuleSource,
    RepasseRuleTarget,
)
from finance_api.models.transaction import BankAccountTransaction
from finance_api.schemas.repasse import (
    RepasseExecute,
    RepasseRuleCreate,
    RepasseRuleUpdate,
    RepasseSource,
    RepasseTarget,
)
from finance_api.services.currency_service import RateSnapshot, convert, get_latest_rates
from finance_api.services.profit_service import profit_until
from finance_api.utils.calculations import percent_of, q_money, sum_money, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
STATUS_ONLY = "status-only"


class TargetShare(NamedTuple):
    account_id: UUID
    share_percent: Decimal
    currency: str


class Portion(NamedTuple):
    account_id: UUID
    amount: Decimal        # in the source currency
    amount_in_account: Decimal
    currency: str


# -------------------------------------------------
# PURE MATH
# -------------------------------------------------

def next_payout_date(ref: date, payout_day: int) -> date:
    """
    Next date on payout_day strictly after ref. Days past the end of a
    short month clamp to its last day.
    """
    def on_day(year: int, month: int) -> date:
        return date(year, month, min(payout_day, calendar.monthrange(year, month)[1]))

    candidate = on_day(ref.year, ref.month)
    if candidate > ref:
        return candidate
    if ref.month == 12:
        return on_day(ref.year + 1, 1)
    return on_day(ref.year, ref.month + 1)


def forecast_amounts(base_profit, executed, percentage) -> Tuple[Decimal, Decimal]:
    """(available, amount) with both floored at zero."""
    available = max(ZERO, q_money(to_decimal(base_profit) - to_decimal(executed)))
    amount = max(ZERO, percent_of(available, percentage))
    return available, amount


def split_payout(
    capped,
    targets: Sequence[TargetShare],
    source_currency: str,
    rates: Optional[RateSnapshot],
) -> List[Portion]:
    out: List[Portion] = []
    for t in targets:
        portion = percent_of(capped, t.share_percent)
        out.append(Portion(
            account_id=t.account_id,
            amount=portion,
            amount_in_account=convert(portion, source_currency, t.currency, rates),
            currency=t.currency,
        ))
    return out


def planned_marker(rule_id, horizon: date) -> str:
    return f"rule:{rule_id};planned:true;horizon:{horizon.isoformat()}"


def pt_date(d: date) -> str:
    return d.strftime("%d/%m/%Y")


# -------------------------------------------------
# LOOKUPS
# -------------------------------------------------

def get_rule(db: Session, user_id: UUID, rule_id: UUID) -> RepasseRule:
    rule = db.query(RepasseRule).filter_by(id=rule_id, user_id=user_id).first()
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


def profit_base(db: Session, user_id: UUID, rule_id: UUID) -> Tuple[Optional[List[UUID]], Optional[List[UUID]]]:
    """(account_ids, credit_card_ids) for profit_until; all active accounts when no sources are configured."""
    sources = db.query(RepasseRuleSource).filter_by(rule_id=rule_id, user_id=user_id).all()
    account_ids = [s.account_id for s in sources if s.account_id]
    card_ids = [s.credit_card_id for s in sources if s.credit_card_id]
    if account_ids or card_ids:
        return account_ids or None, card_ids or None

    active = db.query(Account.id).filter_by(user_id=user_id, is_active=True).all()
    return [a.id for a in active] or None, None


def _base_profit(db: Session, user_id: UUID, rule_id: UUID, cutoff: date, currency: str, rates: RateSnapshot) -> Decimal:
    account_ids, card_ids = profit_base(db, user_id, rule_id)
    return profit_until(db, user_id, cutoff, currency, account_ids, card_ids, rates=rates)


def _executed(db: Session, user_id: UUID, rule_id: UUID, on: date, currency: str, rates: RateSnapshot) -> Decimal:
    rows = (
        db.query(RepasseExecution)
        .filter_by(user_id=user_id, rule_id=rule_id, execution_date=on)
        .all()
    )
    return sum((convert(r.amount, r.currency or "EUR", currency, rates) for r in rows), ZERO)


def _target_shares(db: Session, user_id: UUID, targets: Sequence[Tuple[UUID, Decimal]]) -> List[TargetShare]:
    ids = [account_id for account_id, _ in targets]
    accounts: Dict[UUID, Account] = {
        a.id: a for a in db.query(Account).filter(Account.user_id == user_id, Account.id.in_(ids)).all()
    }
    out = []
    for account_id, share in targets:
        acct = accounts.get(account_id)
        if acct is None:
            logger.warning("repasse target account %s not found, skipped", account_id)
            continue
        out.append(TargetShare(account_id, to_decimal(share), acct.currency or "EUR"))
    return out


def _find_placeholder(db: Session, user_id: UUID, rule_id: UUID, account_id: UUID, on: date) -> Optional[BankAccountTransaction]:
    return (
        db.query(BankAccountTransaction)
        .filter(
            BankAccountTransaction.user_id == user_id,
            BankAccountTransaction.account_id == account_id,
            BankAccountTransaction.transaction_date == on,
            BankAccountTransaction.transaction_type == TX_CREDIT,
            BankAccountTransaction.notes.like(f"rule:{rule_id};planned:true%"),
        )
        .first()
    )


# -------------------------------------------------
# RULES
# -------------------------------------------------

def list_rules(db: Session, user_id: UUID) -> List[RepasseRule]:
    return (
        db.query(RepasseRule)
        .filter_by(user_id=user_id)
        .order_by(RepasseRule.created_at.desc())
        .all()
    )


def _replace_targets(db: Session, user_id: UUID, rule_id: UUID, targets: List[RepasseTarget]) -> None:
    db.query(RepasseRuleTarget).filter_by(rule_id=rule_id, user_id=user_id).delete()
    for t in targets:
        db.add(RepasseRuleTarget(user_id=user_id, rule_id=rule_id, account_id=t.account_id, share_percent=t.share_percent))


def _replace_sources(db: Session, user_id: UUID, rule_id: UUID, sources: List[RepasseSource]) -> None:
    db.query(RepasseRuleSource).filter_by(rule_id=rule_id, user_id=user_id).delete()
    for s in sources:
        db.add(RepasseRuleSource(user_id=user_id, rule_id=rule_id, account_id=s.account_id, credit_card_id=s.credit_card_id))


def create_rule(db: Session, user_id: UUID, payload: RepasseRuleCreate) -> RepasseRule:
    rule = RepasseRule(
        user_id=user_id,
        name=payload.name,
        percentage=payload.percentage,
        payout_day=payload.payout_day,
        is_active=payload.is_active,
        is_recurring=payload.is_recurring,
    )
    db.add(rule)
    db.flush()

    if payload.targets:
        _replace_targets(db, user_id, rule.id, payload.targets)
    if payload.sources:
        _replace_sources(db, user_id, rule.id, payload.sources)

    db.commit()
    db.refresh(rule)

    # placeholders are a convenience, the rule stands without them
    try:
        refresh_planned(db, user_id, rule_id=rule.id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("failed to create planned entries for rule %s: %s", rule.id, e)
    return rule


def update_rule(db: Session, user_id: UUID, rule_id: UUID, payload: RepasseRuleUpdate) -> RepasseRule:
    rule = get_rule(db, user_id, rule_id)

    data = payload.model_dump(exclude_unset=True, exclude={"targets", "sources"})
    for field, value in data.items():
        setattr(rule, field, value)

    if payload.targets is not None:
        _replace_targets(db, user_id, rule.id, payload.targets)
    if payload.sources is not None:
        _replace_sources(db, user_id, rule.id, payload.sources)

    db.commit()
    db.refresh(rule)
    return rule


def delete_rule(db: Session, user_id: UUID, rule_id: UUID) -> None:
    rule = get_rule(db, user_id, rule_id)

    # planned placeholders and executed credits carry the rule marker
    db.query(BankAccountTransaction).filter(
        BankAccountTransaction.user_id == user_id,
        BankAccountTransaction.transaction_type == TX_CREDIT,
        BankAccountTransaction.notes.like(f"%rule:{rule_id}%"),
    ).delete(synchronize_session=False)

    executions = db.query(RepasseExecution).filter_by(user_id=user_id, rule_id=rule_id).all()
    bank_ids = [e.bank_transaction_id for e in executions if e.bank_transaction_id]
    if bank_ids:
        db.query(BankAccountTransaction).filter(
            BankAccountTransaction.user_id == user_id,
            BankAccountTransaction.id.in_(bank_ids),
        ).delete(synchronize_session=False)
    db.query(RepasseExecution).filter_by(user_id=user_id, rule_id=rule_id).delete(synchronize_session=False)

    db.delete(rule)
    db.commit()


# -------------------------------------------------
# FORECAST
# -------------------------------------------------

def forecast(db: Session, user_id: UUID, ref_date: date, display_currency: str = "EUR") -> dict:
    rules = db.query(RepasseRule).filter_by(user_id=user_id, is_active=True).all()
    applicable = [r for r in rules if r.payout_day <= ref_date.day]
    rates = get_latest_rates(db)

    forecasts = []
    horizons = []
    for r in applicable:
        horizon = next_payout_date(ref_date, r.payout_day)
        horizons.append(horizon)
        base = _base_profit(db, user_id, r.id, horizon, display_currency, rates)
        executed = q_money(_executed(db, user_id, r.id, horizon, display_currency, rates))
        available, amount = forecast_amounts(base, executed, r.percentage)
        forecasts.append({
            "rule_id": r.id,
            "name": r.name,
            "percentage": r.percentage,
            "payout_day": r.payout_day,
            "is_recurring": r.is_recurring,
            "amount": amount,
            "currency": display_currency,
            "base_profit": base,
            "executed": executed,
            "available": available,
            "horizon": horizon,
        })

    total = sum_money(f["amount"] for f in forecasts)
    furthest = max(horizons) if horizons else ref_date
    profit = profit_until(db, user_id, furthest, display_currency, rates=rates)

    logger.debug("forecast %s: %d rules, total %s %s", ref_date, len(forecasts), total, display_currency)
    return {
        "date": ref_date,
        "profit": profit,
        "currency": display_currency,
        "forecasts": forecasts,
        "total": total,
        "global": {"label": "Total", "amount": total, "currency": display_currency},
    }


# -------------------------------------------------
# PLANNED PLACEHOLDERS
# -------------------------------------------------

def refresh_planned(
    db: Session,
    user_id: UUID,
    rule_id: Optional[UUID] = None,
    today: Optional[date] = None,
    display_currency: str = "EUR",
) -> int:
    """Create or update one planned credit per target account at the next horizon; returns how many."""
    today = today or date.today()
    q = db.query(RepasseRule).filter_by(user_id=user_id, is_active=True)
    if rule_id is not None:
        q = q.filter_by(id=rule_id)
    rules = q.all()
    rates = get_latest_rates(db)

    written = 0
    for r in rules:
        targets = db.query(RepasseRuleTarget).filter_by(rule_id=r.id, user_id=user_id).all()
        if not targets:
            continue
        horizon = next_payout_date(today, r.payout_day)
        base = _base_profit(db, user_id, r.id, horizon, display_currency, rates)
        total_for_rule = max(ZERO, percent_of(base, r.percentage))

        shares = _target_shares(db, user_id, [(t.account_id, t.share_percent) for t in targets])
        description = f"Repasse planejado {pt_date(horizon)}"
        for p in split_payout(total_for_rule, shares, display_currency, rates):
            tx = _find_placeholder(db, user_id, r.id, p.account_id, horizon)
            if tx is None:
                tx = BankAccountTransaction(
                    user_id=user_id,
                    account_id=p.account_id,
                    transaction_date=horizon,
                    transaction_type=TX_CREDIT,
                )
                db.add(tx)
            tx.amount = p.amount_in_account
            tx.currency = p.currency
            tx.description = description
            tx.notes = planned_marker(r.id, horizon)
            written += 1

    db.commit()
    return written


# -------------------------------------------------
# EXECUTION
# -------------------------------------------------

def execute(db: Session, user_id: UUID, payload: RepasseExecute) -> List[RepasseExecution]:
    rule = get_rule(db, user_id, payload.rule_id)
    source_currency = payload.source_currency

    if payload.account_id:
        targets = [(payload.account_id, Decimal("100"))]
    else:
        targets = [
            (t.account_id, t.share_percent)
            for t in db.query(RepasseRuleTarget).filter_by(rule_id=rule.id, user_id=user_id).all()
        ]

    if not targets:
        internal = db.query(Account).filter_by(user_id=user_id, auto_created=True).first()
        if internal is not None:
            targets = [(internal.id, Decimal("100"))]

    if not targets:
        execution = RepasseExecution(
            user_id=user_id,
            rule_id=rule.id,
            execution_date=payload.date,
            amount=q_money(payload.amount),
            currency=source_currency,
            account_id=None,
            notes=payload.notes or STATUS_ONLY,
        )
        db.add(execution)
        db.commit()
        db.refresh(execution)
        logger.info("repasse %s recorded without targets (status-only)", rule.id)
        return [execution]

    rates = get_latest_rates(db)
    base = _base_profit(db, user_id, rule.id, payload.date, source_currency, rates)
    executed = _executed(db, user_id, rule.id, payload.date, source_currency, rates)
    available, _ = forecast_amounts(base, executed, 100)
    capped = min(abs(q_money(payload.amount)), available)
    if capped < abs(q_money(payload.amount)):
        logger.warning("repasse %s capped from %s to %s %s", rule.id, payload.amount, capped, source_currency)

    shares = _target_shares(db, user_id, targets)
    description = f"Repasse {pt_date(payload.date)}"
    created: List[RepasseExecution] = []
    for p in split_payout(capped, shares, source_currency, rates):
        # a planned placeholder on that day becomes the real credit
        tx = _find_placeholder(db, user_id, rule.id, p.account_id, payload.date)
        if tx is None:
            tx = BankAccountTransaction(
                user_id=user_id,
                account_id=p.account_id,
                transaction_date=payload.date,
                transaction_type=TX_CREDIT,
            )
            db.add(tx)
        tx.amount = p.amount_in_account
        tx.currency = p.currency
        tx.description = description
        tx.notes = f"rule:{rule.id};planned:false"
        db.flush()

        execution = RepasseExecution(
            user_id=user_id,
            rule_id=rule.id,
            execution_date=payload.date,
            amount=p.amount_in_account,
            currency=p.currency,
            account_id=p.account_id,
            bank_transaction_id=tx.id,
            notes=payload.notes,
        )
        db.add(execution)
        created.append(execution)

    db.commit()
    for e in created:
        db.refresh(e)
    return created


def list_executions(db: Session, user_id: UUID, limit: int = 10) -> List[RepasseExecution]:
    return (
        db.query(RepasseExecution)
        .filter_by(user_id=user_id)
        .order_by(RepasseExecution.execution_date.desc())
        .limit(limit)
        .all()
    )


def delete_execution(db: Session, user_id: UUID, execution_id: UUID) -> None:
    execution = db.query(RepasseExecution).filter_by(id=execution_id, user_id=user_id).first()
    if not execution:
        raise HTTPException(status_code=404, detail="Not found")

    if execution.bank_transaction_id:
        db.query(BankAccountTransaction).filter_by(
            id=execution.bank_transaction_id, user_id=user_id
        ).delete(synchronize_session=False)
    db.delete(execution)
    db.commit()
