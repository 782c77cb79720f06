# meet_engine/services/availability_service.py
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meet_engine.models.availability_rule import AvailabilityRule, RuleScope
from meet_engine.services.errors import StorageError, ValidationError

DAY_CODES = ["MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN"]

# (start_time, end_time, scope, year, month)
GroupKey = Tuple[time, time, str, Optional[int], Optional[int]]


@dataclass
class RuleGroup:
    start_time: time
    end_time: time
    scope: str
    year: Optional[int]
    month: Optional[int]
    timezone: str
    weekdays: List[int] = field(default_factory=list)
    rule_ids: List[int] = field(default_factory=list)

    @property
    def key(self) -> GroupKey:
        return (self.start_time, self.end_time, self.scope, self.year, self.month)

    def as_dict(self) -> dict:
        return {
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "scope": self.scope,
            "year": self.year,
            "month": self.month,
            "timezone": self.timezone,
            "weekdays": self.weekdays,
            "days": [DAY_CODES[d] for d in self.weekdays],
            "rule_ids": self.rule_ids,
        }


def _validate_group(
    weekdays: Sequence[int],
    start_time: time,
    end_time: time,
    scope: str,
    year: Optional[int],
    month: Optional[int],
) -> Tuple[List[int], str, Optional[int], Optional[int]]:
    days = sorted(set(weekdays or []))
    if not days:
        raise ValidationError("At least one weekday is required")
    if any(d < 0 or d > 6 for d in days):
        raise ValidationError("weekday must be between 0 (Monday) and 6 (Sunday)")
    if end_time <= start_time:
        raise ValidationError("end_time must be after start_time")

    try:
        scope = RuleScope(scope).value
    except ValueError:
        raise ValidationError(f"Unknown scope: {scope}")

    if scope == RuleScope.MONTH.value:
        if year is None or month is None:
            raise ValidationError("year and month are required for a month-scoped rule")
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
    else:
        year, month = None, None

    return days, scope, year, month


def _group_query(db: Session, coach_id: str, key: GroupKey):
    start_time, end_time, scope, year, month = key
    return db.query(AvailabilityRule).filter(
        AvailabilityRule.coach_id == coach_id,
        AvailabilityRule.start_time == start_time,
        AvailabilityRule.end_time == end_time,
        AvailabilityRule.scope == scope,
        AvailabilityRule.year.is_(None) if year is None else AvailabilityRule.year == year,
        AvailabilityRule.month.is_(None) if month is None else AvailabilityRule.month == month,
    )


def save_rule_group(
    db: Session,
    *,
    coach_id: str,
    weekdays: Sequence[int],
    start_time: time,
    end_time: time,
    scope: str = RuleScope.ALWAYS.value,
    year: Optional[int] = None,
    month: Optional[int] = None,
    timezone: str = "UTC",
    replaces: Optional[GroupKey] = None,
) -> List[AvailabilityRule]:
    """
    Create or edit a rule group.

    Behavior:
    - Removes the rows of the group being edited (`replaces`) and of any
      group with the same key, so the new set "replaces" the old one.
    - Inserts one row per weekday.

    Groups are never patched in place.
    """
    days, scope, year, month = _validate_group(weekdays, start_time, end_time, scope, year, month)
    new_key: GroupKey = (start_time, end_time, scope, year, month)

    try:
        for key in {new_key, replaces} - {None}:
            _group_query(db, coach_id, key).delete(synchronize_session=False)

        created: List[AvailabilityRule] = []
        for day in days:
            rule = AvailabilityRule(
                coach_id=coach_id,
                weekday=day,
                start_time=start_time,
                end_time=end_time,
                scope=scope,
                year=year,
                month=month,
                timezone=timezone or "UTC",
                is_active=True,
            )
            db.add(rule)
            created.append(rule)

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not save availability: {e}") from e

    for rule in created:
        db.refresh(rule)
    return created


def delete_rule_group(db: Session, *, coach_id: str, key: GroupKey) -> int:
    """Delete every weekday row of a group. Returns how many rows went away."""
    try:
        deleted = _group_query(db, coach_id, key).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not delete availability: {e}") from e
    return deleted


def list_rules(
    db: Session,
    coach_id: str,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> List[AvailabilityRule]:
    """
    Active rules of a coach. With year+month, only the rules that apply to
    that month ("always" rules plus rules bound to exactly that month).
    """
    q = db.query(AvailabilityRule).filter(
        AvailabilityRule.coach_id == coach_id,
        AvailabilityRule.is_active.is_(True),
    )
    rules = q.order_by(AvailabilityRule.weekday, AvailabilityRule.start_time).all()

    if year is None or month is None:
        return rules
    return [r for r in rules if _applies_to_month(r, year, month)]


def _applies_to_month(rule: AvailabilityRule, year: int, month: int) -> bool:
    if rule.scope == RuleScope.ALWAYS.value:
        return True
    return rule.year == year and rule.month == month


def group_rules(rules: Iterable[AvailabilityRule]) -> List[RuleGroup]:
    """Collapse per-weekday rows back into user-facing groups."""
    groups: Dict[GroupKey, RuleGroup] = {}
    for r in rules:
        key = (r.start_time, r.end_time, r.scope, r.year, r.month)
        group = groups.get(key)
        if group is None:
            group = RuleGroup(
                start_time=r.start_time,
                end_time=r.end_time,
                scope=r.scope,
                year=r.year,
                month=r.month,
                timezone=r.timezone,
            )
            groups[key] = group
        if r.weekday not in group.weekdays:
            group.weekdays.append(r.weekday)
        group.rule_ids.append(r.id)

    for group in groups.values():
        group.weekdays.sort()
    return sorted(groups.values(), key=lambda g: (g.scope, g.year or 0, g.month or 0, g.start_time))


def is_within_availability(
    db: Session,
    coach_id: str,
    start: datetime,
    end: datetime,
) -> Optional[bool]:
    """
    Does [start, end) fit inside one of the coach's windows for that day?

    Returns None when the coach has published no rules for the month
    (nothing to compare against).
    """
    rules = list_rules(db, coach_id, start.year, start.month)
    if not rules:
        return None
    if start.date() != end.date() and end.time() != time(0, 0):
        return False

    end_t = end.time() if end.date() == start.date() else time.max
    for r in rules:
        if r.weekday != start.weekday():
            continue
        if r.start_time <= start.time() and end_t <= r.end_time:
            return True
    return False
