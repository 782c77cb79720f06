# tests/test_availability_service.py
from datetime import datetime, time

import pytest
from sqlalchemy.orm import Session

from meet_engine.db.session import engine, SessionLocal
from meet_engine.models import AvailabilityRule, Base
from meet_engine.services.availability_service import (
    delete_rule_group,
    group_rules,
    is_within_availability,
    list_rules,
    save_rule_group,
)
from meet_engine.services.errors import ValidationError


def _clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def test_group_is_stored_one_row_per_weekday():
    _clean_db()
    db: Session = SessionLocal()
    try:
        rows = save_rule_group(
            db,
            coach_id="coach-1",
            weekdays=[2, 0, 4, 0],
            start_time=time(9, 0),
            end_time=time(12, 0),
        )
        assert sorted(r.weekday for r in rows) == [0, 2, 4]

        groups = group_rules(list_rules(db, "coach-1"))
        assert len(groups) == 1
        data = groups[0].as_dict()
        assert data["weekdays"] == [0, 2, 4]
        assert data["days"] == ["MON", "WED", "FRI"]
        assert data["start_time"] == "09:00"
        assert data["scope"] == "always"
    finally:
        db.close()


def test_editing_a_group_replaces_it_wholesale():
    _clean_db()
    db: Session = SessionLocal()
    try:
        save_rule_group(
            db, coach_id="coach-1", weekdays=[0, 1], start_time=time(9, 0), end_time=time(12, 0)
        )
        old_key = (time(9, 0), time(12, 0), "always", None, None)

        save_rule_group(
            db,
            coach_id="coach-1",
            weekdays=[3],
            start_time=time(14, 0),
            end_time=time(18, 0),
            replaces=old_key,
        )

        rules = list_rules(db, "coach-1")
        assert [(r.weekday, r.start_time) for r in rules] == [(3, time(14, 0))]
    finally:
        db.close()


def test_month_scoped_rules_apply_only_to_their_month():
    _clean_db()
    db: Session = SessionLocal()
    try:
        save_rule_group(
            db, coach_id="coach-1", weekdays=[0], start_time=time(9, 0), end_time=time(10, 0)
        )
        save_rule_group(
            db,
            coach_id="coach-1",
            weekdays=[1],
            start_time=time(15, 0),
            end_time=time(16, 0),
            scope="month",
            year=2030,
            month=1,
        )

        assert len(list_rules(db, "coach-1", 2030, 1)) == 2
        assert len(list_rules(db, "coach-1", 2030, 2)) == 1
        assert len(group_rules(list_rules(db, "coach-1"))) == 2

        deleted = delete_rule_group(
            db, coach_id="coach-1", key=(time(15, 0), time(16, 0), "month", 2030, 1)
        )
        assert deleted == 1
        assert db.query(AvailabilityRule).count() == 1
    finally:
        db.close()


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(weekdays=[], start_time=time(9, 0), end_time=time(10, 0)),
        dict(weekdays=[7], start_time=time(9, 0), end_time=time(10, 0)),
        dict(weekdays=[0], start_time=time(10, 0), end_time=time(9, 0)),
        dict(weekdays=[0], start_time=time(9, 0), end_time=time(10, 0), scope="month"),
        dict(weekdays=[0], start_time=time(9, 0), end_time=time(10, 0), scope="weekly"),
    ],
)
def test_invalid_groups_are_rejected(kwargs):
    _clean_db()
    db: Session = SessionLocal()
    try:
        with pytest.raises(ValidationError):
            save_rule_group(db, coach_id="coach-1", **kwargs)
        assert db.query(AvailabilityRule).count() == 0
    finally:
        db.close()


def test_is_within_availability():
    _clean_db()
    db: Session = SessionLocal()
    try:
        # No rules: nothing to compare against
        assert is_within_availability(
            db, "coach-1", datetime(2030, 1, 7, 9, 0), datetime(2030, 1, 7, 10, 0)
        ) is None

        # 2030-01-07 is a Monday
        save_rule_group(
            db, coach_id="coach-1", weekdays=[0], start_time=time(9, 0), end_time=time(12, 0)
        )
        assert is_within_availability(
            db, "coach-1", datetime(2030, 1, 7, 9, 0), datetime(2030, 1, 7, 10, 0)
        ) is True
        assert is_within_availability(
            db, "coach-1", datetime(2030, 1, 7, 11, 30), datetime(2030, 1, 7, 12, 30)
        ) is False
        assert is_within_availability(
            db, "coach-1", datetime(2030, 1, 8, 9, 0), datetime(2030, 1, 8, 10, 0)
        ) is False
    finally:
        db.close()
