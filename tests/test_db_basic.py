# tests/test_db_basic.py
from sqlalchemy import text
from sqlalchemy.orm import Session

from meet_engine.db.session import engine, SessionLocal
from meet_engine.models import Base, Person


def test_db_can_create_schema():
    # Ensure metadata can create tables
    Base.metadata.create_all(bind=engine)

    # Simple connectivity test
    with engine.connect() as conn:
        result = conn.execute(text("SELECT 1"))
        assert result.scalar() == 1


def test_create_and_read_person():
    # Make sure tables exist
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()
    try:
        # Ensure a clean slate for this test to avoid primary key conflicts
        db.query(Person).delete()
        db.commit()

        person = Person(
            id="client-1",
            full_name="Test Client",
            phone="+123456789",
            email="client@example.com",
            timezone="America/Argentina/Buenos_Aires",
        )
        db.add(person)
        db.commit()

        # fetch back
        fetched = db.query(Person).filter_by(phone="+123456789").first()
        assert fetched is not None
        assert fetched.full_name == "Test Client"
    finally:
        db.close()


def test_sqlite_enforces_foreign_keys():
    with engine.connect() as conn:
        if engine.dialect.name == "sqlite":
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
