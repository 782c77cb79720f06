# meet_engine/models/__init__.py
from meet_engine.models.base import Base  # noqa: F401

from meet_engine.models.person import Person  # noqa: F401
from meet_engine.models.meeting import Meeting  # noqa: F401
from meet_engine.models.participant import Participant  # noqa: F401
from meet_engine.models.reschedule_request import RescheduleRequest  # noqa: F401
from meet_engine.models.credit_ledger import CreditLedgerEntry, CreditTransaction  # noqa: F401
from meet_engine.models.availability_rule import AvailabilityRule  # noqa: F401
from meet_engine.models.outbox_task import OutboxTask  # noqa: F401
