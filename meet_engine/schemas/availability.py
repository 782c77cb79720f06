# meet_engine/schemas/availability.py
from datetime import time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class RuleGroupKeyIn(BaseModel):
    start_time: time
    end_time: time
    scope: Literal["always", "month"] = "always"
    year: Optional[int] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)


class RuleGroupIn(RuleGroupKeyIn):
    weekdays: List[int] = Field(min_length=1)
    timezone: str = "UTC"
    # Group being edited; its rows are replaced by this one
    replaces: Optional[RuleGroupKeyIn] = None

    @model_validator(mode="after")
    def check_month_scope(self) -> "RuleGroupIn":
        if self.scope == "month" and (self.year is None or self.month is None):
            raise ValueError("year and month are required for a month-scoped rule")
        return self
