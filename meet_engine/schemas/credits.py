# meet_engine/schemas/credits.py
from pydantic import BaseModel, Field


class CreditGrant(BaseModel):
    amount: int = Field(gt=0)
    reason: str = "Manual grant"
