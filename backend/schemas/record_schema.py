"""Record submission rules.

``RecordCreate`` is the single rule table for a submitted approval/rejection
record. The API validates request bodies with it and publishes its JSON
schema at ``GET /records/schema`` so the web client checks the same bounds.
"""
from datetime import date, timedelta
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

# Submissions from time zones ahead of the server may carry tomorrow's date
DATE_APPLIED_TOLERANCE = timedelta(days=1)


class RecordCreate(BaseModel):
    card_id: int = Field(..., ge=1)
    credit_score: int = Field(..., ge=300, le=850)
    credit_score_source: int = Field(..., ge=0, le=4)
    result: bool
    listed_income: int = Field(..., ge=0, le=1000000)
    length_credit: int = Field(..., ge=0, le=100)
    starting_credit_limit: Optional[int] = Field(default=None, ge=0, le=1000000)
    reason_denied: Optional[str] = Field(default=None, max_length=254)
    date_applied: date
    bank_customer: bool
    inquiries_3: Optional[int] = Field(default=None, ge=0, le=50)
    inquiries_12: Optional[int] = Field(default=None, ge=0, le=50)
    inquiries_24: Optional[int] = Field(default=None, ge=0, le=50)

    class Config:
        extra = "ignore"

    @field_validator("date_applied")
    @classmethod
    def date_not_in_future(cls, value: date) -> date:
        if value > date.today() + DATE_APPLIED_TOLERANCE:
            raise ValueError("date_applied cannot be in the future")
        return value

    def to_record_values(self) -> Dict[str, Any]:
        """Column values for insert; keeps only the outcome field matching `result`."""
        values = self.model_dump()
        if self.result:
            values["reason_denied"] = None
        else:
            values["starting_credit_limit"] = None
        return values


def record_rules_schema() -> Dict[str, Any]:
    return RecordCreate.model_json_schema()
