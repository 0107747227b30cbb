from pydantic import BaseModel, Field, StringConstraints
from typing import Annotated, Literal

ReferralLink = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=250)]


class ReferralCreate(BaseModel):
    card_id: int = Field(..., ge=1)
    referral_link: ReferralLink


class ReferralEventCreate(BaseModel):
    referral_id: int
    event_type: Literal["impression", "click"]
