from pydantic import BaseModel, model_validator
from typing import Optional

from schemas.referral_schema import ReferralLink


class AdminReferralUpdate(BaseModel):
    referral_id: int
    approved: Optional[bool] = None  # approve / unapprove
    referral_link: Optional[ReferralLink] = None  # admin edit of the submitted link

    @model_validator(mode="after")
    def require_change(self):
        if self.approved is None and self.referral_link is None:
            raise ValueError("approved or referral_link is required")
        return self
