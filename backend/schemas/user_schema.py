from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class CurrentUser(BaseModel):
    """Authenticated caller, built from verified identity token claims."""
    subject_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    claims: Dict[str, Any] = Field(default_factory=dict)
    is_admin: bool = False

    class Config:
        extra = "ignore"


class WalletCardCreate(BaseModel):
    card_id: int = Field(..., ge=1)
    acquired_month: Optional[int] = Field(default=None, ge=1, le=12)
    acquired_year: Optional[int] = Field(default=None, ge=1900, le=2100)


class WalletCardUpdate(BaseModel):
    acquired_month: Optional[int] = Field(default=None, ge=1, le=12)
    acquired_year: Optional[int] = Field(default=None, ge=1900, le=2100)
