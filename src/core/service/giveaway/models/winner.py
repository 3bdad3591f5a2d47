from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.core.service.giveaway.models.participant import utc_now


class WinnerRecord(BaseModel):
    """Confirmed prize winner as persisted under winner:{id}"""
    participant_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    wallet: str
    points: int = 0
    confirmed_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
