from pydantic import BaseModel, StrictBool, StrictInt
from typing import Optional
from datetime import datetime, timezone

from constants import PARTICIPATION_SENTINEL
from schemas.matches import Match


class ParticipationRecord(BaseModel):
    room_id: str
    user_key: str
    user_id: str
    candidate_id: int
    vote: bool
    is_participation: bool = False
    timestamp: datetime

    @classmethod
    def marker(cls, room_id: str, user_id: str, timestamp: Optional[datetime] = None) -> "ParticipationRecord":
        """Join marker: makes the user a participant without casting a vote."""
        return cls(
            room_id=room_id,
            user_key=f"{user_id}#JOINED",
            user_id=user_id,
            candidate_id=PARTICIPATION_SENTINEL,
            vote=False,
            is_participation=True,
            timestamp=timestamp or datetime.now(timezone.utc),
        )

    @classmethod
    def cast(cls, room_id: str, user_id: str, candidate_id: int, vote: bool,
             timestamp: Optional[datetime] = None) -> "ParticipationRecord":
        return cls(
            room_id=room_id,
            user_key=f"{user_id}#{candidate_id}",
            user_id=user_id,
            candidate_id=candidate_id,
            vote=vote,
            is_participation=False,
            timestamp=timestamp or datetime.now(timezone.utc),
        )


class VoteRequest(BaseModel):
    candidate_id: StrictInt
    vote: StrictBool

class VoteResponse(BaseModel):
    success: bool
    match: Optional[Match] = None
