from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


def make_match_id(room_id: str, candidate_id: int) -> str:
    return f"{room_id}#{candidate_id}"


class Match(BaseModel):
    id: str
    room_id: str
    candidate_id: int
    title: str
    poster_path: Optional[str] = None
    matched_users: list[str] = Field(default_factory=list)
    timestamp: datetime

    @property
    def score(self) -> float:
        """Sort score used by the room/user match indexes."""
        return self.timestamp.timestamp()


class MatchEvent(BaseModel):
    """Payload broadcast on the room and user channels when a match is created."""
    room_id: str
    match_id: str
    candidate_id: int
    title: str
    poster_path: Optional[str] = None
    matched_users: list[str] = Field(default_factory=list)
    timestamp: datetime

    @classmethod
    def from_match(cls, match: Match) -> "MatchEvent":
        return cls(
            room_id=match.room_id,
            match_id=match.id,
            candidate_id=match.candidate_id,
            title=match.title,
            poster_path=match.poster_path,
            matched_users=list(match.matched_users),
            timestamp=match.timestamp,
        )

    def to_match(self) -> Match:
        return Match(
            id=self.match_id,
            room_id=self.room_id,
            candidate_id=self.candidate_id,
            title=self.title,
            poster_path=self.poster_path,
            matched_users=list(self.matched_users),
            timestamp=self.timestamp,
        )
