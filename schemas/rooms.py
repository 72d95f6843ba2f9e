from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class Candidate(BaseModel):
    id: int
    title: str
    overview: str = ""
    poster_path: Optional[str] = None
    release_date: str = ""
    kind: str = "MOVIE"


class Room(BaseModel):
    id: str
    code: str
    host_id: str
    kind: str
    tags: list[int] = Field(default_factory=list)
    candidates: list[Candidate] = Field(default_factory=list)
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def get_candidate(self, candidate_id: int) -> Optional[Candidate]:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None


class CreateRoomRequest(BaseModel):
    kind: str
    tags: list[int] = Field(default_factory=list)

class JoinRoomRequest(BaseModel):
    code: str
