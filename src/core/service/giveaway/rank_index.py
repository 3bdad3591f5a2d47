from typing import List, Optional

from pydantic import BaseModel

from src.core.service.giveaway.cache.participant_store import ParticipantStore
from src.core.service.giveaway.models.participant import Participant


class RankInfo(BaseModel):
    rank: int
    points: int
    total: int


def leaderboard_order(participants: List[Participant]) -> List[Participant]:
    """Points descending; earlier registration wins ties"""
    return sorted(participants, key=lambda p: (-p.points, p.created_at))


class RankIndex:
    """Leaderboard computed on read from a full participant scan"""

    def __init__(self, participant_store: ParticipantStore):
        self.store = participant_store

    async def top(self, limit: int) -> List[Participant]:
        ordered = leaderboard_order(await self.store.list_all())
        if limit <= 0:
            return ordered
        return ordered[:limit]

    async def rank_of(self, participant_id: int) -> Optional[RankInfo]:
        """Dense rank: equal points share a rank, the next lower value gets rank + 1"""
        ordered = leaderboard_order(await self.store.list_all())
        rank = 0
        previous_points = None
        for participant in ordered:
            if previous_points is None or participant.points < previous_points:
                rank += 1
                previous_points = participant.points
            if participant.participant_id == participant_id:
                return RankInfo(rank=rank, points=participant.points, total=len(ordered))
        return None
