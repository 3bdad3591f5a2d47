from typing import List, Optional

from src.core.exceptions.base import InvalidWalletError
from src.core.logger.logger import get_logger
from src.core.service.giveaway.cache.winner_store import WinnerStore
from src.core.service.giveaway.ledger import ParticipantLedger
from src.core.service.giveaway.models.participant import utc_now
from src.core.service.giveaway.models.winner import WinnerRecord

logger = get_logger(__name__)


class WinnerService:
    """
    Prize winner confirmation.

    An operator picks a winner and settles the payout wallet with them: a
    candidate wallet can be parked while the participant is asked to
    confirm or replace it, and confirming snapshots the participant's
    display, contact and points into the winner record.
    """

    def __init__(self, winners: WinnerStore, ledger: ParticipantLedger):
        self.winners = winners
        self.ledger = ledger

    async def get_winner(self, participant_id: int) -> Optional[WinnerRecord]:
        return await self.winners.get(participant_id)

    async def has_winner(self, participant_id: int) -> bool:
        return await self.winners.exists(participant_id)

    async def list_winners(self) -> List[WinnerRecord]:
        """Winners in confirmation order"""
        winners = await self.winners.list_all()
        return sorted(winners, key=lambda record: record.confirmed_at)

    async def confirm_winner(self, participant_id: int, wallet: str) -> WinnerRecord:
        """Record the participant as a winner; re-confirming keeps the original confirmation time"""
        wallet = (wallet or "").strip()
        if not wallet:
            raise InvalidWalletError(participant_id)

        existing = await self.winners.get(participant_id)
        participant = await self.ledger.get_or_create(participant_id)
        now = utc_now()
        record = WinnerRecord(
            participant_id=participant_id,
            username=participant.username,
            first_name=participant.first_name,
            last_name=participant.last_name,
            email=participant.email,
            wallet=wallet,
            points=participant.points,
            confirmed_at=existing.confirmed_at if existing else now,
            updated_at=now,
        )
        await self.winners.save_confirmed(record)

        logger.info(
            "Winner confirmed",
            extra={"participant_id": participant_id, "points": record.points, "reconfirmed": existing is not None}
        )
        return record

    async def get_candidate_wallet(self, participant_id: int) -> Optional[str]:
        return await self.winners.get_candidate_wallet(participant_id)

    async def save_candidate_wallet(self, participant_id: int, wallet: str) -> None:
        """Park a wallet awaiting confirmation; blank input is ignored"""
        wallet = (wallet or "").strip()
        if not wallet:
            return
        await self.winners.save_candidate_wallet(participant_id, wallet)

    async def clear_candidate_wallet(self, participant_id: int) -> None:
        await self.winners.clear_candidate_wallet(participant_id)

    async def begin_wallet_update(self, participant_id: int) -> None:
        await self.winners.mark_awaiting_wallet(participant_id)

    async def finish_wallet_update(self, participant_id: int) -> None:
        await self.winners.clear_awaiting_wallet(participant_id)

    async def is_awaiting_wallet(self, participant_id: int) -> bool:
        return await self.winners.is_awaiting_wallet(participant_id)

    async def resolve_wallet_hint(self, participant_id: int) -> Optional[str]:
        """Best wallet to suggest: parked candidate, then the winner record, then the participant's own"""
        candidate = await self.winners.get_candidate_wallet(participant_id)
        if candidate:
            return candidate
        winner = await self.winners.get(participant_id)
        if winner and winner.wallet:
            return winner.wallet
        participant = await self.ledger.get(participant_id)
        return participant.wallet if participant else None
