"""Per-address bounce score, applied at most once per address per day."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from mail_receiver.config.receiver_config import ReceiverConfig
from mail_receiver.models.bounce_record import BounceRecord
from mail_receiver.services.collaborators.base import IdentityDirectory
from mail_receiver.storage.database import BounceRecordRepository
from mail_receiver.storage.once_keys import OnceKeyStore

logger = logging.getLogger(__name__)

# The daily marker outlives the calendar day it marks
DAILY_MARKER_TTL_SECONDS = 25 * 60 * 60


class BounceScoreUpdater:
    """
    Accumulate bounce scores and apply threshold effects.

    Reaching ``bounce_score_threshold_deactivate`` deactivates the identity
    owning the address if it is still active. Otherwise reaching
    ``bounce_score_threshold`` revokes email delivery to it, which is
    logged for the outbound side to act on.
    """

    def __init__(
        self,
        config: ReceiverConfig,
        repository: BounceRecordRepository,
        once_keys: OnceKeyStore,
        identities: IdentityDirectory,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.repository = repository
        self.once_keys = once_keys
        self.identities = identities
        self.clock = clock

    def score_for(self, bounce_is_soft: bool) -> int:
        return self.config.soft_bounce_score if bounce_is_soft else self.config.hard_bounce_score

    def update(self, email: Optional[str], score: int) -> bool:
        """
        Add ``score`` to the address's bounce score.

        Args:
            email: Bounced address
            score: Score to add

        Returns:
            True if the score changed, False if the address was already
            scored today or there is no address
        """
        if not email:
            return False

        email = email.lower()
        now = self.clock()

        if not self.once_keys.set_once(f"bounce_score:{email}:{now.date().isoformat()}", DAILY_MARKER_TTL_SECONDS):
            logger.debug(f"Bounce score for {email} already updated today")
            return False

        record = self.repository.find(email) or BounceRecord(email=email)
        record.score = record.effective_score(now) + score
        record.reset_after = now + timedelta(days=self.config.reset_bounce_score_after_days)
        self.repository.save(record)

        logger.info(f"Bounce score for {email} is now {record.score}")
        self._apply_thresholds(email, record.score)
        return True

    def _apply_thresholds(self, email: str, new_score: int) -> None:
        identity = self.identities.find_by_email(email)

        if identity is not None and identity.active and new_score >= self.config.bounce_score_threshold_deactivate:
            self.identities.deactivate(identity, f"bounce score reached {new_score}")
            logger.warning(f"Deactivated {email} after bounce score {new_score}")
        elif new_score >= self.config.bounce_score_threshold:
            logger.warning(f"Revoking email delivery to {email} after bounce score {new_score}")
