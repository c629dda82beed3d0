import logging
import os

from booking_engine.application.ports import DuplicateCheckClient, DuplicateCheckResult
from booking_engine.domain.exceptions import InfrastructureError

logger = logging.getLogger(__name__)

NO_DUPLICATES = DuplicateCheckResult(has_duplicates=False)


def _fail_open_default() -> bool:
    return os.getenv("DUPLICATE_CHECK_FAIL_OPEN", "true").strip().lower() not in {"0", "false", "no"}


def normalize_emails(emails) -> list[str]:
    seen: list[str] = []
    for email in emails:
        cleaned = (email or "").strip().casefold()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class DuplicateGuard:
    """
    Pre-submission check that attendees are not already registered.

    The check is advisory. With fail_open set (the default) a failed
    remote check reports no duplicates so a network hiccup never
    blocks a booking; the booking store still refuses duplicate rows.
    """

    def __init__(self, client: DuplicateCheckClient, fail_open: bool | None = None):
        self.client = client
        self.fail_open = _fail_open_default() if fail_open is None else fail_open

    async def check(self, event_id: str, attendee_emails) -> DuplicateCheckResult:
        emails = normalize_emails(attendee_emails)
        if not emails:
            return NO_DUPLICATES

        try:
            return await self.client.check(event_id, emails)
        except InfrastructureError:
            if not self.fail_open:
                raise
            logger.warning(
                "Duplicate check failed for event_id=%s (%s attendees); continuing without it.",
                event_id,
                len(emails),
                exc_info=True,
            )
            return NO_DUPLICATES
