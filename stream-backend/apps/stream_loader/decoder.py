"""
Event Decoder - Raw Event Validation

Turns one raw feed event into a typed Action. Decoding is pure: it never
touches the content store or the cursor store.

Rules, applied in order:
1. exactly one subject sub-record, a numeric action ID and a non-empty
   subject ID (otherwise MALFORMED_EVENT)
2. the action type maps through the feed's lookup table (otherwise UNKNOWN_KIND)
3. for upserts, the subject document is carried through verbatim
"""

from collections.abc import Mapping

from utils.errors import DecodeError, DecodeErrorReason
from utils.schemas import Action, ActionKind, RawEvent


class EventDecoder:
    """Decoder bound to one feed's action type lookup table."""

    def __init__(self, kinds: Mapping[str, ActionKind]) -> None:
        self.kinds = dict(kinds)

    def decode(self, raw: RawEvent) -> Action:
        """
        Validate and normalize one raw event.

        Args:
            raw: Event as delivered by the page fetcher

        Returns:
            The decoded Action

        Raises:
            DecodeError: If the event is malformed or its type is unknown
        """
        if len(raw.subjects) != 1:
            raise DecodeError(
                DecodeErrorReason.MALFORMED_EVENT,
                raw.event_id,
                f"Invalid action #{raw.event_id}: does not contain exactly one article "
                f"(found {len(raw.subjects)})",
            )

        try:
            action_id = int(raw.event_id)
        except ValueError:
            raise DecodeError(
                DecodeErrorReason.MALFORMED_EVENT,
                raw.event_id,
                f"Invalid action ID: {raw.event_id!r}",
            ) from None

        subject = raw.subjects[0]
        subject_id = subject.subject_id.strip()
        if not subject_id:
            raise DecodeError(
                DecodeErrorReason.MALFORMED_EVENT,
                raw.event_id,
                f"Invalid action #{raw.event_id}: article has no ID",
            )

        kind = self.kinds.get(raw.kind)
        if kind is None:
            raise DecodeError(
                DecodeErrorReason.UNKNOWN_KIND,
                raw.event_id,
                f"Unexpected action type encountered: {raw.kind!r}",
            )

        return Action(
            id=action_id,
            kind=kind,
            subject_id=subject_id,
            payload=subject.document if kind is ActionKind.UPSERT else None,
        )
