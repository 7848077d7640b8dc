"""
Action Dispatcher - Routes Actions to Store Mutations

Upserts overwrite unconditionally and removes of absent records succeed, so
replaying a page yields the same store state as applying it once. The
existence check only feeds diagnostics.
"""

import logging

from utils.schemas import Action, ActionApplied, ActionKind
from utils.store import ContentStore

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """Applies decoded actions to a content store."""

    def __init__(self, feed: str) -> None:
        self.feed = feed

    def apply(self, action: Action, store: ContentStore) -> ActionApplied:
        """
        Apply one action.

        Args:
            action: Decoded action
            store: Content store partition of the feed

        Returns:
            ActionApplied event describing what happened

        Raises:
            StoreError: If the store mutation fails
        """
        existed = store.exists(action.subject_id)

        if action.kind is ActionKind.UPSERT:
            store.upsert(action.subject_id, action.payload, action_id=action.id)
        elif action.kind is ActionKind.REMOVE:
            store.remove(action.subject_id)
        else:
            raise ValueError(f"Unhandled action kind: {action.kind}")

        logger.debug(
            "Applied action",
            extra={"action_id": action.id, "kind": action.kind.value, "subject_id": action.subject_id},
        )

        return ActionApplied(
            feed=self.feed,
            id=action.id,
            kind=action.kind,
            subject_id=action.subject_id,
            existed=existed,
        )
