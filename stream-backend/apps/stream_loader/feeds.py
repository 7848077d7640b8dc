"""
Feed Definitions

The partner API exposes several action streams with the same paging protocol.
They differ only in endpoint, action type names, the tag used inside the
query-continue block and the default page size, so each is described as data
and served by the same controller.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from utils.config import Settings
from utils.errors import ConfigurationError
from utils.schemas import ActionKind


def numeric_cursor(cursor: str) -> int:
    """Order lastId cursors numerically."""
    return int(cursor)


@dataclass(frozen=True)
class FeedDefinition:
    name: str
    endpoint: str
    kinds: dict[str, ActionKind]
    continue_param_tag: str
    page_limit: int
    cursor_key: Callable[[str], int] = field(default=numeric_cursor)

    def cursor_path(self, state_dir: str, install_id: int) -> Path:
        return Path(state_dir) / f"{self.name}-{install_id}-last-id.json"


EDITORIAL_KINDS = {
    "published": ActionKind.UPSERT,
    "unpublished": ActionKind.REMOVE,
}

RECOMMENDATION_KINDS = {
    # a recommend is either a newly recommended article or an update to one
    "recommend": ActionKind.UPSERT,
    "unrecommend": ActionKind.REMOVE,
}


def build_feeds(settings: Settings) -> dict[str, FeedDefinition]:
    """Return every known feed, keyed by name."""
    return {
        "editorial": FeedDefinition(
            name="editorial",
            endpoint=settings.EDITORIAL_ENDPOINT,
            kinds=EDITORIAL_KINDS,
            continue_param_tag="parameter",
            page_limit=settings.EDITORIAL_PAGE_LIMIT,
        ),
        "recommendations": FeedDefinition(
            name="recommendations",
            endpoint=settings.RECOMMENDATIONS_ENDPOINT,
            kinds=RECOMMENDATION_KINDS,
            continue_param_tag="param",
            page_limit=settings.RECOMMENDATIONS_PAGE_LIMIT,
        ),
    }


def get_feed(settings: Settings, name: str) -> FeedDefinition:
    """
    Look up a feed by name.

    Raises:
        ConfigurationError: If no feed has that name
    """
    feeds = build_feeds(settings)
    try:
        return feeds[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown feed {name!r}, expected one of: {', '.join(sorted(feeds))}"
        ) from None
