"""
Stream Page Fetcher - Partner API Client

Fetches one page of the action stream over HTTP and parses the XML body into
a Page of raw events.

Response layout:

    <stream>
      <actions>
        <action actionId="12" type="published">
          <article articleId="345">...</article>
        </action>
      </actions>
      <query-continue>
        <parameter name="lastId">12</parameter>
      </query-continue>
    </stream>

The query-continue block is optional; when present it must hold exactly one
lastId parameter. The parameter tag differs per feed ("parameter" or "param").

Features:
- httpx async client with configurable timeout
- Retry with exponential backoff on transport errors (tenacity)
- API key redacted from logged URLs
"""

import logging
import xml.etree.ElementTree as ET
from typing import Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from apps.stream_loader.feeds import FeedDefinition
from utils.errors import FetchError
from utils.schemas import Page, RawEvent, RawSubject

logger = logging.getLogger(__name__)


def parse_stream_page(body: bytes, continue_param_tag: str = "parameter") -> Page:
    """
    Parse a stream response body.

    Args:
        body: Raw XML response
        continue_param_tag: Tag of the parameters inside query-continue

    Returns:
        Page with raw events in feed order and the continuation cursor, if any

    Raises:
        FetchError: If the body is not XML or the query-continue block is invalid
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise FetchError(f"Unable to parse stream response: {e}") from e

    events = []
    for action in root.findall("actions/action"):
        subjects = []
        for article in action.iter("article"):
            article.tail = None
            subjects.append(
                RawSubject(
                    subject_id=article.get("articleId", ""),
                    document=ET.tostring(article, encoding="utf-8"),
                )
            )
        events.append(
            RawEvent(
                event_id=action.get("actionId", ""),
                kind=action.get("type", ""),
                subjects=subjects,
            )
        )

    continue_blocks = root.findall("query-continue")
    if len(continue_blocks) > 1:
        raise FetchError("Invalid stream response: more than one query-continue block")

    next_cursor = None
    if continue_blocks:
        last_ids = continue_blocks[0].findall(f"{continue_param_tag}[@name='lastId']")
        if len(last_ids) != 1:
            raise FetchError(
                "Invalid query-continue block: does not contain exactly one lastId parameter"
            )
        next_cursor = (last_ids[0].text or "").strip()
        if not next_cursor:
            raise FetchError("Invalid query-continue block: empty lastId parameter")

    return Page(events=events, next_cursor=next_cursor)


class HttpPageFetcher:
    """
    Page fetcher for one feed installation.

    Usage:
        async with HttpPageFetcher(feed, install_id=42, api_key="...") as fetcher:
            page = await fetcher.fetch(cursor=None, limit=20)
    """

    def __init__(
        self,
        feed: FeedDefinition,
        install_id: int,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30,
        max_retries: int = 3,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        self.feed = feed
        self.install_id = install_id
        self.api_key = api_key
        self.max_retries = max_retries
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "HttpPageFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            await self.client.aclose()

    def build_url(self, cursor: Optional[str], limit: Optional[int]) -> httpx.URL:
        params: dict[str, str | int] = {"key": self.api_key, "install": self.install_id}
        if cursor is not None:
            params["lastId"] = cursor
        if limit is not None:
            params["limit"] = limit
        return httpx.URL(self.feed.endpoint, params=params)

    async def fetch(self, cursor: Optional[str], limit: Optional[int]) -> Page:
        """
        Fetch one page of the stream.

        Args:
            cursor: Last committed cursor, None for the start of the stream
            limit: Page size

        Returns:
            Parsed page

        Raises:
            FetchError: On network failure, non-success status or unparseable body
        """
        url = self.build_url(cursor, limit)
        logger.info(
            "Calling service",
            extra={"feed": self.feed.name, "url": str(url.copy_set_param("key", "***"))},
        )

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(self.max_retries),
                wait=self.retry_wait,
                reraise=True,
            ):
                with attempt:
                    response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"Stream request failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Stream request failed: {e.__class__.__name__}: {e}") from e

        return parse_stream_page(response.content, self.feed.continue_param_tag)
