import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional

import aiohttp
from pydantic import TypeAdapter, ValidationError

from feedcycle.directory.service_token import create_service_token
from feedcycle.feeds.feed import DirectoryFeed, DirectoryUser, DiscoveredSource
from feedcycle.main.aiohttp_client import aiohttp_client
from feedcycle.main.config import Settings, get_settings
from feedcycle.main.exceptions import DirectoryUnavailableException
from feedcycle.main.logging import get_logger

logger = get_logger(__name__)

_users_adapter = TypeAdapter(list[DirectoryUser])


@dataclass
class DirectoryFetchResult:
    sources: list[DiscoveredSource] = field(default_factory=list)
    excluded_flagged: int = 0


def flatten_users(users: list[DirectoryUser]) -> DirectoryFetchResult:
    """Flatten per-user feed lists, dropping every feed of a flagged user."""
    result = DirectoryFetchResult()

    for user in users:
        if user.is_flagged:
            result.excluded_flagged += len(user.feeds)
            continue

        owner = str(user.id) if user.id is not None else None
        for entry in user.feeds:
            if isinstance(entry, DirectoryFeed):
                url, author, link = entry.url, entry.author, entry.link
            else:
                url, author, link = entry, None, None

            if not url or not url.strip():
                logger.warning("Skipping directory feed without url", extra={"owner": owner})
                continue

            result.sources.append(
                DiscoveredSource(
                    url=url,
                    author=author or user.author_name,
                    link=link,
                    owner=owner,
                )
            )

    return result


class SourceDirectoryClient:
    """Reads the current list of feed sources from the directory service."""

    def __init__(
        self,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp_client,
        settings: Optional[Settings] = None,
        token_factory: Callable[[], str] = create_service_token,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._token_factory = token_factory

    async def fetch(self) -> DirectoryFetchResult:
        url = f"{self._settings.directory_url}/"
        # New token for every request, never reused across calls
        headers = {"Authorization": f"bearer {self._token_factory()}"}
        timeout = aiohttp.ClientTimeout(total=self._settings.directory_timeout_seconds)

        try:
            async with self._session_factory().get(
                url, headers=headers, timeout=timeout
            ) as response:
                if response.status != 200:
                    raise DirectoryUnavailableException(
                        f"Directory responded with status {response.status}",
                        status_code=response.status,
                    )
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise DirectoryUnavailableException(
                f"Unable to read directory at {url}: {exc}"
            ) from exc

        try:
            users = _users_adapter.validate_python(body)
        except ValidationError as exc:
            raise DirectoryUnavailableException(
                f"Directory returned an unexpected payload: {exc.error_count()} errors"
            ) from exc

        result = flatten_users(users)
        logger.info(
            f"Fetched {len(result.sources)} feed sources from directory",
            extra={
                "users": len(users),
                "sources": len(result.sources),
                "excluded_flagged": result.excluded_flagged,
            },
        )
        return result

    async def fetch_sources(self) -> list[DiscoveredSource]:
        result = await self.fetch()
        return result.sources
