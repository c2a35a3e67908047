from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from feedcycle.directory.directory_client import SourceDirectoryClient, flatten_users
from feedcycle.feeds.feed import DirectoryUser
from feedcycle.main.exceptions import DirectoryUnavailableException


def make_session(status: int = 200, body=None, error: Exception | None = None):
    """aiohttp ClientSession double whose get() yields one canned response."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=body if body is not None else [])

    request_ctx = MagicMock()
    if error is not None:
        request_ctx.__aenter__ = AsyncMock(side_effect=error)
    else:
        request_ctx.__aenter__ = AsyncMock(return_value=response)
    request_ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.get = MagicMock(return_value=request_ctx)
    return session


def make_client(test_settings, session, token_factory=None):
    return SourceDirectoryClient(
        session_factory=lambda: session,
        settings=test_settings,
        token_factory=token_factory or (lambda: "token"),
    )


USERS = [
    {
        "id": 1,
        "displayName": "Alice",
        "feeds": [
            {"url": "https://alice.test/rss", "link": "https://alice.test"},
            "https://alice.test/atom",
        ],
    },
    {"id": 2, "isFlagged": True, "feeds": ["https://spam.test/rss", "https://spam.test/2"]},
    {"id": 3, "firstName": "Carol", "lastName": "Jones", "feeds": []},
    {"id": 4, "feeds": None},
    {"id": 5, "feeds": [{"url": "https://dave.test/rss", "author": "Dave D."}]},
]


@pytest.mark.asyncio
async def test_fetch_sends_bearer_token_to_directory_root(test_settings):
    session = make_session(body=[])
    client = make_client(test_settings, session, token_factory=lambda: "abc.def.ghi")

    await client.fetch()

    args, kwargs = session.get.call_args
    assert args[0] == "http://directory.test/"
    assert kwargs["headers"] == {"Authorization": "bearer abc.def.ghi"}
    assert kwargs["timeout"].total == test_settings.directory_timeout_seconds


@pytest.mark.asyncio
async def test_fetch_mints_new_token_per_call(test_settings):
    session = make_session(body=[])
    token_factory = MagicMock(side_effect=["first", "second"])
    client = make_client(test_settings, session, token_factory=token_factory)

    await client.fetch()
    await client.fetch()

    assert token_factory.call_count == 2
    headers = [call.kwargs["headers"]["Authorization"] for call in session.get.call_args_list]
    assert headers == ["bearer first", "bearer second"]


@pytest.mark.asyncio
async def test_fetch_flattens_and_excludes_flagged_users(test_settings):
    client = make_client(test_settings, make_session(body=USERS))

    result = await client.fetch()

    assert [s.url for s in result.sources] == [
        "https://alice.test/rss",
        "https://alice.test/atom",
        "https://dave.test/rss",
    ]
    assert result.excluded_flagged == 2


@pytest.mark.asyncio
async def test_fetch_sources_returns_only_sources(test_settings):
    client = make_client(test_settings, make_session(body=USERS))

    sources = await client.fetch_sources()

    assert len(sources) == 3


@pytest.mark.asyncio
async def test_empty_directory_yields_no_sources(test_settings):
    client = make_client(test_settings, make_session(body=[]))

    result = await client.fetch()

    assert result.sources == []
    assert result.excluded_flagged == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403, 500, 503])
async def test_non_200_raises_directory_unavailable(test_settings, status):
    client = make_client(test_settings, make_session(status=status))

    with pytest.raises(DirectoryUnavailableException) as exc_info:
        await client.fetch()

    assert exc_info.value.status_code == status


@pytest.mark.asyncio
async def test_transport_error_raises_directory_unavailable(test_settings):
    session = make_session(error=aiohttp.ClientConnectionError("connection reset"))
    client = make_client(test_settings, session)

    with pytest.raises(DirectoryUnavailableException) as exc_info:
        await client.fetch()

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_timeout_raises_directory_unavailable(test_settings):
    session = make_session(error=TimeoutError())
    client = make_client(test_settings, session)

    with pytest.raises(DirectoryUnavailableException):
        await client.fetch()


@pytest.mark.asyncio
async def test_invalid_json_raises_directory_unavailable(test_settings):
    session = make_session()
    response = await session.get().__aenter__()
    response.json.side_effect = ValueError("Expecting value")
    client = make_client(test_settings, session)

    with pytest.raises(DirectoryUnavailableException):
        await client.fetch()


@pytest.mark.asyncio
async def test_unexpected_payload_shape_raises_directory_unavailable(test_settings):
    client = make_client(test_settings, make_session(body={"users": []}))

    with pytest.raises(DirectoryUnavailableException):
        await client.fetch()


def test_flatten_users_fills_author_and_owner():
    users = [DirectoryUser.model_validate(u) for u in USERS]

    result = flatten_users(users)

    alice_rss, alice_atom, dave = result.sources
    assert alice_rss.author == "Alice"
    assert alice_rss.link == "https://alice.test"
    assert alice_rss.owner == "1"
    assert alice_atom.author == "Alice"
    assert alice_atom.link is None
    assert dave.author == "Dave D."
    assert dave.owner == "5"


def test_flatten_users_skips_blank_urls():
    users = [
        DirectoryUser.model_validate(
            {"id": 9, "feeds": ["", {"url": "   "}, {"link": "x"}, "https://ok.test/rss"]}
        )
    ]

    result = flatten_users(users)

    assert [s.url for s in result.sources] == ["https://ok.test/rss"]


def test_flagged_user_with_no_feeds_excludes_nothing():
    users = [DirectoryUser.model_validate({"id": 1, "isFlagged": True, "feeds": []})]

    result = flatten_users(users)

    assert result.sources == []
    assert result.excluded_flagged == 0


def test_author_name_uses_first_and_last_name():
    user = DirectoryUser.model_validate({"firstName": "Carol", "lastName": "Jones"})

    assert user.author_name == "Carol Jones"
    assert DirectoryUser.model_validate({}).author_name is None
