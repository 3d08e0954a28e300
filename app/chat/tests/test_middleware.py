"""
Tests for JWT authentication on WebSocket connections.
"""

import pytest
from channels.db import database_sync_to_async
from django.contrib.auth.models import AnonymousUser

from chat.middleware import (
    JWTAuthMiddleware,
    get_token_from_query,
    get_token_from_subprotocol,
    get_user_for_token,
)
from chat.tests.conftest import access_token_for


class TestTokenExtraction:
    def test_query_string(self):
        assert get_token_from_query({"query_string": b"token=abc&x=1"}) == "abc"

    def test_query_string_missing(self):
        assert get_token_from_query({"query_string": b"x=1"}) is None
        assert get_token_from_query({}) is None

    def test_subprotocol(self):
        assert get_token_from_subprotocol({"subprotocols": ["jwt", "abc"]}) == "abc"

    @pytest.mark.parametrize("subprotocols", [[], ["jwt"], ["graphql-ws", "abc"], None])
    def test_subprotocol_missing(self, subprotocols):
        assert get_token_from_subprotocol({"subprotocols": subprotocols}) is None


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
class TestUserResolution:
    async def test_valid_token(self, poster):
        token = await _token(poster)

        user = await get_user_for_token(token)

        assert user.pk == poster.pk

    async def test_garbage_token(self):
        assert isinstance(await get_user_for_token("garbage"), AnonymousUser)

    async def test_inactive_user(self, poster):
        token = await _token(poster)
        await _deactivate(poster)

        assert isinstance(await get_user_for_token(token), AnonymousUser)

    async def test_deleted_user(self, outsider):
        token = await _token(outsider)
        await _delete(outsider)

        assert isinstance(await get_user_for_token(token), AnonymousUser)

    async def test_middleware_sets_scope_user(self, poster):
        token = await _token(poster)
        seen = {}

        async def inner(scope, receive, send):
            seen["user"] = scope["user"]

        await JWTAuthMiddleware(inner)(
            {"type": "websocket", "query_string": f"token={token}".encode()}, None, None
        )

        assert seen["user"].pk == poster.pk

    async def test_middleware_without_token_is_anonymous(self):
        seen = {}

        async def inner(scope, receive, send):
            seen["user"] = scope["user"]

        await JWTAuthMiddleware(inner)({"type": "websocket", "query_string": b""}, None, None)

        assert isinstance(seen["user"], AnonymousUser)


async def _token(user):
    return await database_sync_to_async(access_token_for)(user)


async def _deactivate(user):
    user.is_active = False
    await database_sync_to_async(user.save)(update_fields=["is_active"])


async def _delete(user):
    await database_sync_to_async(user.delete)()
