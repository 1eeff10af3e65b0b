import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from booking_engine.core.config import settings
from booking_engine.core.security import current_user
from booking_engine.services.db_service import db_service


@pytest.fixture
def supabase_auth():
    client = MagicMock()
    client.auth.get_user = AsyncMock()
    with patch.object(settings, "SUPABASE_URL", "https://project.supabase.co"), \
         patch.object(settings, "SUPABASE_KEY", "anon-key"), \
         patch.object(db_service, "get_client", AsyncMock(return_value=client)):
        yield client


@pytest.mark.asyncio
async def test_no_header_means_no_user(supabase_auth):
    assert await current_user(None) is None
    assert await current_user("Basic abc") is None
    supabase_auth.auth.get_user.assert_not_called()


@pytest.mark.asyncio
async def test_session_token_resolved_to_user(supabase_auth):
    supabase_auth.auth.get_user.return_value = MagicMock(user=MagicMock(id="3f0e5c1a"))

    user = await current_user("Bearer jwt-token")

    assert user.id == "3f0e5c1a"
    supabase_auth.auth.get_user.assert_awaited_once_with("jwt-token")


@pytest.mark.asyncio
async def test_rejected_token_means_no_user(supabase_auth):
    supabase_auth.auth.get_user.side_effect = RuntimeError("invalid JWT")

    assert await current_user("Bearer expired") is None


@pytest.mark.asyncio
async def test_development_mode_uses_token_as_customer_id():
    with patch.object(settings, "SUPABASE_URL", ""), patch.object(settings, "ENVIRONMENT", "development"):
        user = await current_user("Bearer customer-42")

    assert user.id == "customer-42"


@pytest.mark.asyncio
async def test_no_auth_backend_outside_development():
    with patch.object(settings, "SUPABASE_URL", ""), patch.object(settings, "ENVIRONMENT", "production"):
        assert await current_user("Bearer customer-42") is None
