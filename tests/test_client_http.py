import httpx
import pytest

from leadcrm.client import Session
from leadcrm.core.exceptions import (
    AccountInactiveError,
    APIError,
    AuthenticationError,
    AuthorizationError,
    ServiceUnavailableError,
    SubscriptionInactiveError,
    ValidationError,
)
from leadcrm.models.lead import LeadStatus
from leadcrm.models.user import Role


def mock_transport(status_code=200, body=None, error=None):
    def handler(request):
        if error is not None:
            raise error(f"cannot reach {request.url.host}", request=request)
        return httpx.Response(status_code, json=body if body is not None else {})
    return httpx.MockTransport(handler)


def test_session_rules():
    with pytest.raises(ValueError):
        Session(Role.PROVIDER, token="t")

    session = Session("provider", token="t", provider_id=3)
    assert session.login_path == "/provider/login"
    assert session.route_prefix == "/provider"
    assert session.authorization_header() == {"Authorization": "Bearer t"}

    cleared = []
    remove = session.on_clear(cleared.append)
    session.clear()
    session.clear()
    assert cleared == [session]
    assert session.authorization_header() == {}

    remove()
    session.set_token("again")
    session.clear()
    assert len(cleared) == 1


@pytest.mark.asyncio
async def test_submit_and_read_back(make_api, admin_token, lead_payload):
    async with make_api(token=admin_token) as api:
        created = await api.submit_lead(lead_payload())
        fetched = await api.get_lead(created.id)
        notes = await api.list_notes(created.id)

    assert fetched.service_provider.name == "Alice Roofing"
    assert fetched.status is LeadStatus.NEW
    assert notes[0].note == "Lead assigned to Alice Roofing (round_robin)"


@pytest.mark.asyncio
async def test_unauthorized_clears_session_and_points_to_login(make_api):
    async with make_api(token="expired-or-forged") as api:
        cleared = []
        api.session.on_clear(cleared.append)

        with pytest.raises(AuthenticationError) as exc_info:
            await api.list_leads()
        assert exc_info.value.redirect_to == "/admin/login"
        assert api.session.token is None

        # The follow-up request goes out without a token and clears nothing new
        with pytest.raises(AuthenticationError) as exc_info:
            await api.unread_count()
        assert exc_info.value.code == "missing_token"

    assert cleared == [api.session]


@pytest.mark.asyncio
async def test_subscription_inactive(make_api, provider_token):
    async with make_api(Role.PROVIDER, token=provider_token(4), provider_id=4) as api:
        with pytest.raises(SubscriptionInactiveError) as exc_info:
            await api.list_leads()

        assert exc_info.value.redirect_to == "/provider/subscription"
        assert api.session.is_authenticated


@pytest.mark.asyncio
async def test_account_inactive(make_api, provider_token):
    async with make_api(Role.PROVIDER, token=provider_token(5), provider_id=5) as api:
        with pytest.raises(AccountInactiveError):
            await api.list_leads()


@pytest.mark.asyncio
async def test_plain_forbidden_stays_authorization_error(make_api, admin_token, provider_token, lead_payload):
    async with make_api(token=admin_token) as admin_api:
        lead = await admin_api.submit_lead(lead_payload())

    async with make_api(Role.PROVIDER, token=provider_token(2), provider_id=2) as api:
        with pytest.raises(AuthorizationError) as exc_info:
            await api.update_lead(lead.id, "closed")

    assert type(exc_info.value) is AuthorizationError
    assert exc_info.value.code == "lead_not_assigned"


@pytest.mark.asyncio
async def test_validation_errors_reach_caller(make_api, provider_token, lead_payload):
    async with make_api(Role.PROVIDER, token=provider_token(1), provider_id=1) as api:
        lead = await api.submit_lead(lead_payload())
        with pytest.raises(ValidationError) as exc_info:
            await api.add_note(lead.id, "")

    assert "note" in exc_info.value.field_errors


@pytest.mark.asyncio
async def test_uncoded_403_on_provider_lead_route_means_subscription(make_api):
    async with make_api(Role.PROVIDER, token="t", provider_id=1, transport=mock_transport(403)) as api:
        with pytest.raises(SubscriptionInactiveError):
            await api.list_leads()
        with pytest.raises(AuthorizationError) as exc_info:
            await api.list_notifications()

    assert exc_info.value.code == "forbidden"


@pytest.mark.asyncio
async def test_legacy_validation_body(make_api):
    transport = mock_transport(422, {"message": "The given data was invalid.", "errors": {"email": "taken"}})
    async with make_api(token="t", transport=transport) as api:
        with pytest.raises(ValidationError) as exc_info:
            await api.unread_count()

    assert exc_info.value.field_errors == {"email": "taken"}
    assert exc_info.value.message == "The given data was invalid."


@pytest.mark.asyncio
async def test_server_error_and_transport_error(make_api):
    async with make_api(token="t", transport=mock_transport(500, {"message": "boom"})) as api:
        with pytest.raises(APIError) as exc_info:
            await api.unread_count()
    assert exc_info.value.status_code == 500

    async with make_api(token="t", transport=mock_transport(error=httpx.ConnectError)) as api:
        with pytest.raises(ServiceUnavailableError) as exc_info:
            await api.unread_count()
    assert exc_info.value.code == "transport_error"
    assert api.session.is_authenticated


@pytest.mark.asyncio
async def test_admin_provider_management(make_api, admin_token):
    async with make_api(token=admin_token) as api:
        provider = await api.set_provider_active(2, False)
        assert provider.is_active is False

        location = await api.assign_providers(3, [1, 2])
        assert location.service_provider_ids == [1, 2]

        config = await api.realtime_config()
        assert config.usable
