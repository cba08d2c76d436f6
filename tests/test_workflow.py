import pytest

from leadcrm.core.exceptions import (
    AccountInactiveError,
    AuthorizationError,
    NotFoundError,
    SubscriptionInactiveError,
)
from leadcrm.models.lead import LeadStatus, NoteType
from leadcrm.models.notification import EventType
from leadcrm.schemas.leads import LeadCreate, LeadFilters
from leadcrm.services.events import ADMIN_CHANNEL, provider_channel
from leadcrm.services.notifications import ADMIN_AUDIENCE, provider_audience


def record_channel(bus, channel):
    received = []
    bus.subscribe_all(channel, received.append)
    return received


@pytest.mark.asyncio
async def test_submit_assigns_round_robin_and_fans_out(container, lead_payload):
    workflow = container.workflow
    admin_events = record_channel(container.event_bus, ADMIN_CHANNEL)
    alice_events = record_channel(container.event_bus, provider_channel(1))

    first = await workflow.submit_lead(LeadCreate(**lead_payload()))
    second = await workflow.submit_lead(LeadCreate(**lead_payload(name="John")))
    third = await workflow.submit_lead(LeadCreate(**lead_payload(name="Mia")))
    fourth = await workflow.submit_lead(LeadCreate(**lead_payload(name="Kai")))

    # Dave (no subscription) and Eve (inactive) are never in the rotation
    assert [lead.service_provider_id for lead in (first, second, third, fourth)] == [1, 2, 3, 1]
    assert first.status is LeadStatus.NEW

    note = first.note_log[0]
    assert note.type is NoteType.ASSIGNMENT
    assert note.note == "Lead assigned to Alice Roofing (round_robin)"

    assert [event.event_type for event in admin_events] == [EventType.LEAD_ASSIGNED] * 4
    assert [event.lead_id for event in alice_events] == [first.id, fourth.id]
    assert alice_events[0].display_message() == "New lead assigned: Jane Homeowner"

    assert container.inbox.unread_count(ADMIN_AUDIENCE) == 4
    assert container.inbox.unread_count(provider_audience(1)) == 2


@pytest.mark.asyncio
async def test_manual_location_leaves_lead_unassigned(container, lead_payload):
    admin_events = record_channel(container.event_bus, ADMIN_CHANNEL)

    lead = await container.workflow.submit_lead(LeadCreate(**lead_payload(location_slug="dallas")))

    assert lead.service_provider_id is None
    assert lead.note_log == []
    assert admin_events == []


@pytest.mark.asyncio
async def test_empty_pool_never_fails_submission(container, lead_payload):
    lead = await container.workflow.submit_lead(LeadCreate(**lead_payload(location_slug="houston")))

    assert lead.id in container.store.leads
    assert lead.service_provider_id is None


@pytest.mark.asyncio
async def test_unknown_location_is_not_found(container, lead_payload):
    with pytest.raises(NotFoundError):
        await container.workflow.submit_lead(LeadCreate(**lead_payload(location_slug="nowhere")))
    assert container.store.leads == {}


@pytest.mark.asyncio
async def test_status_update_writes_note_and_event(container, lead_payload, provider_principal):
    workflow = container.workflow
    lead = await workflow.submit_lead(LeadCreate(**lead_payload()))
    events = record_channel(container.event_bus, provider_channel(1))

    await workflow.update_lead(provider_principal(1), lead.id, LeadStatus.CONTACTED)

    assert lead.status is LeadStatus.CONTACTED
    note = lead.note_log[-1]
    assert note.type is NoteType.STATUS_CHANGE
    assert note.note == "Status changed from new to contacted"
    assert note.service_provider_id == 1
    assert note.service_provider_name == "Alice Roofing"

    assert len(events) == 1
    assert events[0].old_status is LeadStatus.NEW
    assert events[0].new_status is LeadStatus.CONTACTED


@pytest.mark.asyncio
async def test_same_status_update_is_silent(container, lead_payload, admin_principal):
    workflow = container.workflow
    lead = await workflow.submit_lead(LeadCreate(**lead_payload()))
    notes_before = list(lead.note_log)
    events = record_channel(container.event_bus, ADMIN_CHANNEL)

    await workflow.update_lead(admin_principal, lead.id, LeadStatus.NEW)
    await workflow.update_lead(admin_principal, lead.id, None)

    assert lead.note_log == notes_before
    assert events == []


@pytest.mark.asyncio
async def test_provider_cannot_touch_other_providers_lead(container, lead_payload, provider_principal):
    workflow = container.workflow
    lead = await workflow.submit_lead(LeadCreate(**lead_payload()))
    assert lead.service_provider_id == 1
    notes_before = list(lead.note_log)

    with pytest.raises(AuthorizationError) as exc_info:
        await workflow.update_lead(provider_principal(2), lead.id, LeadStatus.CLOSED)
    assert exc_info.value.code == "lead_not_assigned"

    with pytest.raises(AuthorizationError):
        await workflow.add_note(provider_principal(2), lead.id, "Mine now")

    assert lead.status is LeadStatus.NEW
    assert lead.note_log == notes_before


def test_inactive_account_rejected_before_subscription(container, provider_principal):
    with pytest.raises(AccountInactiveError):
        container.workflow.provider_for(provider_principal(5), require_subscription=True)

    with pytest.raises(SubscriptionInactiveError) as exc_info:
        container.workflow.list_leads(provider_principal(4))
    assert exc_info.value.redirect_to == "/provider/subscription"


@pytest.mark.asyncio
async def test_notes_carry_author(container, lead_payload, admin_principal, provider_principal):
    workflow = container.workflow
    lead = await workflow.submit_lead(LeadCreate(**lead_payload()))
    events = record_channel(container.event_bus, ADMIN_CHANNEL)

    admin_note = await workflow.add_note(admin_principal, lead.id, "Customer prefers mornings")
    provider_note = await workflow.add_note(provider_principal(1), lead.id, "Scheduled visit")

    assert (admin_note.user_id, admin_note.user_name) == (1, "Ada Admin")
    assert provider_note.service_provider_id == 1
    assert [note.id for note in workflow.list_notes(admin_principal, lead.id)][-2:] == [admin_note.id, provider_note.id]
    assert [event.note_id for event in events] == [admin_note.id, provider_note.id]


@pytest.mark.asyncio
async def test_admin_reassign(container, lead_payload, admin_principal, provider_principal):
    workflow = container.workflow
    lead = await workflow.submit_lead(LeadCreate(**lead_payload(location_slug="dallas")))
    bob_events = record_channel(container.event_bus, provider_channel(2))

    await workflow.reassign_lead(admin_principal, lead.id, 2)

    assert lead.service_provider_id == 2
    assert lead.note_log[-1].note == "Lead reassigned to Bob Builders"
    assert [event.event_type for event in bob_events] == [EventType.LEAD_ASSIGNED]

    with pytest.raises(AuthorizationError):
        await workflow.reassign_lead(provider_principal(2), lead.id, 1)


@pytest.mark.asyncio
async def test_provider_listing_is_scoped(container, lead_payload, admin_principal, provider_principal):
    workflow = container.workflow
    for name in ("A", "B", "C"):
        await workflow.submit_lead(LeadCreate(**lead_payload(name=name)))

    assert len(workflow.list_leads(admin_principal)) == 3
    assert [lead.name for lead in workflow.list_leads(provider_principal(2))] == ["B"]
    assert workflow.list_leads(provider_principal(2), LeadFilters(status=LeadStatus.CLOSED)) == []
