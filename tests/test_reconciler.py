import asyncio

import pytest

from leadcrm.client import KanbanBoard, LeadListView, OptimisticReconciler
from leadcrm.client.reconciler import MutationState
from leadcrm.core.exceptions import APIError
from leadcrm.models.lead import LeadStatus, ProjectType, Timing, utcnow
from leadcrm.models.user import Role
from leadcrm.schemas.leads import LeadCreate, LeadOut


class FakeLeadsApi:
    """Records the order writes start and finish in."""

    def __init__(self, delays=None, failures=()):
        self.delays = delays or {}
        self.failures = set(failures)
        self.log = []

    async def update_lead(self, lead_id, status):
        status = LeadStatus(status)
        self.log.append(("start", status))
        await asyncio.sleep(self.delays.get(status, 0))
        self.log.append(("end", status))
        if status in self.failures:
            raise APIError(message="Server rejected the change", status_code=500)
        return status


def make_board(api, status=LeadStatus.NEW):
    view = LeadListView(api)
    view.leads = [
        LeadOut(
            id=1,
            name="Jane",
            phone="5125550100",
            email="jane@example.com",
            zip_code="78701",
            project_type=ProjectType.RESIDENTIAL,
            timing=Timing.IMMEDIATE,
            status=status,
            created_at=utcnow(),
        )
    ]
    toasts = []
    return KanbanBoard(api, view, toast=toasts.append), view, toasts


@pytest.mark.asyncio
async def test_successful_drop_moves_card():
    board, view, toasts = make_board(FakeLeadsApi())

    assert await board.drop(1, "contacted") is True

    assert view.find(1).status is LeadStatus.CONTACTED
    assert board.columns()[LeadStatus.CONTACTED] == [1]
    assert toasts == []


@pytest.mark.asyncio
async def test_failed_drop_rolls_back_and_toasts():
    board, view, toasts = make_board(FakeLeadsApi(failures={LeadStatus.CLOSED}))

    assert await board.drop(1, "closed") is False

    assert view.find(1).status is LeadStatus.NEW
    assert toasts == ["Failed to update lead status: Server rejected the change"]
    assert board.reconciler.pending(1) == []


@pytest.mark.asyncio
async def test_noop_drops():
    api = FakeLeadsApi()
    board, view, _ = make_board(api)

    assert await board.drop(1, "new") is False
    assert await board.drop(1, "archived") is False
    assert await board.drop(99, "closed") is False
    assert api.log == []


@pytest.mark.asyncio
async def test_rapid_drags_are_written_in_order():
    api = FakeLeadsApi(delays={LeadStatus.CONTACTED: 0.05})
    board, view, _ = make_board(api)

    results = await asyncio.gather(board.drop(1, "contacted"), board.drop(1, "closed"))

    assert results == [True, True]
    assert api.log == [
        ("start", LeadStatus.CONTACTED),
        ("end", LeadStatus.CONTACTED),
        ("start", LeadStatus.CLOSED),
        ("end", LeadStatus.CLOSED),
    ]
    assert view.find(1).status is LeadStatus.CLOSED


@pytest.mark.asyncio
async def test_earlier_failure_keeps_later_value():
    api = FakeLeadsApi(delays={LeadStatus.CONTACTED: 0.05}, failures={LeadStatus.CONTACTED})
    board, view, toasts = make_board(api)

    results = await asyncio.gather(board.drop(1, "contacted"), board.drop(1, "closed"))

    assert results == [False, True]
    assert view.find(1).status is LeadStatus.CLOSED
    assert len(toasts) == 1


@pytest.mark.asyncio
async def test_both_failing_restore_original_value():
    api = FakeLeadsApi(
        delays={LeadStatus.CONTACTED: 0.05},
        failures={LeadStatus.CONTACTED, LeadStatus.CLOSED},
    )
    board, view, toasts = make_board(api)

    results = await asyncio.gather(board.drop(1, "contacted"), board.drop(1, "closed"))

    assert results == [False, False]
    assert view.find(1).status is LeadStatus.NEW
    assert len(toasts) == 2


@pytest.mark.asyncio
async def test_mutation_lifecycle():
    state = {("card", "column"): "todo"}
    writes = []

    async def write_remote(entity_id, field, value):
        writes.append(value)
        return value

    reconciler = OptimisticReconciler(
        read_local=lambda entity_id, field: state[(entity_id, field)],
        write_local=lambda entity_id, field, value: state.__setitem__((entity_id, field), value),
        write_remote=write_remote,
    )

    mutation = reconciler.begin("card", "column", "done")
    assert mutation.state is MutationState.PENDING
    mutation.apply()
    assert state[("card", "column")] == "done"
    assert mutation.previous == "todo"

    mutation.rollback()
    mutation.rollback()
    assert state[("card", "column")] == "todo"
    assert mutation.state is MutationState.ROLLED_BACK

    with pytest.raises(RuntimeError):
        await mutation.commit()

    committed = reconciler.begin("card", "column", "doing")
    assert await committed.commit() == "doing"
    assert committed.state is MutationState.COMMITTED
    assert writes == ["doing"]
    assert state[("card", "column")] == "doing"


@pytest.mark.asyncio
async def test_rejected_drop_leaves_provider_board_unchanged(
    container, make_api, provider_token, admin_principal, lead_payload
):
    lead = await container.workflow.submit_lead(LeadCreate(**lead_payload()))

    async with make_api(Role.PROVIDER, token=provider_token(1), provider_id=1) as api:
        view = LeadListView(api)
        await view.refetch()
        toasts = []
        board = KanbanBoard(api, view, toast=toasts.append)

        # Reassigned away after the board was loaded
        await container.workflow.reassign_lead(admin_principal, lead.id, 2)
        before = board.columns()

        assert await board.drop(lead.id, "closed") is False
        assert board.columns() == before

    assert toasts == ["Failed to update lead status: This lead is not assigned to you"]
    assert container.store.get_lead(lead.id).status is LeadStatus.NEW
