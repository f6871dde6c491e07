import json
from datetime import datetime, timezone

import httpx
import pytest
import respx

from storesync.errors import SyncErrorKind
from storesync.sync.history import latest_run, record_run
from storesync.sync.models import BatchOutcome, BatchStatus, SyncRun, SyncStatus
from storesync.sync.orchestrator import orchestrator_for

GRAPHQL_URL = "https://hexco.myshopify.com/admin/api/2024-01/graphql.json"
SYNC_URL = "http://localhost:3000/api/customer-sync"


async def run_sync(store, tenant, page_size=50):
    async with orchestrator_for(store, tenant) as orchestrator:
        return await orchestrator.run(tenant, page_size)


@pytest.mark.asyncio
async def test_happy_path_forwards_every_batch(store, hexco, shopify_source):
    source = shopify_source(120)
    async with respx.mock() as router:
        fetch = router.post(GRAPHQL_URL).mock(side_effect=source)
        sink = router.post(SYNC_URL).mock(return_value=httpx.Response(200, json={"ok": True}))
        run = await run_sync(store, hexco)

    assert fetch.call_count == 3
    assert sink.call_count == 3
    assert run.status is SyncStatus.SUCCESS
    assert run.total_forwarded == 120
    assert [b.sequence for b in run.batches] == [1, 2, 3]
    assert [b.size for b in run.batches] == [50, 50, 20]
    assert run.message == "Successfully synchronized 120 customers to external API."

    first = sink.calls[0].request
    assert first.headers["Authorization"] == "Bearer key-123"
    body = json.loads(first.content)
    assert body["shop"] == "hexco.myshopify.com"
    assert body["batch"] == 1
    assert len(body["customers"]) == 50
    assert body["customers"][0]["email"] == "customer0@example.com"


@pytest.mark.asyncio
async def test_second_dispatch_failure_leaves_partial_run(store, hexco, shopify_source):
    async with respx.mock() as router:
        fetch = router.post(GRAPHQL_URL).mock(side_effect=shopify_source(120))
        sink = router.post(SYNC_URL).mock(
            side_effect=[httpx.Response(200), httpx.Response(500)]
        )
        run = await run_sync(store, hexco)

    assert fetch.call_count == 2
    assert sink.call_count == 2
    assert run.status is SyncStatus.PARTIAL
    assert run.total_forwarded == 50
    assert run.error is SyncErrorKind.DISPATCH_REJECTED
    assert run.failed_sequence == 2
    assert run.batches[-1] == BatchOutcome(2, BatchStatus.REJECTED, 50, http_status=500)


@pytest.mark.asyncio
async def test_first_dispatch_failure_fails_run(store, hexco, shopify_source):
    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(side_effect=shopify_source(120))
        sink = router.post(SYNC_URL).mock(side_effect=httpx.ConnectTimeout)
        run = await run_sync(store, hexco)

    assert sink.call_count == 1
    assert run.status is SyncStatus.FAILED
    assert run.error is SyncErrorKind.DISPATCH_NETWORK_ERROR
    assert run.total_forwarded == 0
    assert run.batches[0].status is BatchStatus.NETWORK_ERROR


@pytest.mark.asyncio
async def test_fetch_failure_records_failing_sequence(store, hexco, shopify_source):
    source = shopify_source(120)

    def flaky(request):
        if len(source.requests) == 1:
            return httpx.Response(502)
        return source(request)

    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(side_effect=flaky)
        sink = router.post(SYNC_URL).mock(return_value=httpx.Response(200))
        run = await run_sync(store, hexco)

    assert sink.call_count == 1
    assert run.status is SyncStatus.FAILED
    assert run.error is SyncErrorKind.FETCH_FAILED
    assert run.failed_sequence == 2
    assert run.total_forwarded == 50


@pytest.mark.asyncio
async def test_missing_credential_makes_no_calls(store, shopify_source):
    lumi = store.get_tenant("lumi")
    async with respx.mock(assert_all_called=False) as router:
        fetch = router.post(url__regex=r".*graphql\.json").mock(side_effect=shopify_source(5))
        sink = router.post(SYNC_URL).mock(return_value=httpx.Response(200))
        run = await run_sync(store, lumi)

    assert fetch.call_count == 0
    assert sink.call_count == 0
    assert run.status is SyncStatus.FAILED
    assert run.error is SyncErrorKind.NO_CREDENTIAL
    assert run.batches == []
    assert run.finished_at is not None


@pytest.mark.asyncio
async def test_empty_store_succeeds_without_dispatching(store, hexco, shopify_source):
    async with respx.mock(assert_all_called=False) as router:
        fetch = router.post(GRAPHQL_URL).mock(side_effect=shopify_source(0))
        sink = router.post(SYNC_URL).mock(return_value=httpx.Response(200))
        run = await run_sync(store, hexco)

    assert fetch.call_count == 1
    assert sink.call_count == 0
    assert run.status is SyncStatus.SUCCESS
    assert run.total_forwarded == 0


@pytest.mark.asyncio
async def test_finished_run_is_recorded(store, hexco, seeded_engine, shopify_source):
    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(side_effect=shopify_source(7))
        router.post(SYNC_URL).mock(return_value=httpx.Response(201))
        run = await run_sync(store, hexco)
    record_run(seeded_engine, run)

    last = latest_run(seeded_engine, "hexco")
    assert last["status"] == "success"
    assert last["total_forwarded"] == 7
    assert last["batches"] == 1
    assert latest_run(seeded_engine, "lumi") is None


def test_run_finishes_only_once():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    run = SyncRun(tenant_id="hexco", started_at=now)
    run.record(BatchOutcome(1, BatchStatus.OK, 10))
    run.finish(SyncStatus.SUCCESS, now)
    with pytest.raises(RuntimeError):
        run.finish(SyncStatus.FAILED, now)
    with pytest.raises(RuntimeError):
        run.record(BatchOutcome(2, BatchStatus.OK, 10))
    assert run.summary()["total_forwarded"] == 10


def test_batch_sequence_must_be_contiguous():
    run = SyncRun(tenant_id="hexco", started_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    with pytest.raises(ValueError):
        run.record(BatchOutcome(2, BatchStatus.OK, 10))


@pytest.mark.asyncio
async def test_undecodable_sink_reply_fails_run_instead_of_raising(store, hexco, shopify_source):
    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(side_effect=shopify_source(3))
        sink = router.post(SYNC_URL).mock(side_effect=httpx.DecodingError)
        run = await run_sync(store, hexco)

    assert sink.call_count == 1
    assert run.status is SyncStatus.FAILED
    assert run.error is SyncErrorKind.DISPATCH_NETWORK_ERROR
    assert run.failed_sequence == 1


def page(nodes, *, has_next, end_cursor):
    return httpx.Response(
        200,
        json={
            "data": {
                "customers": {
                    "edges": [{"node": node} for node in nodes],
                    "pageInfo": {"hasNextPage": has_next, "endCursor": end_cursor},
                }
            }
        },
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "pages, fetches, forwarded",
    [
        ([page([{"id": "1"}], has_next=True, end_cursor=None)], 1, 0),
        (
            [
                page([{"id": "1"}], has_next=True, end_cursor="a"),
                page([{"id": "2"}], has_next=True, end_cursor="a"),
            ],
            2,
            1,
        ),
    ],
)
async def test_stalled_cursor_fails_run_without_refetching(store, hexco, pages, fetches, forwarded):
    async with respx.mock(assert_all_called=False) as router:
        fetch = router.post(GRAPHQL_URL).mock(side_effect=pages)
        sink = router.post(SYNC_URL).mock(return_value=httpx.Response(200))
        run = await run_sync(store, hexco)

    assert fetch.call_count == fetches
    assert sink.call_count == forwarded
    assert run.status is SyncStatus.FAILED
    assert run.error is SyncErrorKind.FETCH_FAILED
    assert run.failed_sequence == forwarded + 1
    assert run.total_forwarded == forwarded


@pytest.mark.asyncio
async def test_empty_page_after_more_signalled_ends_run(store, hexco):
    nodes = [{"id": f"gid://shopify/Customer/{i}"} for i in range(50)]
    async with respx.mock() as router:
        fetch = router.post(GRAPHQL_URL).mock(
            side_effect=[page(nodes, has_next=True, end_cursor="50"), page([], has_next=True, end_cursor="50")]
        )
        sink = router.post(SYNC_URL).mock(return_value=httpx.Response(200))
        run = await run_sync(store, hexco)

    assert fetch.call_count == 2
    assert sink.call_count == 1
    assert run.status is SyncStatus.SUCCESS
    assert run.total_forwarded == 50


@pytest.mark.asyncio
async def test_orchestrator_for_closes_only_its_own_clients(store, hexco):
    async with httpx.AsyncClient() as shared:
        async with orchestrator_for(store, hexco, session=shared) as orchestrator:
            pass
        assert not shared.is_closed

    async with orchestrator_for(store, hexco) as orchestrator:
        own_sessions = [orchestrator.walker.client._session, orchestrator.dispatcher.sink._session]
    assert all(session.is_closed for session in own_sessions)
