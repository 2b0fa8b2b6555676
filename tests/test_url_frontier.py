"""Tests for the URL lifecycle state machine."""

import pytest

from conftest import keys_of
from sitecrawl.storage.state_store import URLSet


async def assert_in_exactly_one_set(frontier, redis_clients, url):
    holders = [url_set for url_set in URLSet if url in redis_clients[url_set].data]
    assert len(holders) == 1, f"{url} held by {holders}"
    assert await frontier.locate(url) == holders[0]


@pytest.mark.asyncio
async def test_add_seeds_is_unconditional(frontier, redis_clients):
    added = await frontier.add_seeds(["http://x.test/", "http://x.test/a"])

    assert added == 2
    assert keys_of(redis_clients, URLSet.TODO) == {"http://x.test/", "http://x.test/a"}


@pytest.mark.asyncio
async def test_add_seeds_without_force_deduplicates(frontier, store, redis_clients):
    await store.put(URLSet.DONE, "http://x.test/", "")

    added = await frontier.add_seeds(["http://x.test/", "http://x.test/a"], force=False)

    assert added == 1
    assert keys_of(redis_clients, URLSet.TODO) == {"http://x.test/a"}


@pytest.mark.asyncio
@pytest.mark.parametrize("url_set", list(URLSet))
async def test_add_discovered_never_requeues_tracked_url(frontier, store, redis_clients, url_set):
    url = "http://x.test/page"
    await store.put(url_set, url, "")

    assert await frontier.add_discovered(url) is False
    assert await frontier.add_discovered(url) is False
    await assert_in_exactly_one_set(frontier, redis_clients, url)


@pytest.mark.asyncio
async def test_add_discovered_admits_new_url_once(frontier, redis_clients):
    assert await frontier.add_discovered("http://x.test/new") is True
    assert await frontier.add_discovered("http://x.test/new") is False

    assert await frontier.add_discovered_many(["http://x.test/new", "http://x.test/other"]) == 1
    assert keys_of(redis_clients, URLSet.TODO) == {"http://x.test/new", "http://x.test/other"}


@pytest.mark.asyncio
async def test_claim_batch_moves_todo_to_doing(frontier, redis_clients):
    urls = [f"http://x.test/{i}" for i in range(5)]
    await frontier.add_seeds(urls)

    claimed = await frontier.claim_batch(3)

    assert len(claimed) == 3
    assert len(set(claimed)) == 3
    assert keys_of(redis_clients, URLSet.DOING) == set(claimed)
    assert keys_of(redis_clients, URLSet.TODO) == set(urls) - set(claimed)


@pytest.mark.asyncio
async def test_claim_batch_returns_fewer_when_todo_runs_out(frontier, redis_clients):
    await frontier.add_seeds(["http://x.test/a", "http://x.test/b"])

    claimed = await frontier.claim_batch(8)

    assert sorted(claimed) == ["http://x.test/a", "http://x.test/b"]
    assert await frontier.claim_batch(8) == []


@pytest.mark.asyncio
async def test_claim_batch_skips_key_taken_by_another_claimant(frontier, store, redis_clients):
    await frontier.add_seeds(["http://x.test/a"])
    draws = iter(["http://x.test/ghost"])
    real_random_key = store.random_key

    async def racing_random_key(url_set):
        # First draw returns a key another instance already moved
        for key in draws:
            return key, True
        return await real_random_key(url_set)

    store.random_key = racing_random_key

    claimed = await frontier.claim_batch(2)

    assert claimed == ["http://x.test/a"]
    assert keys_of(redis_clients, URLSet.DOING) == {"http://x.test/a"}


@pytest.mark.asyncio
async def test_complete_success_stores_extracted_data(frontier, store, redis_clients):
    await frontier.add_seeds(["http://x.test/a"])
    await frontier.claim_batch(1)

    await frontier.complete_success("http://x.test/a", '{"title": "A"}')

    assert await store.get(URLSet.DONE, "http://x.test/a") == ('{"title": "A"}', True)
    await assert_in_exactly_one_set(frontier, redis_clients, "http://x.test/a")


@pytest.mark.asyncio
async def test_complete_failure_is_idempotent(frontier, store, redis_clients):
    url = "http://x.test/broken"
    await store.put(URLSet.DOING, url)
    await store.put(URLSet.TODO, url)

    await frontier.complete_failure(url)
    await frontier.complete_failure(url)

    assert keys_of(redis_clients, URLSet.TRASH) == {url}
    await assert_in_exactly_one_set(frontier, redis_clients, url)


@pytest.mark.asyncio
async def test_recover_moves_doing_and_trash_to_todo(frontier, store, redis_clients):
    await store.put(URLSet.TODO, "http://x.test/t")
    await store.put(URLSet.DOING, "http://x.test/d1")
    await store.put(URLSet.DOING, "http://x.test/d2")
    await store.put(URLSet.TRASH, "http://x.test/x")
    await store.put(URLSet.DONE, "http://x.test/ok", "{}")

    moved = await frontier.recover()

    assert moved == 3
    assert keys_of(redis_clients, URLSet.DOING) == set()
    assert keys_of(redis_clients, URLSet.TRASH) == set()
    assert keys_of(redis_clients, URLSet.TODO) == {
        "http://x.test/t", "http://x.test/d1", "http://x.test/d2", "http://x.test/x"
    }
    assert keys_of(redis_clients, URLSet.DONE) == {"http://x.test/ok"}


@pytest.mark.asyncio
async def test_lifecycle_keeps_every_url_in_one_set(frontier, redis_clients):
    urls = [f"http://x.test/{i}" for i in range(6)]
    await frontier.add_seeds(urls)

    claimed = await frontier.claim_batch(4)
    await frontier.complete_success(claimed[0], "")
    await frontier.complete_failure(claimed[1])
    for url in claimed[2:] + urls:
        await frontier.add_discovered(url)

    for url in urls:
        await assert_in_exactly_one_set(frontier, redis_clients, url)


@pytest.mark.asyncio
async def test_dump_and_dump_map(frontier, store):
    await store.put(URLSet.TODO, "http://x.test/t")
    await store.put(URLSet.DOING, "http://x.test/d")
    await store.put(URLSet.DONE, "http://x.test/ok", '{"n": 1}')
    await store.put(URLSet.TRASH, "http://x.test/x")

    assert sorted(await frontier.dump()) == [
        "http://x.test/d", "http://x.test/ok", "http://x.test/t", "http://x.test/x"
    ]
    assert await frontier.dump_map() == {"http://x.test/ok": '{"n": 1}'}
    assert await frontier.get_stats() == {'todo': 1, 'doing': 1, 'done': 1, 'trash': 1}
