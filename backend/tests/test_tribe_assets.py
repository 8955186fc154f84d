import pytest

from app.schemas import EventSummary, TribeSummary
from app.tribe_assets import TribeObject, backoff_ms, chunked, collect_tribe_objects, delete_batch

from tests.fakes import FakeStorage


BASE = "https://proj.supabase.co/storage/v1/object/public"


def test_collect_puts_cover_first_then_event_banners():
    tribe = TribeSummary(id="t1", owner="u1", cover_url=f"{BASE}/tcpublic/tribe-covers/abc.jpg")
    events = [
        EventSummary(id="e1", tribe_id="t1", banner_url=f"{BASE}/events/event-banners/def.jpg"),
        EventSummary(id="e2", tribe_id="t1", banner_url=None),
        EventSummary(id="e3", tribe_id="t1", banner_url="https://cdn.example.com/x.png"),
    ]

    assert collect_tribe_objects(tribe, events) == [
        TribeObject(bucket="tcpublic", object_path="tribe-covers/abc.jpg"),
        TribeObject(bucket="events", object_path="event-banners/def.jpg", event_id="e1"),
    ]


def test_collect_with_no_urls_is_empty():
    tribe = TribeSummary(id="t1", owner="u1")
    assert collect_tribe_objects(tribe, []) == []


def test_chunked_keeps_order_and_remainder():
    assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    assert list(chunked([], 3)) == []
    assert list(chunked([1, 2], 0)) == [[1], [2]]


@pytest.mark.parametrize("attempt,expected", [(1, 500), (2, 1000), (3, 2000)])
def test_backoff_doubles_per_attempt(attempt, expected):
    assert backoff_ms(attempt, 500) == expected


def test_delete_batch_succeeds_on_first_try():
    storage = FakeStorage()
    storage.put("events", "a.jpg")
    sleeps = []

    outcome = delete_batch(storage, "events", ["a.jpg"], max_attempts=3, retry_base_ms=500, sleep=sleeps.append)

    assert outcome.ok is True
    assert outcome.attempts == 1
    assert sleeps == []
    assert not storage.has("events", "a.jpg")


def test_delete_batch_gives_up_after_max_attempts():
    storage = FakeStorage()
    storage.fail("events")
    sleeps = []

    outcome = delete_batch(storage, "events", ["a.jpg"], max_attempts=3, retry_base_ms=100, sleep=sleeps.append)

    assert outcome.ok is False
    assert outcome.attempts == 3
    assert outcome.error == "bucket events unavailable"
    assert sleeps == [0.1, 0.2]
    assert len(storage.calls) == 3


def test_delete_batch_does_not_swallow_unexpected_errors():
    class BrokenStorage:
        def remove(self, bucket, paths):
            raise ValueError("bad paths")

    with pytest.raises(ValueError):
        delete_batch(BrokenStorage(), "events", ["a.jpg"], max_attempts=3, retry_base_ms=0, sleep=lambda _: None)
