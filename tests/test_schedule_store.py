import pytest

from groupsync.models import CountdownEntry, Scope
from groupsync.schedule_store import ScheduleStore, StoreChangeType

GLOBAL = Scope.global_()
P1 = Scope.entity("p1")
P2 = Scope.entity("p2")


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _recording_store(clock=None):
    store = ScheduleStore(time_provider=clock or FakeClock())
    changes = []
    store.subscribe(changes.append)
    return store, changes


def test_set_many_twice_with_identical_snapshot_is_idempotent():
    store, changes = _recording_store()
    snapshot = [
        CountdownEntry.confirmed(GLOBAL, 600),
        CountdownEntry.confirmed(P1, 45),
    ]

    store.set_many(snapshot)
    first = store.snapshot()
    store.set_many(snapshot)

    assert store.snapshot() == first
    assert len(changes) == 1
    assert changes[0].type is StoreChangeType.SET
    assert changes[0].keys == {"global", "entity:p1"}


def test_set_many_leaves_other_scopes_untouched():
    store, _ = _recording_store()
    store.set_many([CountdownEntry.confirmed(P1, 45)])

    store.set_many([CountdownEntry.confirmed(P2, 10)])

    assert store.get(P1).seconds_remaining == 45
    assert store.get(P2).seconds_remaining == 10


def test_replace_all_drops_scopes_missing_from_snapshot():
    store, changes = _recording_store()
    store.set_many(
        [CountdownEntry.confirmed(GLOBAL, 600), CountdownEntry.confirmed(P1, 45)]
    )

    store.replace_all([CountdownEntry.confirmed(P1, 40)])

    assert P1 in store
    assert GLOBAL not in store
    assert changes[-1].type is StoreChangeType.REPLACED
    assert changes[-1].keys == {"global", "entity:p1"}


def test_replace_all_preserves_listed_keys_present_or_absent():
    store, _ = _recording_store()
    store.set_many([CountdownEntry.confirmed(P1, 45)])

    store.replace_all(
        [CountdownEntry.confirmed(P1, 5), CountdownEntry.confirmed(P2, 7)],
        preserve={"entity:p1", "entity:p2"},
    )

    assert store.get(P1).seconds_remaining == 45
    assert P2 not in store


def test_patch_never_creates_or_touches_provisional_entries():
    store, changes = _recording_store()

    assert store.patch(GLOBAL, seconds_remaining=10) is None
    store.set_many([CountdownEntry.provisional(GLOBAL)])
    assert store.patch(GLOBAL, seconds_remaining=10) is None
    assert store.get(GLOBAL).seconds_remaining is None
    assert len(changes) == 1


def test_patch_updates_confirmed_seconds_and_floors_at_zero():
    store, changes = _recording_store()
    store.set_many([CountdownEntry.confirmed(GLOBAL, 3)])

    store.patch(GLOBAL, seconds_remaining=2)
    updated = store.patch(GLOBAL, seconds_remaining=-5)

    assert updated.seconds_remaining == 0
    assert [change.type for change in changes] == [
        StoreChangeType.SET,
        StoreChangeType.PATCHED,
        StoreChangeType.PATCHED,
    ]


def test_remove_notifies_only_when_entry_existed():
    store, changes = _recording_store()

    assert store.remove(P1) is None
    store.set_many([CountdownEntry.confirmed(P1, 1)])
    removed = store.remove(P1)

    assert removed.key == "entity:p1"
    assert [change.type for change in changes] == [
        StoreChangeType.SET,
        StoreChangeType.REMOVED,
    ]


def test_remove_where_batches_into_one_notification():
    store, changes = _recording_store()
    store.set_many(
        [
            CountdownEntry.confirmed(GLOBAL, 1),
            CountdownEntry.confirmed(P1, 2),
            CountdownEntry.confirmed(P2, 3),
        ]
    )

    removed = store.remove_where(lambda entry: not entry.scope.is_global)

    assert {entry.key for entry in removed} == {"entity:p1", "entity:p2"}
    assert changes[-1].keys == {"entity:p1", "entity:p2"}
    assert store.scopes() == [GLOBAL]


def test_provisional_age_tracks_time_since_first_provisional_write():
    clock = FakeClock(10.0)
    store, _ = _recording_store(clock)
    store.set_many([CountdownEntry.provisional(P1)])

    clock.advance(4.0)
    store.set_many([CountdownEntry.provisional(P1)])
    clock.advance(3.0)

    assert store.provisional_age(P1) == 7.0

    store.set_many([CountdownEntry.confirmed(P1, 30)])
    assert store.provisional_age(P1) is None


def test_unsubscribed_callbacks_stop_receiving_changes():
    store, changes = _recording_store()
    store.unsubscribe(changes.append)

    store.set_many([CountdownEntry.confirmed(GLOBAL, 1)])

    assert changes == []


def test_entries_view_is_read_only():
    store, _ = _recording_store()
    store.set_many([CountdownEntry.confirmed(GLOBAL, 1)])

    view = store.entries()

    assert dict(view) == store.snapshot()
    with pytest.raises(TypeError):
        view["global"] = CountdownEntry.confirmed(GLOBAL, 2)  # type: ignore[index]
