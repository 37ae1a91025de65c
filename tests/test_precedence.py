from groupsync.models import CountdownEntry, Scope
from groupsync.precedence import PrecedenceResolver, resolve_precedence
from groupsync.schedule_store import ScheduleStore

GLOBAL = Scope.global_()


def test_soonest_enabled_schedule_wins_and_disabled_is_ignored():
    view = resolve_precedence(
        [
            CountdownEntry.confirmed(Scope.entity("A"), 120),
            CountdownEntry.confirmed(Scope.entity("B"), 45),
            CountdownEntry.confirmed(Scope.entity("C"), 10, enabled=False),
        ]
    )

    assert view.active is not None
    assert view.active.scope == Scope.entity("B")
    assert view.active.seconds_remaining == 45
    assert view.active.mode == "entity"
    assert view.active.entity_id == "B"


def test_no_active_schedule_when_nothing_has_a_countdown():
    view = resolve_precedence(
        [
            CountdownEntry.provisional(GLOBAL),
            CountdownEntry.confirmed(Scope.entity("p1"), None),
        ]
    )

    assert view.active is None
    assert view.global_enabled is True


def test_ties_prefer_global_then_lowest_entity_id():
    view = resolve_precedence(
        [
            CountdownEntry.confirmed(Scope.entity("b"), 30),
            CountdownEntry.confirmed(Scope.entity("a"), 30),
            CountdownEntry.confirmed(GLOBAL, 30),
        ]
    )
    entity_only = resolve_precedence(
        [
            CountdownEntry.confirmed(Scope.entity("b"), 30),
            CountdownEntry.confirmed(Scope.entity("a"), 30),
        ]
    )

    assert view.active.scope == GLOBAL
    assert view.active.label == "Auto-Sync: Global"
    assert entity_only.active.scope == Scope.entity("a")
    assert entity_only.active.label == "Auto-Sync: Entity"


def test_enabled_global_suppresses_entity_entries_in_the_raw_map():
    store = ScheduleStore()
    store.set_many(
        [
            CountdownEntry.confirmed(GLOBAL, 600),
            CountdownEntry.confirmed(Scope.entity("p1"), 30),
        ]
    )
    resolver = PrecedenceResolver(store)

    assert resolver.global_enabled is True
    assert resolver.view.is_suppressed(Scope.entity("p1")) is True
    assert resolver.view.is_suppressed(GLOBAL) is False
    assert resolver.visible_entry(Scope.entity("p1")) is None
    assert resolver.visible_entry(GLOBAL).seconds_remaining == 600
    assert resolver.view.visible_keys == {"global"}


def test_disabled_global_entry_does_not_suppress_entities():
    view = resolve_precedence(
        [
            CountdownEntry.confirmed(GLOBAL, None, enabled=False),
            CountdownEntry.confirmed(Scope.entity("p1"), 30),
        ]
    )

    assert view.global_enabled is False
    assert view.is_suppressed(Scope.entity("p1")) is False


def test_resolver_recomputes_and_notifies_on_each_store_change():
    store = ScheduleStore()
    resolver = PrecedenceResolver(store)
    views = []
    resolver.subscribe(views.append)

    store.set_many([CountdownEntry.confirmed(Scope.entity("p1"), 30)])
    store.patch(Scope.entity("p1"), seconds_remaining=29)
    store.remove(Scope.entity("p1"))

    assert [view.active.seconds_remaining if view.active else None for view in views] == [
        30,
        29,
        None,
    ]


def test_closed_resolver_stops_following_the_store():
    store = ScheduleStore()
    resolver = PrecedenceResolver(store)
    views = []
    resolver.subscribe(views.append)

    resolver.close()
    store.set_many([CountdownEntry.confirmed(GLOBAL, 5)])

    assert views == []
    assert resolver.active is None
