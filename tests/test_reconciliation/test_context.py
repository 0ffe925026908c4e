from app.reconciliation import save_subscriptions
from app.schemas.subscription import ManualSubscription, SponsorshipSubscription, TrialSubscription
from tests.fakes import FakeSubscriptionStore, make_context


def test_active_index_is_loaded_once_per_run():
    subs = [
        ManualSubscription(id="S1", user_id="U1", status="ACTIVE"),
        TrialSubscription(id="S2", user_id="U2", status="EXPIRED"),
    ]
    context = make_context(subs)

    assert not context.active_index.loaded
    first = context.active_index.get()
    second = context.active_index.get()

    assert first is second
    assert [s.id for s in first] == ["S1"]
    assert context.subscriptions.active_queries == 1


def test_active_index_is_a_snapshot():
    context = make_context([ManualSubscription(id="S1", user_id="U1", status="ACTIVE")])
    context.active_index.get()

    context.subscriptions.records["S1"].status = "EXPIRED"

    assert context.active_index.user_ids() == {"U1"}


def test_has_other_active_excludes_own_subscription():
    subs = [
        ManualSubscription(id="S1", user_id="U1", status="ACTIVE"),
        SponsorshipSubscription(id="S2", user_id="U2", status="ACTIVE"),
        SponsorshipSubscription(id="S3", user_id="U2", status="ACTIVE"),
    ]
    index = make_context(subs).active_index

    assert index.has_other_active("U1", "S1") is False
    assert index.has_other_active("U1") is True
    assert index.has_other_active("U2", "S2") is True
    assert index.has_other_active(None) is False


def test_shuffled_keeps_every_item():
    context = make_context()
    items = list(range(20))

    result = context.shuffled(items)

    assert sorted(result) == items
    assert items == list(range(20))


def test_save_subscriptions_only_writes_pending_in_order():
    subs = [
        ManualSubscription(id="S1", pending_update=True),
        ManualSubscription(id="S2"),
        ManualSubscription(id="S3", pending_update=True),
    ]
    store = FakeSubscriptionStore()

    saved = save_subscriptions(store, subs)

    assert saved == 2
    assert store.updated == ["S1", "S3"]
    assert not any(s.pending_update for s in subs)
    assert save_subscriptions(store, subs) == 0
