import pytest

from app.core.exceptions import IntegrationError
from app.routines.check_billing import CheckBillingRoutine
from app.schemas.provider import LiveBillingSubscription
from app.schemas.subscription import (
    BillingSubscription,
    Frequency,
    ManualSubscription,
    Payment,
    SponsorshipSubscription,
    SubscriptionStatus,
)
from app.schemas.user import UserData
from tests.fakes import FakeBillingClient, days_ago, make_context, write_count


def _payment(days: float, amount: float = 5.0) -> Payment:
    return Payment(date=days_ago(days), amount=amount, currency="EUR")


def _billing(sub_id="S1", user_id="U1", status="ACTIVE", frequency=Frequency.MONTHLY, paid_days=40, **kwargs):
    return BillingSubscription(
        id=sub_id,
        user_id=user_id,
        status=status,
        frequency=frequency,
        last_payment=_payment(paid_days) if paid_days is not None else None,
        date_created=kwargs.pop("date_created", days_ago(400)),
        **kwargs,
    )


def _live(sub_id="S1", status="ACTIVE", paid_days=40, amount=5.0):
    return LiveBillingSubscription(
        id=sub_id,
        status=status,
        last_payment=_payment(paid_days, amount) if paid_days is not None else None,
    )


@pytest.mark.asyncio
async def test_suspended_monthly_subscription_past_grace_downgrades_user():
    sub = _billing(paid_days=40)
    user = UserData(id="U1", is_pro=True, subscription_id="S1")
    billing = FakeBillingClient({"S1": _live(status="SUSPENDED", paid_days=40)})
    context = make_context([sub], [user], billing=billing)

    result = await CheckBillingRoutine().run(context)

    assert result["success"] is True
    assert result["data"]["downgraded"] == 1
    stored = context.subscriptions.records["S1"]
    assert stored.status == SubscriptionStatus.SUSPENDED
    assert context.subscriptions.updated == ["S1"]
    assert context.users.records["U1"].is_pro is False
    assert context.users.records["U1"].subscription_id is None


@pytest.mark.asyncio
async def test_monthly_subscription_inside_grace_keeps_pro():
    sub = _billing(paid_days=20)
    user = UserData(id="U1", is_pro=True, subscription_id="S1")
    billing = FakeBillingClient({"S1": _live(status="CANCELLED", paid_days=20)})
    context = make_context([sub], [user], billing=billing)

    await CheckBillingRoutine().run(context)

    assert context.subscriptions.records["S1"].status == SubscriptionStatus.CANCELLED
    assert context.users.records["U1"].is_pro is True


@pytest.mark.asyncio
async def test_yearly_grace_is_eleven_months():
    inside = _billing("S1", "U1", frequency=Frequency.YEARLY, paid_days=300)
    outside = _billing("S2", "U2", frequency=Frequency.YEARLY, paid_days=370)
    users = [
        UserData(id="U1", is_pro=True, subscription_id="S1"),
        UserData(id="U2", is_pro=True, subscription_id="S2"),
    ]
    billing = FakeBillingClient(
        {
            "S1": _live("S1", status="SUSPENDED", paid_days=300),
            "S2": _live("S2", status="SUSPENDED", paid_days=370),
        }
    )
    context = make_context([inside, outside], users, billing=billing)

    await CheckBillingRoutine().run(context)

    assert context.users.records["U1"].is_pro is True
    assert context.users.records["U2"].is_pro is False


@pytest.mark.asyncio
async def test_other_active_subscription_prevents_downgrade():
    sub = _billing(paid_days=60)
    sponsorship = SponsorshipSubscription(id="G1", user_id="U1", status="ACTIVE")
    user = UserData(id="U1", is_pro=True, subscription_id="G1")
    billing = FakeBillingClient({"S1": _live(status="CANCELLED", paid_days=60)})
    context = make_context([sub, sponsorship], [user], billing=billing)

    result = await CheckBillingRoutine().run(context)

    assert result["data"].get("downgraded", 0) == 0
    assert context.users.records["U1"].is_pro is True
    assert context.subscriptions.records["S1"].status == SubscriptionStatus.CANCELLED


@pytest.mark.asyncio
async def test_new_payment_is_copied_from_live_state():
    sub = _billing(paid_days=35)
    user = UserData(id="U1", is_pro=True, subscription_id="S1")
    billing = FakeBillingClient({"S1": _live(paid_days=5, amount=6.5)})
    context = make_context([sub], [user], billing=billing)

    await CheckBillingRoutine().run(context)

    stored = context.subscriptions.records["S1"]
    assert stored.last_payment.date == days_ago(5)
    assert stored.price == 6.5
    assert stored.currency == "EUR"
    assert context.users.records["U1"].is_pro is True


@pytest.mark.asyncio
async def test_same_payment_day_is_not_a_change():
    sub = _billing(paid_days=10)
    user = UserData(id="U1", is_pro=True, subscription_id="S1")
    live = _live(paid_days=10)
    live.last_payment.date = live.last_payment.date.replace(hour=1)
    billing = FakeBillingClient({"S1": live})
    context = make_context([sub], [user], billing=billing)

    await CheckBillingRoutine().run(context)

    assert context.subscriptions.updated == []


@pytest.mark.asyncio
async def test_recent_subscription_is_not_fetched():
    sub = _billing(paid_days=3, date_created=days_ago(14))
    user = UserData(id="U1", is_pro=True, subscription_id="S1")
    billing = FakeBillingClient({"S1": _live(status="CANCELLED", paid_days=3)})
    context = make_context([sub], [user], billing=billing)

    result = await CheckBillingRoutine().run(context)

    assert result["data"]["too_recent"] == 1
    assert billing.calls == []
    assert write_count(context) == 0


@pytest.mark.asyncio
async def test_free_user_subscription_is_not_fetched():
    sub = _billing(status="CANCELLED", paid_days=90)
    user = UserData(id="U1", is_pro=False)
    billing = FakeBillingClient({"S1": _live(status="CANCELLED", paid_days=90)})
    context = make_context([sub], [user], billing=billing)

    result = await CheckBillingRoutine().run(context)

    assert result["data"]["not_pro"] == 1
    assert billing.calls == []


@pytest.mark.asyncio
async def test_lifetime_subscription_ignores_live_status():
    sub = _billing(frequency=Frequency.LIFETIME, paid_days=500)
    user = UserData(id="U1", is_pro=True, subscription_id="S1")
    billing = FakeBillingClient({"S1": _live(status="EXPIRED", paid_days=500)})
    context = make_context([sub], [user], billing=billing)

    await CheckBillingRoutine().run(context)

    assert context.subscriptions.updated == []
    assert context.users.records["U1"].is_pro is True


@pytest.mark.asyncio
async def test_provider_error_for_one_subscription_does_not_stop_the_rest():
    broken = _billing("S1", "U1", paid_days=40)
    healthy = _billing("S2", "U2", paid_days=40)
    users = [
        UserData(id="U1", is_pro=True, subscription_id="S1"),
        UserData(id="U2", is_pro=True, subscription_id="S2"),
    ]
    billing = FakeBillingClient(
        {
            "S1": IntegrationError("paypal", "boom", 500),
            "S2": _live("S2", status="SUSPENDED", paid_days=40),
        }
    )
    context = make_context([broken, healthy], users, billing=billing)

    result = await CheckBillingRoutine().run(context)

    assert result["success"] is True
    assert result["data"]["errors"] == 1
    assert context.subscriptions.records["S1"].status == SubscriptionStatus.ACTIVE
    assert context.subscriptions.records["S2"].status == SubscriptionStatus.SUSPENDED
    assert context.users.records["U1"].is_pro is True
    assert context.users.records["U2"].is_pro is False


@pytest.mark.asyncio
async def test_missing_billing_client_fails_the_routine_only():
    context = make_context([_billing()], [UserData(id="U1", is_pro=True, subscription_id="S1")])

    result = await CheckBillingRoutine().run(context)

    assert result["success"] is False
    assert "paypal" in result["error"]
    assert write_count(context) == 0


@pytest.mark.asyncio
async def test_second_run_writes_nothing():
    sub = _billing(paid_days=40)
    user = UserData(id="U1", is_pro=True, subscription_id="S1")
    billing = FakeBillingClient({"S1": _live(status="SUSPENDED", paid_days=40)})
    context = make_context([sub], [user], billing=billing)
    await CheckBillingRoutine().run(context)
    assert write_count(context) > 0

    subscriptions, users = context.subscriptions, context.users
    subscriptions.updated.clear()
    users.updated.clear()
    follow_up = make_context(billing=billing, subscription_store=subscriptions, user_store=users)
    await CheckBillingRoutine().run(follow_up)

    assert write_count(follow_up) == 0


@pytest.mark.asyncio
async def test_live_active_subscription_with_stale_expiry_settles_in_one_run():
    sub = _billing(paid_days=10, date_expiry=days_ago(3))
    manual = ManualSubscription(id="M1", user_id="U1", status="ACTIVE")
    user = UserData(id="U1", is_pro=True, subscription_id="M1")
    billing = FakeBillingClient({"S1": _live(status="ACTIVE", paid_days=10)})
    context = make_context([sub, manual], [user], billing=billing)

    await CheckBillingRoutine().run(context)

    stored = context.subscriptions.records["S1"]
    assert stored.status == SubscriptionStatus.ACTIVE
    assert stored.date_expiry is None
    assert context.subscriptions.updated == ["S1"]
    assert context.users.records["U1"].is_pro is True

    subscriptions, users = context.subscriptions, context.users
    subscriptions.updated.clear()
    users.updated.clear()
    follow_up = make_context(billing=billing, subscription_store=subscriptions, user_store=users)
    await CheckBillingRoutine().run(follow_up)

    assert write_count(follow_up) == 0


@pytest.mark.asyncio
async def test_recency_accepts_naive_creation_dates():
    sub = _billing(paid_days=3, date_created=days_ago(14).replace(tzinfo=None))
    user = UserData(id="U1", is_pro=True, subscription_id="S1")
    billing = FakeBillingClient({"S1": _live(status="CANCELLED", paid_days=3)})
    context = make_context([sub], [user], billing=billing)

    result = await CheckBillingRoutine().run(context)

    assert result["data"]["too_recent"] == 1
    assert billing.calls == []
