import pytest

from campaigns.subscriptions import SubscriptionError, SubscriptionService
from tests.fakes import FakeSubscriptionRepo


def test_subscribe_normalises_email_and_defaults_preferences():
    svc = SubscriptionService(FakeSubscriptionRepo())

    out = svc.subscribe("  Sam@Example.COM", source="footer")

    sub = out["subscription"]
    assert out["reactivated"] is False
    assert sub["email"] == "sam@example.com"
    assert sub["preferences"] == {"price_drops": True, "new_medications": True, "promotions": True,
                                  "weekly_digest": False}
    assert len(sub["unsubscribe_token"]) == 64


def test_subscribe_twice_is_rejected():
    svc = SubscriptionService(FakeSubscriptionRepo())
    svc.subscribe("sam@example.com")
    with pytest.raises(SubscriptionError) as exc:
        svc.subscribe("SAM@example.com")
    assert exc.value.code == "already_subscribed"


def test_unsubscribe_then_resubscribe_keeps_token():
    repo = FakeSubscriptionRepo()
    svc = SubscriptionService(repo)
    token = svc.subscribe("sam@example.com")["subscription"]["unsubscribe_token"]

    svc.unsubscribe(token=token)
    assert repo.get_by_email("sam@example.com")["status"] == "unsubscribed"

    out = svc.subscribe("sam@example.com", preferences={"weekly_digest": True})
    stored = repo.get_by_email("sam@example.com")
    assert out["reactivated"] is True
    assert stored["status"] == "active"
    assert stored["unsubscribe_token"] == token
    assert stored["preferences"]["weekly_digest"] is True


def test_unsubscribe_unknown_token():
    with pytest.raises(SubscriptionError) as exc:
        SubscriptionService(FakeSubscriptionRepo()).unsubscribe(token="nope")
    assert exc.value.code == "subscription_not_found"


def test_update_preferences_ignores_unknown_keys():
    repo = FakeSubscriptionRepo()
    svc = SubscriptionService(repo)
    svc.subscribe("sam@example.com")

    prefs = svc.update_preferences("sam@example.com", {"promotions": False, "sms": True})

    assert prefs["promotions"] is False
    assert "sms" not in prefs


def test_stats_groups_by_status_and_source():
    svc = SubscriptionService(FakeSubscriptionRepo())
    svc.subscribe("a@example.com", source="popup")
    svc.subscribe("b@example.com", source="footer")
    svc.unsubscribe(email="b@example.com")

    stats = svc.stats()

    assert stats["total"] == 2
    assert stats["by_status"] == {"active": 1, "unsubscribed": 1}
    assert stats["by_source"] == {"popup": 1, "footer": 1}
