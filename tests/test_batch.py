import pytest

from campaigns.service import CampaignService
from messaging.batch import send_in_batches
from models.documents import new_campaign, new_subscription
from tests.fakes import (
    FakeCampaignRepo,
    FakeDispatcher,
    FakeMedicationRepo,
    FakeMessageRepo,
    FakePharmacyRepo,
    FakePriceRepo,
    FakeSubscriptionRepo,
)

EMAILS = [f"user{i}@example.com" for i in range(10)]
FAILING = {"user2@example.com", "user5@example.com", "user9@example.com"}


def test_batches_isolate_failures_and_pause_between_chunks():
    pauses = []
    chunks = []

    def send_one(email):
        if email == "user1@example.com":
            raise ConnectionError("reset")
        return {"ok": email not in FAILING, "error": "rejected"}

    result = send_in_batches(EMAILS, send_one, batch_size=4, delay_sec=1.0,
                             on_batch=chunks.append, sleep=pauses.append)

    assert result.total == 10
    assert len(result.sent) == 6
    assert {f["email"] for f in result.failed} == FAILING | {"user1@example.com"}
    assert [len(c) for c in chunks] == [4, 4, 2]
    assert pauses == [1.0, 1.0]


def test_empty_recipient_list():
    result = send_in_batches([], lambda e: {"ok": True}, batch_size=5, delay_sec=1.0, sleep=lambda s: None)
    assert result.as_dict() == {"sent": 0, "failed": 0, "total": 0, "failures": []}


def _campaign_service(dispatcher):
    subs = FakeSubscriptionRepo([new_subscription(e) for e in EMAILS])
    campaigns = FakeCampaignRepo()
    svc = CampaignService(
        campaigns=campaigns,
        subscriptions=subs,
        medications=FakeMedicationRepo(),
        prices=FakePriceRepo(),
        pharmacies=FakePharmacyRepo(),
        messages=FakeMessageRepo(),
        dispatcher=dispatcher,
        sleep=lambda s: None,
    )
    return svc, campaigns, subs


def test_campaign_with_partial_failures_ends_sent():
    dispatcher = FakeDispatcher(fail_for=FAILING)
    svc, campaigns, subs = _campaign_service(dispatcher)
    campaign_id = campaigns.create(new_campaign("Spring offers", {"custom_text": "Hello"}, "all", "ops@example.com"))

    summary = svc.send_campaign(campaign_id)

    assert summary["sent"] == 7
    assert summary["failed"] == 3
    stored = campaigns.rows[campaign_id]
    assert stored["status"] == "sent"
    assert stored["recipient_count"] == 10
    assert stored["stats"]["total_sent"] == 7
    assert stored["stats"]["total_failed"] == 3
    assert len(stored["recipients"]) == 10
    assert sorted(subs.sent_marks) == sorted(set(EMAILS) - FAILING)
    assert len(dispatcher.sent) == 10


def test_campaign_emails_carry_each_recipients_unsubscribe_link():
    dispatcher = FakeDispatcher()
    svc, campaigns, subs = _campaign_service(dispatcher)
    campaign_id = campaigns.create(new_campaign("Hi", {"custom_text": "x"}, "all", "ops@example.com"))

    svc.send_campaign(campaign_id)

    token = subs.get_by_email("user3@example.com")["unsubscribe_token"]
    html = next(m["html"] for m in dispatcher.sent if m["to"] == "user3@example.com")
    assert token in html


def test_campaign_marked_failed_when_audience_lookup_breaks():
    svc, campaigns, subs = _campaign_service(FakeDispatcher())
    campaign_id = campaigns.create(new_campaign("Hi", {}, "all", "ops@example.com"))

    def _broken(**kwargs):
        raise RuntimeError("store unavailable")

    subs.list = _broken
    with pytest.raises(RuntimeError):
        svc.send_campaign(campaign_id)
    assert campaigns.rows[campaign_id]["status"] == "failed"
