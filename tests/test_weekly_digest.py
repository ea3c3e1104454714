from digest.weekly import DIGEST_SUBJECT, WeeklyDigestJob
from models.documents import new_subscription
from tests.fakes import FakeDispatcher, FakeMedicationRepo, FakePharmacyRepo, FakePriceRepo, FakeSubscriptionRepo


def _job(subs, dispatcher):
    meds = FakeMedicationRepo([
        {"id": "finasteride", "name": "Finasteride", "active": True},
        {"id": "minoxidil", "name": "Minoxidil", "active": True},
    ])
    prices = FakePriceRepo()
    prices.add("finasteride", "boots", "1mg", 22.5)
    prices.add("minoxidil", "boots", "5%", 12.0)
    pharmacies = FakePharmacyRepo([{"id": "boots", "name": "Boots"}])
    return WeeklyDigestJob(subscriptions=subs, medications=meds, prices=prices, pharmacies=pharmacies,
                           dispatcher=dispatcher, sleep=lambda s: None)


def test_digest_goes_only_to_opted_in_subscribers():
    subs = FakeSubscriptionRepo([
        new_subscription("in@example.com", preferences={"weekly_digest": True}),
        new_subscription("out@example.com"),
    ])
    dispatcher = FakeDispatcher()

    out = _job(subs, dispatcher).run()

    assert out["sent"] == 1
    assert [m["to"] for m in dispatcher.sent] == ["in@example.com"]
    assert dispatcher.sent[0]["subject"] == DIGEST_SUBJECT
    assert subs.sent_marks == ["in@example.com"]


def test_top_medications_sorted_by_lowest_price():
    job = _job(FakeSubscriptionRepo(), FakeDispatcher())
    top = job.top_medications(5)
    assert [m["id"] for m in top] == ["minoxidil", "finasteride"]
    assert top[0]["pharmacy_name"] == "Boots"


def test_no_recipients_sends_nothing():
    dispatcher = FakeDispatcher()
    out = _job(FakeSubscriptionRepo(), dispatcher).run()
    assert out["total"] == 0
    assert dispatcher.sent == []
