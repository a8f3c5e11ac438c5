import pytest
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from renewals.errors import GatewayError, MemberNotFound, RequestDataError, SaleNotFound, StoreError
from renewals.membership import service
from renewals.membership.models import PaymentStatus
from renewals.membership.service import (
    CheckoutRequest,
    begin_checkout,
    complete_sale,
    hidden_fields,
    parse_checkout_fields,
    parse_client_reference,
)

WHEN = datetime(2025, 3, 1, 10, 30, tzinfo=ZoneInfo("Europe/London"))


def _pending(store, sale):
    sale_id = store.create_sale(sale)
    store.calls.clear()
    return sale_id


def test_happy_path_completion(store, gateway, pending_sale):
    sale_id = _pending(store, pending_sale)
    gateway.add_session("cs_live_1", str(sale_id))

    sale = complete_sale("cs_live_1", store, when=WHEN)

    assert store.mutations() == [
        ("set_end_date", 42, 2025),
        ("set_date_last_paid", 42, WHEN),
        ("set_friend_tickbox", 42, True),
        ("set_giftaid_tickbox", 42, False),
        ("set_end_date", 77, 2025),
        ("set_friend_tickbox", 77, False),
        ("set_members_at_address", 77, 2),
        ("set_friends_at_address", 77, 1),
        ("set_members_at_address", 42, 2),
        ("set_friends_at_address", 42, 1),
        ("set_last_payment", 42, Decimal("35.00")),
        ("set_donation_to_society", 42, Decimal("0.00")),
        ("set_donation_to_museum", 42, Decimal("0.00")),
        ("update_sale", sale_id, PaymentStatus.COMPLETE, "cs_live_1"),
    ]
    assert sale.payment_status == PaymentStatus.COMPLETE
    assert sale.payment_session_id == "cs_live_1"
    assert store.sales[sale_id].payment_status == PaymentStatus.COMPLETE
    assert store.sales[sale_id].payment_session_id == "cs_live_1"


def test_replay_does_not_write_again(store, gateway, pending_sale):
    sale_id = _pending(store, pending_sale)
    gateway.add_session("cs_live_1", str(sale_id))

    first = complete_sale("cs_live_1", store, when=WHEN)
    members_after_first = {k: dict(v) for k, v in store.members.items()}
    store.calls.clear()

    second = complete_sale("cs_live_1", store, when=WHEN)

    assert store.mutations() == []
    assert store.members == members_after_first
    assert second.cost_breakdown() == first.cost_breakdown()
    assert second.sale_id == first.sale_id


def test_full_member_only_counts(store, gateway, fees):
    sale = service.build_sale(fees, 2025, user_id=42, giftaid=True, donation_to_museum=Decimal("3"))
    sale_id = _pending(store, sale)
    gateway.add_session("cs_1", str(sale_id))

    complete_sale("cs_1", store, when=WHEN)

    calls = store.mutations()
    assert ("set_members_at_address", 42, 1) in calls
    assert ("set_friends_at_address", 42, 0) in calls
    assert ("set_giftaid_tickbox", 42, True) in calls
    assert ("set_last_payment", 42, Decimal("27.00")) in calls
    assert ("set_donation_to_museum", 42, Decimal("3.00")) in calls
    assert not [c for c in calls if len(c) > 1 and c[1] == 77]


def test_failed_step_leaves_sale_pending_and_retry_finishes(store, gateway, pending_sale):
    sale_id = _pending(store, pending_sale)
    gateway.add_session("cs_1", str(sale_id))
    store.fail_on = "set_last_payment"

    with pytest.raises(StoreError):
        complete_sale("cs_1", store, when=WHEN)
    assert store.sales[sale_id].payment_status == PaymentStatus.PENDING
    assert not [c for c in store.calls if c[0] == "update_sale"]

    sale = complete_sale("cs_1", store, when=WHEN)
    assert sale.payment_status == PaymentStatus.COMPLETE
    assert store.members[42]["last_payment"] == Decimal("35.00")
    assert store.members[77]["members_at_address"] == 2


def test_concurrent_completion_records_once(store, gateway, pending_sale, monkeypatch):
    sale_id = _pending(store, pending_sale)
    gateway.add_session("cs_1", str(sale_id))
    # Another request completes the sale between our load and our status change
    original_get_sale = store.get_sale

    def get_sale_then_race(sid):
        loaded = original_get_sale(sid)
        store.sales[sid] = loaded.model_copy(
            update={"payment_status": PaymentStatus.COMPLETE, "payment_session_id": "cs_1"}
        )
        return loaded

    monkeypatch.setattr(store, "get_sale", get_sale_then_race)
    sale = complete_sale("cs_1", store, when=WHEN)

    assert sale.payment_status == PaymentStatus.COMPLETE
    assert store.update_sale(sale_id, PaymentStatus.COMPLETE, "cs_1", only_if=PaymentStatus.PENDING) is False


def test_sale_cancelled_during_completion_is_not_shown_as_paid(store, gateway, pending_sale, monkeypatch):
    sale_id = _pending(store, pending_sale)
    gateway.add_session("cs_1", str(sale_id))
    original_update_sale = store.update_sale

    def cancel_then_update(sid, new_status, session_id, only_if=None):
        store.sales[sid] = store.sales[sid].model_copy(update={"payment_status": PaymentStatus.CANCELLED})
        return original_update_sale(sid, new_status, session_id, only_if=only_if)

    monkeypatch.setattr(store, "update_sale", cancel_then_update)
    with pytest.raises(RequestDataError):
        complete_sale("cs_1", store, when=WHEN)
    assert store.sales[sale_id].payment_status == PaymentStatus.CANCELLED


def test_sale_deleted_during_completion_is_not_shown_as_paid(store, gateway, pending_sale, monkeypatch):
    sale_id = _pending(store, pending_sale)
    gateway.add_session("cs_1", str(sale_id))

    def delete_then_lose(sid, new_status, session_id, only_if=None):
        del store.sales[sid]
        return False

    monkeypatch.setattr(store, "update_sale", delete_then_lose)
    with pytest.raises(SaleNotFound):
        complete_sale("cs_1", store, when=WHEN)


def test_unpaid_session_is_refused(store, gateway, pending_sale):
    sale_id = _pending(store, pending_sale)
    gateway.add_session("cs_1", str(sale_id), payment_status="unpaid")
    with pytest.raises(GatewayError):
        complete_sale("cs_1", store, when=WHEN)
    assert store.mutations() == []


def test_cancelled_sale_is_not_completed(store, gateway, pending_sale):
    sale_id = _pending(store, pending_sale)
    store.sales[sale_id] = store.sales[sale_id].model_copy(update={"payment_status": PaymentStatus.CANCELLED})
    gateway.add_session("cs_1", str(sale_id))
    with pytest.raises(RequestDataError):
        complete_sale("cs_1", store, when=WHEN)
    assert store.mutations() == []


def test_unknown_sale(store, gateway):
    gateway.add_session("cs_1", "999")
    with pytest.raises(SaleNotFound):
        complete_sale("cs_1", store, when=WHEN)


def test_missing_session_id(store, gateway):
    with pytest.raises(RequestDataError):
        complete_sale("  ", store, when=WHEN)


@pytest.mark.parametrize("reference", ["", "0", "-1", "abc", "1.5", "1 2", "1234567890123456789", "١٢"])
def test_bad_client_reference(reference):
    with pytest.raises(RequestDataError):
        parse_client_reference(reference)


@pytest.mark.parametrize("reference, expected", [("1", 1), ("000123", 123), ("999999999999999999", 999999999999999999)])
def test_good_client_reference(reference, expected):
    assert parse_client_reference(reference) == expected


def test_begin_checkout_creates_pending_sale_and_session(store, gateway, fees, monkeypatch):
    monkeypatch.setattr(service.config, "ORGANISATION_NAME", "Leatherhead & District Local History Society")
    request = CheckoutRequest(user_id=42, assoc_user_id=77, is_friend=True)

    url = begin_checkout(request, store, fees, "renew.example.org", membership_year=2025)

    assert url == "https://checkout.stripe.test/cs_test_1"
    (sale_id,) = store.sales
    sale = store.sales[sale_id]
    assert sale.payment_status == PaymentStatus.PENDING
    assert sale.payment_session_id == ""
    assert sale.membership_year == 2025
    assert sale.full_member_friend_fee == Decimal("5.00")
    assert sale.associate_member_fee == Decimal("6.00")

    (created,) = gateway.created
    assert created["amount_minor_units"] == 3500
    assert created["client_reference"] == str(sale_id)
    assert created["description"] == "Leatherhead & District Local History Society membership 2025"
    assert created["success_url"] == "http://renew.example.org/success?session_id={CHECKOUT_SESSION_ID}"
    assert created["cancel_url"] == "http://renew.example.org/cancel"
    assert created["invoice"] is True


def test_begin_checkout_uses_https_with_tls(store, gateway, fees, monkeypatch):
    monkeypatch.setattr(service.config, "TLS_CERTIFICATE_FILE", "/etc/ssl/cert.pem")
    begin_checkout(CheckoutRequest(user_id=42), store, fees, "renew.example.org", membership_year=2025)
    assert gateway.created[0]["success_url"].startswith("https://renew.example.org/success?")


def test_begin_checkout_unknown_member_creates_nothing(store, gateway, fees):
    with pytest.raises(MemberNotFound):
        begin_checkout(CheckoutRequest(user_id=5), store, fees, "testserver", membership_year=2025)
    with pytest.raises(MemberNotFound):
        begin_checkout(CheckoutRequest(user_id=42, assoc_user_id=6), store, fees, "testserver", membership_year=2025)
    assert store.sales == {}
    assert gateway.created == []


def test_begin_checkout_gateway_failure_leaves_pending_sale(store, fees, monkeypatch):
    def refuse(**kwargs):
        raise GatewayError("the payment service refused the checkout")

    monkeypatch.setattr("renewals.payments.stripe_client.create_session", refuse)
    with pytest.raises(GatewayError):
        begin_checkout(CheckoutRequest(user_id=42), store, fees, "testserver", membership_year=2025)
    assert [s.payment_status for s in store.sales.values()] == [PaymentStatus.PENDING]


def test_parse_checkout_fields():
    request = parse_checkout_fields(
        "42", assoc_user_id="77", friend="on", assoc_friend="on", giftaid="on",
        donation_to_society="1.50", donation_to_museum="",
    )
    assert request == CheckoutRequest(
        user_id=42, assoc_user_id=77, is_friend=True, assoc_is_friend=True, giftaid=True,
        donation_to_society=Decimal("1.50"), donation_to_museum=Decimal("0.00"),
    )


def test_parse_checkout_fields_ignores_associate_friend_without_associate():
    assert parse_checkout_fields("42", assoc_friend="on").assoc_is_friend is False


@pytest.mark.parametrize(
    "kwargs",
    [
        {"user_id": "abc"},
        {"user_id": "0"},
        {"user_id": "42", "assoc_user_id": "x"},
        {"user_id": "42", "donation_to_society": "junk"},
        {"user_id": "42", "donation_to_museum": "-1"},
        {"user_id": "42", "donation_to_museum": "NaN"},
        {"user_id": "42", "donation_to_society": "1e30"},
        {"user_id": "42", "donation_to_museum": "100000000"},
    ],
)
def test_parse_checkout_fields_rejects_tampered_fields(kwargs):
    with pytest.raises(RequestDataError):
        parse_checkout_fields(**kwargs)


def test_hidden_fields(fees):
    sale = service.build_sale(
        fees, 2025, user_id=42, assoc_user_id=77, is_friend=True, assoc_is_friend=True,
        giftaid=True, donation_to_society=Decimal("1.5"),
    )
    assert hidden_fields(sale) == [
        ("user_id", "42"),
        ("friend", "on"),
        ("giftaid", "on"),
        ("assoc_user_id", "77"),
        ("assoc_friend", "on"),
        ("donation_to_society", "1.50"),
    ]


def test_hidden_fields_round_trip_through_checkout(fees):
    sale = service.build_sale(fees, 2025, user_id=42, is_friend=True, donation_to_museum=Decimal("2.5"))
    request = parse_checkout_fields(**dict(hidden_fields(sale)))
    rebuilt = service.build_sale(
        fees, 2025, user_id=request.user_id, assoc_user_id=request.assoc_user_id,
        is_friend=request.is_friend, assoc_is_friend=request.assoc_is_friend, giftaid=request.giftaid,
        donation_to_society=request.donation_to_society, donation_to_museum=request.donation_to_museum,
    )
    assert rebuilt == sale
