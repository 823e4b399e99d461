from __future__ import annotations

from uuid import UUID, uuid4

from fastapi import status
from sqlmodel import select

from labo.core.config import settings
from labo.models.billing import PaymentIntent, PaymentStatus, Subscription, SubscriptionStatus
from labo.models.user import User

from .conftest import auth_headers, login_admin, register_and_login

ADMIN_URL = f"{settings.api_v1_str}/admin"


def _bank_transfer(client, db_session, plan, interval: str = "monthly") -> tuple[dict, UUID, UUID]:
    token, email = register_and_login(client, "factory@example.com", "secret123")
    response = client.post(
        f"{settings.api_v1_str}/billing/bank-transfer",
        json={"plan_id": str(plan.id), "interval": interval},
        headers=auth_headers(token),
    )
    assert response.status_code == status.HTTP_201_CREATED, response.json()
    factory_id = db_session.exec(select(User).where(User.email == email)).one().id
    return token, factory_id, UUID(response.json()["payment_id"])


def _subscriptions(db_session, factory_id) -> list[Subscription]:
    db_session.expire_all()
    return db_session.exec(
        select(Subscription).where(Subscription.factory_id == factory_id).order_by(Subscription.created_at)
    ).all()


def test_pending_transfers_are_listed_for_admin(client, db_session, plans):
    _, _, payment_id = _bank_transfer(client, db_session, plans["basic"])
    admin = login_admin(client, db_session)

    response = client.get(f"{ADMIN_URL}/payments/pending-transfers", headers=auth_headers(admin))
    assert response.status_code == status.HTTP_200_OK
    assert [item["id"] for item in response.json()] == [str(payment_id)]


def test_confirm_activates_subscription(client, db_session, plans):
    token, factory_id, payment_id = _bank_transfer(client, db_session, plans["enterprise"])
    admin = login_admin(client, db_session)

    response = client.post(
        f"{ADMIN_URL}/payments/confirm",
        json={"payment_id": str(payment_id)},
        headers=auth_headers(admin),
    )
    assert response.status_code == status.HTTP_200_OK, response.json()
    body = response.json()
    assert body["changed"] is True
    assert body["payment"]["status"] == "success"
    assert body["payment"]["resolved_by"] is not None
    assert body["subscription"]["status"] == "active"
    assert body["subscription"]["plan_id"] == str(plans["enterprise"].id)

    trial, paid = _subscriptions(db_session, factory_id)
    assert trial.status == SubscriptionStatus.EXPIRED
    assert paid.status == SubscriptionStatus.ACTIVE
    assert paid.payment_id == payment_id

    pending = client.get(f"{ADMIN_URL}/payments/pending-transfers", headers=auth_headers(admin)).json()
    assert pending == []

    entitlements = client.get(
        f"{settings.api_v1_str}/billing/entitlements",
        params={"job_count": 500, "viewed_count": 500},
        headers=auth_headers(token),
    ).json()
    assert entitlements["can_post_job"] is True
    assert entitlements["can_view_profile"] is True


def test_confirm_twice_is_a_no_op(client, db_session, plans):
    _, factory_id, payment_id = _bank_transfer(client, db_session, plans["basic"])
    admin = login_admin(client, db_session)
    payload = {"payment_id": str(payment_id)}

    first = client.post(f"{ADMIN_URL}/payments/confirm", json=payload, headers=auth_headers(admin))
    second = client.post(f"{ADMIN_URL}/payments/confirm", json=payload, headers=auth_headers(admin))
    assert first.json()["changed"] is True
    assert second.status_code == status.HTTP_200_OK
    assert second.json()["changed"] is False
    assert second.json()["subscription"] is None

    assert len(_subscriptions(db_session, factory_id)) == 2


def test_reject_marks_failed_and_blocks_confirm(client, db_session, plans):
    _, factory_id, payment_id = _bank_transfer(client, db_session, plans["pro"])
    admin = login_admin(client, db_session)
    payload = {"payment_id": str(payment_id)}

    rejected = client.post(f"{ADMIN_URL}/payments/reject", json=payload, headers=auth_headers(admin))
    assert rejected.status_code == status.HTTP_200_OK
    assert rejected.json()["payment"]["status"] == "failed"
    assert rejected.json()["subscription"] is None

    confirmed = client.post(f"{ADMIN_URL}/payments/confirm", json=payload, headers=auth_headers(admin))
    assert confirmed.json()["changed"] is False
    assert confirmed.json()["payment"]["status"] == "failed"

    db_session.expire_all()
    assert db_session.get(PaymentIntent, payment_id).status == PaymentStatus.FAILED
    assert [sub.status for sub in _subscriptions(db_session, factory_id)] == [SubscriptionStatus.TRIAL]


def test_gateway_payments_cannot_be_confirmed_manually(client, db_session, plans):
    token, _ = register_and_login(client, "factory@example.com", "secret123")
    checkout = client.post(
        f"{settings.api_v1_str}/billing/checkout",
        json={"plan_id": str(plans["pro"].id)},
        headers=auth_headers(token),
    )
    admin = login_admin(client, db_session)

    response = client.post(
        f"{ADMIN_URL}/payments/confirm",
        json={"payment_id": checkout.json()["payment_id"]},
        headers=auth_headers(admin),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_unknown_payment_returns_404(client, db_session):
    admin = login_admin(client, db_session)
    response = client.post(
        f"{ADMIN_URL}/payments/confirm",
        json={"payment_id": str(uuid4())},
        headers=auth_headers(admin),
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_factory_cannot_confirm_payments(client, db_session, plans):
    token, _, payment_id = _bank_transfer(client, db_session, plans["basic"])
    response = client.post(
        f"{ADMIN_URL}/payments/confirm",
        json={"payment_id": str(payment_id)},
        headers=auth_headers(token),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    db_session.expire_all()
    assert db_session.get(PaymentIntent, payment_id).status == PaymentStatus.PENDING


def test_admin_payment_listing_filters(client, db_session, plans):
    _, _, payment_id = _bank_transfer(client, db_session, plans["basic"])
    admin = login_admin(client, db_session)
    client.post(f"{ADMIN_URL}/payments/reject", json={"payment_id": str(payment_id)}, headers=auth_headers(admin))

    failed = client.get(f"{ADMIN_URL}/payments", params={"status": "failed"}, headers=auth_headers(admin)).json()
    assert [item["id"] for item in failed] == [str(payment_id)]

    gateway = client.get(f"{ADMIN_URL}/payments", params={"method": "gateway"}, headers=auth_headers(admin)).json()
    assert gateway == []
