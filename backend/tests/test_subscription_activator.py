from __future__ import annotations

import gc
import threading
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlmodel import Session, select

from labo.models.billing import BillingInterval, Subscription, SubscriptionStatus
from labo.services.exceptions import BillingValidationError
from labo.services import subscriptions as subscriptions_module
from labo.services.subscriptions import SubscriptionActivator, add_interval, factory_lock


def _current_terms(session: Session, factory_id) -> list[Subscription]:
    session.expire_all()
    return session.exec(
        select(Subscription)
        .where(Subscription.factory_id == factory_id)
        .where(Subscription.status.in_([SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE]))
    ).all()


@pytest.mark.parametrize(
    "start, interval, expected",
    [
        (datetime(2026, 3, 15, 9, 30), BillingInterval.MONTHLY, datetime(2026, 4, 15, 9, 30)),
        (datetime(2026, 12, 15), BillingInterval.MONTHLY, datetime(2027, 1, 15)),
        (datetime(2024, 1, 31), BillingInterval.MONTHLY, datetime(2024, 2, 29)),
        (datetime(2023, 1, 31), BillingInterval.MONTHLY, datetime(2023, 2, 28)),
        (datetime(2026, 8, 31), BillingInterval.MONTHLY, datetime(2026, 9, 30)),
        (datetime(2026, 3, 15), BillingInterval.YEARLY, datetime(2027, 3, 15)),
        (datetime(2024, 2, 29), BillingInterval.YEARLY, datetime(2025, 2, 28)),
    ],
)
def test_add_interval_is_calendar_aware(start, interval, expected):
    assert add_interval(start, interval) == expected


def test_activate_monthly_and_yearly_terms(db_session: Session, factory_user, plans):
    activator = SubscriptionActivator(db_session)
    now = datetime(2026, 1, 31, 12, 0)

    monthly = activator.activate(factory_user.id, plans["pro"].id, "monthly", now=now)
    assert monthly.status == SubscriptionStatus.ACTIVE
    assert monthly.start_date == now
    assert monthly.end_date == datetime(2026, 2, 28, 12, 0)

    yearly = activator.activate(factory_user.id, plans["basic"].id, BillingInterval.YEARLY, now=now)
    assert yearly.end_date == datetime(2027, 1, 31, 12, 0)


def test_activation_retires_trial_and_previous_term(db_session: Session, factory_user, plans):
    activator = SubscriptionActivator(db_session)
    trial = activator.start_trial(factory_user.id)
    assert trial is not None
    assert trial.status == SubscriptionStatus.TRIAL

    first = activator.activate(factory_user.id, plans["basic"].id, "monthly")
    second = activator.activate(factory_user.id, plans["pro"].id, "yearly")

    db_session.expire_all()
    assert db_session.get(Subscription, trial.id).status == SubscriptionStatus.EXPIRED
    assert db_session.get(Subscription, first.id).status == SubscriptionStatus.EXPIRED
    current = _current_terms(db_session, factory_user.id)
    assert [s.id for s in current] == [second.id]
    assert activator.get_current(factory_user.id).id == second.id


def test_single_current_term_after_every_activation(db_session: Session, factory_user, plans):
    activator = SubscriptionActivator(db_session)
    activator.start_trial(factory_user.id)
    sequence = [("basic", "monthly"), ("pro", "monthly"), ("pro", "yearly"), ("enterprise", "monthly"), ("basic", "yearly")]
    for slug, interval in sequence:
        activator.activate(factory_user.id, plans[slug].id, interval)
        assert len(_current_terms(db_session, factory_user.id)) == 1
    assert len(activator.list_for_factory(factory_user.id)) == len(sequence) + 1


def test_activation_is_scoped_to_the_factory(db_session: Session, factory_user, plans):
    from labo.models.user import User

    other = User(email="other@example.com", full_name="Other", password_hash="hash", role="factory")
    db_session.add(other)
    db_session.commit()

    activator = SubscriptionActivator(db_session)
    other_term = activator.activate(other.id, plans["basic"].id, "monthly")
    activator.activate(factory_user.id, plans["pro"].id, "monthly")

    db_session.expire_all()
    assert db_session.get(Subscription, other_term.id).status == SubscriptionStatus.ACTIVE


def test_start_trial_is_skipped_when_a_term_exists(db_session: Session, factory_user, plans):
    activator = SubscriptionActivator(db_session)
    activator.activate(factory_user.id, plans["pro"].id, "monthly")

    assert activator.start_trial(factory_user.id) is None
    assert len(_current_terms(db_session, factory_user.id)) == 1


def test_trial_length_follows_settings(db_session: Session, factory_user, plans):
    now = datetime(2026, 10, 1)
    trial = SubscriptionActivator(db_session).start_trial(factory_user.id, now=now)
    assert trial.trial_ends_at == now + timedelta(days=30)
    assert trial.end_date == trial.trial_ends_at
    assert trial.plan_id == plans["trial"].id


def test_activate_rejects_unknown_plan_or_interval(db_session: Session, factory_user, plans):
    activator = SubscriptionActivator(db_session)
    with pytest.raises(BillingValidationError):
        activator.activate(factory_user.id, plans["pro"].id, "weekly")
    from uuid import uuid4

    with pytest.raises(BillingValidationError):
        activator.activate(factory_user.id, uuid4(), "monthly")


def test_concurrent_activations_leave_one_current_term(db_engine, factory_user, plans):
    errors: list[BaseException] = []
    barrier = threading.Barrier(4)
    factory_id = factory_user.id
    plan_ids = {slug: plan.id for slug, plan in plans.items()}

    def worker(slug: str) -> None:
        try:
            with Session(db_engine) as session:
                barrier.wait()
                SubscriptionActivator(session).activate(factory_id, plan_ids[slug], "monthly")
        except BaseException as exc:  # noqa: BLE001 - surfaced through the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(slug,)) for slug in ("basic", "pro", "enterprise", "pro")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with Session(db_engine) as session:
        assert len(_current_terms(session, factory_id)) == 1
        assert len(session.exec(select(Subscription)).all()) == 4


def test_factory_lock_is_reentrant_and_released_when_idle():
    factory_id = uuid4()

    with factory_lock(factory_id):
        with factory_lock(factory_id):
            assert factory_id in subscriptions_module._factory_locks

    gc.collect()
    assert factory_id not in subscriptions_module._factory_locks
