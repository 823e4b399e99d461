"""Subscription activation.

``SubscriptionActivator.activate`` is the only code path that creates paid
terms. Both the VNPay return handler and the admin bank-transfer
reconciliation reach it through ``PaymentService.settle``.
"""
from __future__ import annotations

import calendar
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator
from uuid import UUID

from sqlmodel import Session, select

from labo.core.config import settings
from labo.core.logging_setup import logger
from labo.models.base import utcnow
from labo.models.billing import (
    CURRENT_TERM_STATUSES,
    BillingInterval,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from labo.models.user import User
from labo.services.billing import TRIAL_PLAN_SLUG, BillingService
from labo.services.exceptions import BillingValidationError


class _FactoryLock:
    __slots__ = ("rlock", "__weakref__")

    def __init__(self) -> None:
        self.rlock = threading.RLock()


_registry_guard = threading.Lock()
# Weak values: an entry lives only while some thread holds or waits on it.
_factory_locks: weakref.WeakValueDictionary[UUID, _FactoryLock] = weakref.WeakValueDictionary()


@contextmanager
def factory_lock(factory_id: UUID) -> Iterator[None]:
    """Serialize term changes for one factory inside this process.

    Re-entrant, so a caller already holding it (``PaymentService.settle``)
    can call ``activate`` without deadlocking.
    """
    with _registry_guard:
        lock = _factory_locks.get(factory_id)
        if lock is None:
            lock = _factory_locks[factory_id] = _FactoryLock()
    with lock.rlock:
        yield


def add_interval(start: datetime, interval: BillingInterval) -> datetime:
    """Calendar-aware term end: same day next month/year, clamped to month end."""
    if interval == BillingInterval.YEARLY:
        year, month = start.year + 1, start.month
    else:
        month = start.month + 1
        year = start.year + (month - 1) // 12
        month = (month - 1) % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


class SubscriptionActivator:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_current(self, factory_id: UUID) -> Subscription | None:
        return self.session.exec(
            select(Subscription)
            .where(Subscription.factory_id == factory_id)
            .where(Subscription.status.in_(CURRENT_TERM_STATUSES))
            .order_by(Subscription.start_date.desc())
        ).first()

    def list_for_factory(self, factory_id: UUID) -> list[Subscription]:
        return list(
            self.session.exec(
                select(Subscription)
                .where(Subscription.factory_id == factory_id)
                .order_by(Subscription.created_at.desc())
            ).all()
        )

    def activate(
        self,
        factory_id: UUID,
        plan_id: UUID,
        interval: BillingInterval | str,
        *,
        payment_id: UUID | None = None,
        now: datetime | None = None,
        commit: bool = True,
    ) -> Subscription:
        try:
            interval = BillingInterval(interval)
        except ValueError as exc:
            raise BillingValidationError(f"Unsupported billing interval: {interval}") from exc
        plan = self.session.get(SubscriptionPlan, plan_id)
        if not plan:
            raise BillingValidationError("Plan not available")

        now = now or utcnow()
        end_date = add_interval(now, interval)

        with factory_lock(factory_id):
            self._lock_factory_row(factory_id)
            retired = self._retire_current_terms(factory_id, now)
            subscription = Subscription(
                factory_id=factory_id,
                plan_id=plan.id,
                payment_id=payment_id,
                status=SubscriptionStatus.ACTIVE,
                start_date=now,
                end_date=end_date,
            )
            self.session.add(subscription)
            self.session.flush()
            if commit:
                self.session.commit()
                self.session.refresh(subscription)

        logger.info(
            "Subscription %s activated for factory=%s plan=%s interval=%s until=%s (retired=%d)",
            subscription.id,
            factory_id,
            plan.slug,
            interval.value,
            end_date.isoformat(),
            retired,
        )
        return subscription

    def start_trial(self, factory_id: UUID, now: datetime | None = None, commit: bool = True) -> Subscription | None:
        """Open the registration trial, unless the factory already has a current term."""
        plan = BillingService(self.session).get_plan_by_slug(TRIAL_PLAN_SLUG)
        if not plan:
            logger.warning("Trial plan missing; factory=%s starts without a subscription", factory_id)
            return None

        now = now or utcnow()
        with factory_lock(factory_id):
            if self.get_current(factory_id):
                return None
            trial_end = now + timedelta(days=max(settings.billing_trial_days, 0))
            subscription = Subscription(
                factory_id=factory_id,
                plan_id=plan.id,
                status=SubscriptionStatus.TRIAL,
                start_date=now,
                end_date=trial_end,
                trial_ends_at=trial_end,
            )
            self.session.add(subscription)
            self.session.flush()
            if commit:
                self.session.commit()
                self.session.refresh(subscription)
        return subscription

    def _lock_factory_row(self, factory_id: UUID) -> None:
        # Row lock for multi-process deployments; SQLite ignores FOR UPDATE.
        self.session.exec(select(User.id).where(User.id == factory_id).with_for_update()).first()

    def _retire_current_terms(self, factory_id: UUID, now: datetime) -> int:
        current = self.session.exec(
            select(Subscription)
            .where(Subscription.factory_id == factory_id)
            .where(Subscription.status.in_(CURRENT_TERM_STATUSES))
            .execution_options(populate_existing=True)
        ).all()
        for subscription in current:
            subscription.status = SubscriptionStatus.EXPIRED
            subscription.updated_at = now
            self.session.add(subscription)
        return len(current)
