"""Read-side entitlement checks for a factory's current term.

Expiry is evaluated here against the clock; no sweeper rewrites statuses,
so a stored ``active`` row past its end date is treated as inactive.
"""
from __future__ import annotations

import math
from datetime import datetime

from labo.models.base import utcnow
from labo.models.billing import Subscription, SubscriptionPlan, SubscriptionStatus

UNLIMITED = -1
DEFAULT_RADIUS_KM = 5


def is_active(subscription: Subscription | None, now: datetime | None = None) -> bool:
    if not subscription:
        return False
    if subscription.status in (SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED):
        return False
    now = now or utcnow()
    return subscription.end_date > now


def _within_limit(limit: int, used: int) -> bool:
    if limit == UNLIMITED:
        return True
    return used < limit


def can_post_job(
    subscription: Subscription | None,
    plan: SubscriptionPlan | None,
    current_job_count: int,
    now: datetime | None = None,
) -> bool:
    if not subscription or not plan or not is_active(subscription, now):
        return False
    return _within_limit(plan.max_job_posts, current_job_count)


def can_view_profile(
    subscription: Subscription | None,
    plan: SubscriptionPlan | None,
    viewed_count: int,
    now: datetime | None = None,
) -> bool:
    if not subscription or not plan or not is_active(subscription, now):
        return False
    return _within_limit(plan.max_view_profiles, viewed_count)


def trial_days_left(subscription: Subscription | None, now: datetime | None = None) -> int:
    if not subscription or subscription.status != SubscriptionStatus.TRIAL or not subscription.trial_ends_at:
        return 0
    now = now or utcnow()
    remaining = (subscription.trial_ends_at - now).total_seconds() / 86400
    return max(0, math.ceil(remaining))


def max_search_radius(plan: SubscriptionPlan | None) -> int:
    if not plan:
        return DEFAULT_RADIUS_KM
    return plan.radius_km


def entitlements(
    subscription: Subscription | None,
    plan: SubscriptionPlan | None,
    job_count: int = 0,
    viewed_count: int = 0,
    now: datetime | None = None,
) -> dict[str, object]:
    now = now or utcnow()
    return {
        "is_active": is_active(subscription, now),
        "can_post_job": can_post_job(subscription, plan, job_count, now),
        "can_view_profile": can_view_profile(subscription, plan, viewed_count, now),
        "trial_days_left": trial_days_left(subscription, now),
        "max_job_posts": plan.max_job_posts if plan else 0,
        "max_view_profiles": plan.max_view_profiles if plan else 0,
        "max_search_radius_km": max_search_radius(plan),
        "job_count": job_count,
        "viewed_count": viewed_count,
    }
