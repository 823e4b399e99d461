from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlmodel import Session, select

from labo.models.billing import SubscriptionPlan

TRIAL_PLAN_SLUG = "trial"


class BillingService:
    """Read access to the subscription plan catalogue."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_active_plans(self) -> Iterable[SubscriptionPlan]:
        return self.session.exec(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.sort_order, SubscriptionPlan.price_monthly)
        ).all()

    def get_plan(self, plan_id: UUID) -> SubscriptionPlan | None:
        return self.session.get(SubscriptionPlan, plan_id)

    def get_plan_by_slug(self, slug: str) -> SubscriptionPlan | None:
        return self.session.exec(select(SubscriptionPlan).where(SubscriptionPlan.slug == slug)).first()

    def ensure_default_plans(self) -> list[SubscriptionPlan]:
        """Idempotently create the default plan catalogue."""
        # slug, name, monthly, yearly, job posts, profile views, radius km, features
        defaults = [
            ("trial", "Dùng thử", 0, 0, 2, 20, 5, {"priority_listing": False, "analytics": False}),
            ("basic", "Cơ bản", 990_000, 9_900_000, 10, 200, 10, {"priority_listing": False, "analytics": True}),
            ("pro", "Chuyên nghiệp", 2_000_000, 20_000_000, 50, -1, 25, {"priority_listing": True, "analytics": True}),
            ("enterprise", "Doanh nghiệp", 5_000_000, 50_000_000, -1, -1, 50, {"priority_listing": True, "analytics": True}),
        ]
        existing = {p.slug: p for p in self.session.exec(select(SubscriptionPlan)).all()}
        created: list[SubscriptionPlan] = []
        for order, (slug, name, m_price, y_price, jobs, views, radius, features) in enumerate(defaults):
            if slug in existing:
                continue
            plan = SubscriptionPlan(
                slug=slug,
                name=name,
                price_monthly=m_price,
                price_yearly=y_price,
                max_job_posts=jobs,
                max_view_profiles=views,
                radius_km=radius,
                features=features,
                is_active=True,
                sort_order=order,
            )
            self.session.add(plan)
            created.append(plan)
        if created:
            self.session.commit()
            for p in created:
                self.session.refresh(p)
        return list(self.list_active_plans())
