"""
Plans & subscriptions API.

- GET  /plans: read-only plan catalog (no auth)
- POST /subscriptions: switch the caller to another plan
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from humanizer.core.auth import get_current_user_id
from humanizer.features.credits.subscriptions import change_plan
from humanizer.features.plans.catalog import list_plans


router = APIRouter(tags=["plans"])


class SubscriptionRequest(BaseModel):
    planId: Optional[str] = None


@router.get("/plans")
def get_plans():
    return {
        "data": [
            {
                "id": plan.plan_id,
                "name": plan.name,
                "description": plan.description,
                "price": str(plan.price),
                "interval": plan.interval,
                "credits": plan.credits,
                "features": list(plan.features),
            }
            for plan in list_plans()
        ]
    }


@router.post("/subscriptions", status_code=201)
def create_subscription(body: SubscriptionRequest, user_id: str = Depends(get_current_user_id)):
    """Errors: 400 unknown plan, 409 concurrent change."""
    subscription = change_plan(user_id, body.planId)
    return {
        "id": subscription.id,
        "userId": subscription.user_id,
        "planType": subscription.plan_type,
        "creditsTotal": subscription.credits_total,
        "creditsUsed": subscription.credits_used,
        "creditsRemaining": subscription.credits_remaining,
        "startDate": subscription.start_date.isoformat(),
        "endDate": subscription.end_date.isoformat(),
        "active": subscription.active,
    }
