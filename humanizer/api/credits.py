from fastapi import APIRouter, Depends

from humanizer.core.auth import get_current_user_id
from humanizer.features.credits.ledger import get_balance


router = APIRouter(tags=["credits"])


@router.get("/credits")
def get_credits(user_id: str = Depends(get_current_user_id)):
    """Balance of the active subscription. creditsRemaining is -1 on unlimited plans."""
    subscription = get_balance(user_id)
    return {
        "userId": user_id,
        "planType": subscription.plan_type,
        "creditsTotal": subscription.credits_total,
        "creditsUsed": subscription.credits_used,
        "creditsReserved": subscription.credits_reserved,
        "creditsRemaining": subscription.credits_remaining,
        "subscriptionEnds": subscription.end_date.isoformat(),
    }
