from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services.subscription_store import SubscriptionStore

router = APIRouter()


@router.get('/stats')
async def subscription_stats(db: Session = Depends(get_db)) -> dict:
    store = SubscriptionStore(db, dangling_pending_days=settings.dangling_pending_days)
    return store.stats().model_dump()


@router.get('/{subscription_id}')
async def get_subscription(subscription_id: str, db: Session = Depends(get_db)) -> dict:
    subscription = SubscriptionStore(db).get_by_id(subscription_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail='Subscription not found')
    return subscription.model_dump(mode='json')
