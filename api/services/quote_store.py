"""
Quote Store — short-lived quotes referenced by order submission.

  - One Redis hash per quote: quote:{quote_id}
  - TTL from settings.QUOTE_TTL_SECONDS; an expired quote must be re-requested
  - Only what the reservation guard re-validates is stored; prices are re-derived
"""

import json
import secrets
import uuid
from datetime import date

import redis.asyncio as aioredis

from config import settings
from services.cost_calculator import CandidateItem
from services.errors import QuoteExpired

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Singleton Redis connection."""
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


def _key(quote_id: str) -> str:
    return f"quote:{quote_id}"


async def save_quote(
    user_id: uuid.UUID,
    subscription_id: uuid.UUID | None,
    pickup_date: date,
    items: list[CandidateItem],
    tip_cents: int,
    covered_bags: int,
    total_cents: int,
) -> str:
    """Store a quote and return its id."""
    quote_id = secrets.token_urlsafe(12)
    r = await get_redis()
    key = _key(quote_id)

    await r.hset(key, mapping={
        "user_id": str(user_id),
        "subscription_id": str(subscription_id) if subscription_id else "",
        "pickup_date": pickup_date.isoformat(),
        "items": json.dumps([
            {"service_id": i.service_id, "quantity": i.quantity, "notes": i.notes}
            for i in items
        ]),
        "tip_cents": str(tip_cents),
        "covered_bags": str(covered_bags),
        "total_cents": str(total_cents),
    })
    await r.expire(key, settings.QUOTE_TTL_SECONDS)

    return quote_id


async def load_quote(quote_id: str, user_id: uuid.UUID) -> dict:
    """
    Fetch a stored quote for `user_id`.

    Raises:
        QuoteExpired: unknown, expired, or belonging to another user
    """
    r = await get_redis()
    data = await r.hgetall(_key(quote_id))
    if not data or data.get("user_id") != str(user_id):
        raise QuoteExpired("Quote expired. Please review your order again.", quote_id=quote_id)

    return {
        "quote_id": quote_id,
        "subscription_id": uuid.UUID(data["subscription_id"]) if data.get("subscription_id") else None,
        "pickup_date": date.fromisoformat(data["pickup_date"]),
        "items": [CandidateItem(**raw) for raw in json.loads(data["items"])],
        "tip_cents": int(data["tip_cents"]),
        "covered_bags": int(data["covered_bags"]),
        "total_cents": int(data["total_cents"]),
    }


async def discard_quote(quote_id: str) -> None:
    r = await get_redis()
    await r.delete(_key(quote_id))
