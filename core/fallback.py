"""Example listings shown whenever the live store cannot provide any."""

from datetime import datetime, timedelta, timezone

from db.models import Listing

_IMAGE_URL = "https://firebasestorage.googleapis.com/v0/b/inout-app.appspot.com/o/listings%2F{name}.jpg?alt=media"

_SEED = (
    {
        "id": "mock-listing-1",
        "title": "Spacious apartment in the city centre",
        "description": "Renovated apartment in the heart of the city, close to every service.",
        "price": 850.0,
        "type": "apartment",
        "address": "Via Roma 123",
        "city": "Milano",
        "latitude": 45.464664,
        "longitude": 9.188540,
        "rooms": 3,
        "bathrooms": 1,
        "size": 85.0,
        "months": 12,
        "owner_id": "mock-user-1",
        "age_days": 0,
    },
    {
        "id": "mock-listing-2",
        "title": "Modern studio near the university",
        "description": "Furnished studio for students, five minutes on foot from the university.",
        "price": 550.0,
        "type": "studio",
        "address": "Via Università 45",
        "city": "Bologna",
        "latitude": 44.496761,
        "longitude": 11.350988,
        "rooms": 1,
        "bathrooms": 1,
        "size": 35.0,
        "months": 9,
        "owner_id": "mock-user-2",
        "age_days": 1,
    },
    {
        "id": "mock-listing-3",
        "title": "Villa with garden in a residential area",
        "description": "Villa with a large garden, pool and double garage. Ideal for families.",
        "price": 1800.0,
        "type": "house",
        "address": "Via dei Pini 78",
        "city": "Roma",
        "latitude": 41.907971,
        "longitude": 12.498528,
        "rooms": 5,
        "bathrooms": 3,
        "size": 180.0,
        "months": 24,
        "owner_id": "mock-user-3",
        "age_days": 2,
    },
    {
        "id": "mock-listing-4",
        "title": "Renovated industrial loft",
        "description": "Design loft in a former industrial area. High ceilings and open spaces.",
        "price": 1200.0,
        "type": "loft",
        "address": "Via dell'Industria 92",
        "city": "Torino",
        "latitude": 45.070312,
        "longitude": 7.686856,
        "rooms": 2,
        "bathrooms": 2,
        "size": 110.0,
        "months": 6,
        "owner_id": "mock-user-1",
        "age_days": 3,
    },
    {
        "id": "mock-listing-5",
        "title": "Bright two-room flat with terrace",
        "description": "Two-room flat with a large terrace and panoramic view.",
        "price": 750.0,
        "type": "apartment",
        "address": "Via del Mare 15",
        "city": "Genova",
        "latitude": 44.407114,
        "longitude": 8.933883,
        "rooms": 2,
        "bathrooms": 1,
        "size": 60.0,
        "months": 12,
        "owner_id": "mock-user-2",
        "age_days": 4,
    },
)


def fallback_listings(now: datetime | None = None) -> list[Listing]:
    """Build the seed set, dated relative to ``now`` so recency filters behave."""
    now = now or datetime.now(timezone.utc)
    listings = []
    for index, seed in enumerate(_SEED, start=1):
        created_at = now - timedelta(days=seed["age_days"])
        listings.append(
            Listing(
                id=seed["id"],
                title=seed["title"],
                description=seed["description"],
                address=seed["address"],
                city=seed["city"],
                price=seed["price"],
                latitude=seed["latitude"],
                longitude=seed["longitude"],
                images=(_IMAGE_URL.format(name=f"mock{index}"),),
                owner_id=seed["owner_id"],
                type=seed["type"],
                size=seed["size"],
                rooms=seed["rooms"],
                bathrooms=seed["bathrooms"],
                months=seed["months"],
                created_at=created_at,
                updated_at=created_at,
            )
        )
    return listings
