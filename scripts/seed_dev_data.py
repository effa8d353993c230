#!/usr/bin/env python3
"""Seed a local database with an owner, a renter, an admin and a free listing.

Prints an access token per user so the flow scripts can call the API.
Users normally come from the account service; this is for local runs only.
"""

import asyncio

from sqlalchemy import select

from messbook.core.security import create_access_token
from messbook.database import async_session_maker, init_db
from messbook.models.listing import Listing
from messbook.models.user import User

DEV_USERS = [
    ("owner@messbook.dev", "Dev Owner", "owner"),
    ("renter@messbook.dev", "Dev Renter", "renter"),
    ("admin@messbook.dev", "Dev Admin", "admin"),
]


async def seed(monthly_rate: int = 4500, advance_months: int = 2) -> None:
    """Create the dev users and one listing if they don't exist."""
    await init_db()

    async with async_session_maker() as session:
        users: dict[str, User] = {}
        for email, name, role in DEV_USERS:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(email=email, name=name, role=role, phone="01700000000")
                session.add(user)
            user.is_active = True
            users[role] = user
        await session.flush()

        listing = Listing(
            owner_id=users["owner"].id,
            title="Seat in a 3-bed mess, Mirpur",
            address="Mirpur 10, Dhaka",
            monthly_rate=monthly_rate,
            advance_months=advance_months,
        )
        session.add(listing)
        await session.commit()

        print(f"Listing: {listing.id} ({monthly_rate} x {advance_months} months)")
        for role, user in users.items():
            token = create_access_token({"sub": str(user.id), "email": user.email, "role": role})
            print(f"{role.upper()}_TOKEN={token}")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed local development data")
    parser.add_argument("--monthly-rate", type=int, default=4500, help="Listing monthly rate")
    parser.add_argument("--advance-months", type=int, default=2, help="Months paid in advance")

    args = parser.parse_args()

    asyncio.run(seed(monthly_rate=args.monthly_rate, advance_months=args.advance_months))
