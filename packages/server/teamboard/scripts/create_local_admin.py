"""
Script to create (or promote) an approved administrator for local testing.

Self-registration always yields an unapproved developer, so the first admin
has to be bootstrapped out of band.
"""

import argparse
import asyncio
import uuid

from sqlmodel import select

from teamboard.core.auth import hash_password
from teamboard.core.database import engine, get_session_context
from teamboard.models.user import Profile, User
from teamboard_shared.schemas.common import Role


async def create_admin(email: str, password: str, first_name: str = "", last_name: str = "") -> uuid.UUID:
    email = email.strip().lower()

    async with get_session_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user:
            user = User(id=uuid.uuid4(), email=email, password_hash=hash_password(password))
            session.add(user)
            await session.flush()
            print(f"Created user: {email}")
        else:
            user.password_hash = hash_password(password)
            session.add(user)
            print(f"User {email} already exists, password reset.")

        result = await session.execute(select(Profile).where(Profile.user_id == user.id))
        profile = result.scalar_one_or_none()

        if not profile:
            profile = Profile(user_id=user.id, email=email, first_name=first_name, last_name=last_name)
        elif first_name or last_name:
            profile.first_name = first_name or profile.first_name
            profile.last_name = last_name or profile.last_name

        profile.role = Role.ADMIN.value
        profile.is_approved = True
        session.add(profile)
        print(f"{email} is an approved administrator.")
        user_id = user.id

    await engine.dispose()
    print("Done.")
    return user_id


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a local admin user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--first-name", default="", help="First name shown in the UI")
    parser.add_argument("--last-name", default="", help="Last name shown in the UI")

    args = parser.parse_args()

    asyncio.run(create_admin(args.email, args.password, args.first_name, args.last_name))


if __name__ == "__main__":
    main()
