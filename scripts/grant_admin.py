"""
Grant admin or superadmin access to an identity.

Sets the {admin: true, role} claims of record and writes the matching
profile role. The holder must refresh their session (or sign in again)
before the new claims show up in their token.

Run from the project root:
    python scripts/grant_admin.py --email ops@example.com
    python scripts/grant_admin.py --uid 3f9c... --role superadmin
"""
import argparse
import asyncio
import os
import sys

# Add the project root to path so we can import config
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import async_session, engine, init_db
from domain.actor import Actor
from domain.enums import UserRole
from domain.errors import DomainError
from services import auth_service


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Grant admin console access.")
    parser.add_argument("--uid", help="identity uid")
    parser.add_argument("--email", help="identity email (used to look up the uid when --uid is omitted)")
    parser.add_argument(
        "--role",
        choices=[UserRole.ADMIN.value, UserRole.SUPERADMIN.value],
        default=UserRole.ADMIN.value,
    )
    args = parser.parse_args(argv)
    if not args.uid and not args.email:
        parser.error("one of --uid or --email is required")
    return args


async def main(argv=None) -> int:
    args = parse_args(argv)
    os.makedirs("data", exist_ok=True)
    await init_db()

    try:
        async with async_session() as db:
            profile = await auth_service.grant_admin(
                db,
                role=UserRole(args.role),
                uid=args.uid,
                email=args.email,
                actor=Actor.system(),
            )
    except DomainError as e:
        print(f"❌ {e.message}")
        return 1
    finally:
        await engine.dispose()

    print(f"✅ {profile.email or profile.uid} is now {profile.role}")
    print("   Existing sessions keep their old claims until refreshed (POST /auth/refresh)")
    print("   or until the holder signs out and back in.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
