"""Promote an existing user to the admin role.

The user must have signed in at least once so that a local record exists.

    python -m nagarsathi.scripts.seed_admin someone@example.com
"""

import asyncio
import sys
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorClient

from nagarsathi.core import config


async def seed_admin(email: str) -> bool:
    print("🔧 Promoting admin...")
    print("=" * 50)

    try:
        print(f"📊 Connecting to database: {config.DB_NAME}")
        client = AsyncIOMotorClient(config.MONGO_URI)
        db = client[config.DB_NAME]
        await client.admin.command("ping")
        print("✅ Connected to MongoDB!")
    except Exception as e:
        print(f"❌ Connection failed: {e}")
        return False

    try:
        existing = await db.users.find_one({"email": email})
        if not existing:
            print(f"⚠️  No user with email {email}. Sign in once, then re-run.")
            return False

        if existing.get("role") == "admin":
            print(f"⚠️  {email} is already an admin.")
            return True

        await db.users.update_one(
            {"_id": existing["_id"]},
            {"$set": {"role": "admin", "updatedAt": datetime.now(timezone.utc)}},
        )
        print(f"✅ {email} is now an admin")
        return True
    finally:
        client.close()


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("Usage: python -m nagarsathi.scripts.seed_admin <email>")
        return 1
    return 0 if asyncio.run(seed_admin(argv[0])) else 1


if __name__ == "__main__":
    sys.exit(main())
