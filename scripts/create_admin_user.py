"""
Create (or reset the password of) a console admin.

    python -m scripts.create_admin_user --email admin@example.com --name Admin
"""
import argparse
import asyncio
import getpass
import os

from argon2 import PasswordHasher

from helpers.tortoise_config import close_db, init_db
from models.auth import User


async def create_admin(email: str, name: str, password: str, database_url: str) -> str:
    await init_db(database_url)
    try:
        ph = PasswordHasher()
        user = await User.get_or_none(email=email)
        if user:
            user.password = ph.hash(password)
            user.role = "admin"
            user.is_active = True
            await user.save()
            return "updated"
        await User.create(name=name, email=email, password=ph.hash(password), role="admin")
        return "created"
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Create or reset a console admin user")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Admin")
    parser.add_argument("--password", help="prompted for when omitted")
    parser.add_argument("--database-url", default=os.getenv("DATABASE_URL", "sqlite://db.sqlite3"))
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        parser.error("password must be at least 8 characters")

    outcome = asyncio.run(create_admin(args.email.strip().lower(), args.name, password, args.database_url))
    print(f"Admin user {args.email} {outcome}")


if __name__ == "__main__":
    main()
