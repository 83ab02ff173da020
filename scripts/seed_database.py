#!/usr/bin/env python3
"""
Database seeding script for the Loyalty Card API.

This script creates the tables and populates the database with:
- The administrator account
- The program settings rows (cashback amount, voucher validity, sponsoring amounts)
- A demo shop for development
"""

import asyncio
import sys
import os

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loyalty.core.database import AsyncSessionLocal, Base, engine
from loyalty.core.config import settings
from loyalty.core.errors import DuplicateError
from loyalty.database_model import Shop, Setting, SettingSponsoring, SINGLETON_ID
from loyalty.services.admin_service import AdminService


async def create_tables():
    """Create every table registered on the metadata."""
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def create_admin_user(db: AsyncSession):
    """Create default admin account."""
    print("Creating admin user...")

    try:
        await AdminService(db).create_admin(settings.seed_admin_email, settings.seed_admin_password)
    except DuplicateError:
        print("Admin user already exists")
        return

    print(f"Admin user created: {settings.seed_admin_email}")


async def create_program_settings(db: AsyncSession):
    """Create the singleton settings rows."""
    print("Creating program settings...")

    if await db.get(Setting, SINGLETON_ID) is None:
        db.add(Setting(
            id=SINGLETON_ID,
            cashback_amount=0.0,
            voucher_durate=settings.default_voucher_durate
        ))

    if await db.get(SettingSponsoring, SINGLETON_ID) is None:
        db.add(SettingSponsoring(id=SINGLETON_ID, godson_amount=0.0, godfather_amount=0.0))

    await db.commit()
    print(f"Voucher validity: {settings.default_voucher_durate} days")


async def create_demo_shop(db: AsyncSession):
    """Create a demo shop for development."""
    print("Creating demo shop...")

    existing = await db.execute(select(Shop).where(Shop.name == "Magasin Centre"))
    if existing.scalar_one_or_none():
        print("Demo shop already exists")
        return

    shop = Shop(name="Magasin Centre", address="Avenue principale")
    db.add(shop)
    await db.commit()
    await db.refresh(shop)

    print(f"Demo shop created with id {shop.id}")


async def main():
    """Main seeding function."""
    print("Starting database seeding...")
    print(f"Environment: {settings.environment}")

    await create_tables()

    async with AsyncSessionLocal() as db:
        try:
            await create_admin_user(db)
            await create_program_settings(db)

            # Only create the demo shop in development
            if settings.environment == "development":
                await create_demo_shop(db)

            print("\nDatabase seeding completed successfully!")
            print("\nYou can now start the application with: uvicorn loyalty.main:app --reload")

        except Exception as e:
            print(f"Error during seeding: {e}")
            await db.rollback()
            raise

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
