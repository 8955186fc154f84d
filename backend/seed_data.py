#!/usr/bin/env python3
"""
Seed script for the TribeVibe functions database.
Creates sample tribes and events whose images point at public storage objects,
so the deletion endpoints and worker have something to chew on locally.

Usage:
    cd backend
    python seed_data.py
"""

from datetime import datetime, timedelta, timezone
from sqlalchemy import text
from app.config import settings
from app.database import SessionLocal
from app.models import Event, Tribe

OWNER_ID = "11111111-1111-1111-1111-111111111111"

TRIBES = [
    {
        "title": "SF Tech Innovators",
        "description": "Builders and tinkerers meeting every week to demo side projects.",
        "city": "San Francisco, CA",
        "cover": ("tcpublic", "tribe-covers/sf-tech.jpg"),
        "events": [
            {"title": "Demo Night", "location": "SoMa, San Francisco", "banner": ("events", "event-banners/demo-night.jpg")},
            {"title": "Hack Saturday", "location": "Mission District", "banner": ("events", "event-banners/hack-saturday.jpg")},
        ],
    },
    {
        "title": "Golden Gate Runners",
        "description": "Early morning runs across the bridge, all paces welcome.",
        "city": "San Francisco, CA",
        "cover": None,
        "events": [
            {"title": "Bridge Loop", "location": "Crissy Field", "banner": ("events", "event-banners/bridge-loop.jpg")},
            {"title": "Virtual 5K", "location": "Online", "banner": None},
        ],
    },
    {
        "title": "Oakland Book Club",
        "description": "One book a month, one long conversation.",
        "city": "Oakland, CA",
        "cover": ("tcpublic", "tribe-covers/book-club.png"),
        "events": [],
    },
]


def public_url(bucket: str, path: str) -> str:
    base = settings.resolved_storage_url or "http://localhost:54321"
    return f"{base}/storage/v1/object/public/{bucket}/{path}"


def seed_database():
    """Seed the database with sample data."""
    print("🌱 Starting database seeding...")

    session = SessionLocal()
    try:
        tribe_count = session.execute(text("SELECT COUNT(*) FROM tribes")).scalar()
        if tribe_count > 0:
            print("⚠️  Database already has data. Clearing existing data...")
            for table in ("deletion_jobs", "events", "tribes"):
                session.execute(text(f"DELETE FROM {table}"))
            session.commit()
            print("✅ Existing data cleared")

        print("🏕️  Creating tribes...")
        start = datetime.now(timezone.utc) + timedelta(days=3)
        event_count = 0
        for entry in TRIBES:
            tribe = Tribe(
                owner=OWNER_ID,
                title=entry["title"],
                description=entry["description"],
                city=entry["city"],
                cover_url=public_url(*entry["cover"]) if entry["cover"] else None,
            )
            session.add(tribe)
            session.flush()
            for offset, item in enumerate(entry["events"]):
                session.add(
                    Event(
                        tribe_id=tribe.id,
                        title=item["title"],
                        location=item["location"],
                        starts_at=start + timedelta(days=7 * offset),
                        banner_url=public_url(*item["banner"]) if item["banner"] else None,
                    )
                )
                event_count += 1
        session.commit()
        print(f"   Created {len(TRIBES)} tribes and {event_count} events")

        print("\n✅ Database seeding completed successfully!")
        print(f"\n📋 All tribes are owned by user {OWNER_ID}")

    except Exception as e:
        session.rollback()
        print(f"\n❌ Error during seeding: {e}")
        raise
    finally:
        session.close()


if __name__ == "__main__":
    seed_database()
