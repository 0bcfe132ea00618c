import argparse
from sqlalchemy.orm import Session

from .core.config import settings
from .core.logging import setup_logging
from .db.base import Base, SessionLocal, engine
from .services.listings import ListingService


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="FridgeShare maintenance tasks")
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("create-tables", help="Create any missing database tables")
    sub.add_parser("expire-listings", help="Mark active listings past their window as expired")
    return p.parse_args()


def main():
    args = parse_args()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    if args.command == "create-tables":
        Base.metadata.create_all(bind=engine)
        print("Tables created")
        return

    db: Session = SessionLocal()
    try:
        expired = ListingService(db).expire_stale_items()
        print(f"Expired {expired} listings")
    finally:
        db.close()


if __name__ == "__main__":
    main()
