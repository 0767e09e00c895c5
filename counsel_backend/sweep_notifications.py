"""Delete notifications whose expiry has passed.

Usage:
    python -m counsel_backend.sweep_notifications
"""
import sys

from sqlalchemy.exc import SQLAlchemyError

from counsel_backend.core import config
from counsel_backend.notifications.dispatcher import NotificationDispatcher


def main() -> None:
    config.configure_logging()
    try:
        deleted = NotificationDispatcher().sweep_expired()
    except SQLAlchemyError as exc:
        print("Notification sweep failed:", exc, file=sys.stderr)
        sys.exit(1)
    print(f"Deleted {deleted} expired notifications")


if __name__ == "__main__":
    main()
