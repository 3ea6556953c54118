import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./salonsync.db")

# Provenance tag stamped on every booking created from booking-platform notifications
BOOKING_EVENTS_SOURCE = os.getenv("BOOKING_EVENTS_SOURCE", "booksy")

# Shared secret the mailbox poller presents when pushing notifications to the webhook.
# No default: the webhook refuses every request until it is configured.
BOOKING_EVENTS_WEBHOOK_SECRET = os.getenv("BOOKING_EVENTS_WEBHOOK_SECRET")

# Pending-queue settings
PENDING_BODY_SNIPPET_CHARS = int(os.getenv("PENDING_BODY_SNIPPET_CHARS", "4000"))
PENDING_LIST_LIMIT = int(os.getenv("PENDING_LIST_LIMIT", "50"))

# Used when neither the notification nor the matched service carries a duration
DEFAULT_BOOKING_DURATION_MINUTES = int(os.getenv("DEFAULT_BOOKING_DURATION_MINUTES", "30"))
