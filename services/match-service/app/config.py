import os

SERVICE_NAME = "match-service"

MATCH_DATABASE_URL = os.getenv("MATCH_DATABASE_URL")  # unset => in-memory stores
REDIS_URL = os.getenv("REDIS_URL")  # required by the event consumer only
RABBIT_URL = os.getenv("RABBIT_URL")  # required if you want events
USER_SERVICE_URL = os.getenv("USER_SERVICE_URL")  # unset => in-memory directory

LOG_LEVEL = os.getenv("LOG_LEVEL") or "INFO"

# ---- Ranking ----
DEFAULT_RADIUS_KM = float(os.getenv("MATCH_DEFAULT_RADIUS_KM") or "50")
CRITICAL_RADIUS_KM = float(os.getenv("MATCH_CRITICAL_RADIUS_KM") or "100")
BACKUP_COUNT = int(os.getenv("MATCH_BACKUP_COUNT") or "3")

# ---- Proposal expiry windows (minutes), shorter for more urgent requests ----
EXPIRY_MINUTES = {
    "critical": int(os.getenv("MATCH_EXPIRY_MINUTES_CRITICAL") or "5"),
    "high": int(os.getenv("MATCH_EXPIRY_MINUTES_HIGH") or "15"),
    "normal": int(os.getenv("MATCH_EXPIRY_MINUTES_NORMAL") or "60"),
    "low": int(os.getenv("MATCH_EXPIRY_MINUTES_LOW") or "240"),
}

# ---- Expiry sweeper ----
SWEEP_INTERVAL_SECONDS = float(os.getenv("MATCH_SWEEP_INTERVAL_SECONDS") or "2.0")
SWEEP_BATCH = int(os.getenv("MATCH_SWEEP_BATCH") or "50")

HTTP_TIMEOUT = 2.0
