# facevote/config.py
# Central place for thresholds, timings and environment settings
import os

from dotenv import load_dotenv

load_dotenv()

# --- Biometric matching ---
# Euclidean distance thresholds; part of the external contract, do not retune silently
LOGIN_THRESHOLD = 0.55
VERIFY_THRESHOLD = 0.45

# Distance reported when descriptor lengths differ (fails closed under both thresholds)
MISMATCHED_DISTANCE = 1.0

# Enrolled descriptor length; 128 for the browser model, set 512 for insightface enrolment
EMBED_DIM = int(os.getenv("EMBED_DIM", "128"))

# When a voter has no enrolled descriptor, login proceeds on password alone
ALLOW_LOGIN_WITHOUT_ENROLLED_FACE = os.getenv(
    "ALLOW_LOGIN_WITHOUT_ENROLLED_FACE", "true"
).lower() in ("1", "true", "yes")

# --- Lockout ---
MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION_MINUTES = 15

# --- Liveness challenge (milliseconds / degrees) ---
STABILIZE_MS = 1000
TILT_ANGLE_DEG = 15
TILT_HOLD_MS = 500
STRAIGHTEN_ANGLE_DEG = 8
STRAIGHTEN_HOLD_MS = 800
CHALLENGE_TIMEOUT_MS = 30000
DETECTION_INTERVAL_MS = 200

# Face model strategy: "fast" (buffalo_s, small input) or "accurate" (buffalo_l)
FACE_MODEL = os.getenv("FACE_MODEL", "fast")

# --- Security & JWT ---
SECRET_KEY = os.getenv("SECRET_KEY", "a_very_secret_key_for_dev_only")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))

# Fernet key for descriptors at rest; generated into KEY_FILE when unset
DESCRIPTOR_KEY = os.getenv("DESCRIPTOR_KEY")
KEY_FILE = os.getenv("KEY_FILE", "data/secret.key")

# --- Storage ---
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "mongo")
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "voting_system")
VOTERS_COLLECTION_NAME = "voters"
CANDIDATES_COLLECTION_NAME = "candidates"
ELECTIONS_COLLECTION_NAME = "elections"

# Dev/test store persisted as JSON; None keeps it in memory only
MEMORY_DB_PATH = os.getenv("MEMORY_DB_PATH") or None

# Re-executions of a transaction aborted by a write conflict before giving up
TXN_MAX_RETRIES = int(os.getenv("TXN_MAX_RETRIES", "3"))

# --- HTTP ---
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
).split(",")
PORT = os.getenv("PORT", "8000")
