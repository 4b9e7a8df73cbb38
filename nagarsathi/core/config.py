import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env")
load_dotenv()

# Environment
ENV = os.getenv("ENV", "development").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "5000"))
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")

# MongoDB
# Priority: MONGO_URI > MONGODB_URL > MONGODB_URI > local default
MONGO_URI = (
    os.getenv("MONGO_URI")
    or os.getenv("MONGODB_URL")
    or os.getenv("MONGODB_URI")
    or "mongodb://localhost:27017"
)
DB_NAME = os.getenv("MONGODB_NAME", "nagarsathi")
MONGO_POOL_MAXSIZE = int(os.getenv("MONGO_POOL_MAXSIZE", "50"))

# Clerk (identity provider)
CLERK_SECRET_KEY = os.getenv("CLERK_SECRET_KEY", "")
CLERK_JWT_KEY = os.getenv("CLERK_JWT_KEY", "").replace("\\n", "\n")
CLERK_API_URL = os.getenv("CLERK_API_URL", "https://api.clerk.com/v1").rstrip("/")
CLERK_AUTHORIZED_PARTIES = [
    party.strip()
    for party in os.getenv("CLERK_AUTHORIZED_PARTIES", "").split(",")
    if party.strip()
]
CLERK_ALGORITHMS = ["RS256"]

# Geocoding
NOMINATIM_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org").rstrip("/")
GEOCODER_USER_AGENT = os.getenv(
    "GEOCODER_USER_AGENT", "NagarSathi-CivicApp/1.0 (contact@nagarsathi.app)"
)

# Outbound HTTP
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

# Request timing
SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "2500"))
LOG_SLOW_REQUESTS = os.getenv("LOG_SLOW_REQUESTS", "true").lower() == "true"
