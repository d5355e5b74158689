import logging
import os

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

TMDB_API_KEY = os.getenv("TMDB_API_KEY")
TMDB_BASE_URL = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
TMDB_TIMEOUT_SECONDS = float(os.getenv("TMDB_TIMEOUT_SECONDS", "10"))

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")

# Fixed-window limits, per client IP
PROXY_RATE_LIMIT = int(os.getenv("PROXY_RATE_LIMIT", "120"))
ANALYZE_RATE_LIMIT = int(os.getenv("ANALYZE_RATE_LIMIT", "12"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Seconds a proxied response stays fresh
SEARCH_CACHE_TTL = 60
DEFAULT_CACHE_TTL = 3600
