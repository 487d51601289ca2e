import os
import warnings

from dotenv import load_dotenv

# Read .env if present, but don't clobber real env
load_dotenv(override=False)


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return default


# ── OpenAI ──
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "").strip()
if not OPENAI_API_KEY:
    warnings.warn("OPENAI_API_KEY not set — API calls will fail.", RuntimeWarning)

OPENAI_MODEL       = os.environ.get("OPENAI_MODEL", "gpt-4o").strip() or "gpt-4o"
MAX_OUTPUT_TOKENS  = env_int("MAX_OUTPUT_TOKENS", 8000)
GENERATION_TIMEOUT = env_float("GENERATION_TIMEOUT", 60.0)

# ── Rate limiting (per client address) ──
RATE_LIMIT          = env_int("RATE_LIMIT", 20)
RATE_LIMIT_WINDOW   = env_float("RATE_LIMIT_WINDOW", 60 * 60)
RATE_LIMIT_MAX_KEYS = env_int("RATE_LIMIT_MAX_KEYS", 10_000)

# ── Server ──
PORT  = env_int("PORT", 3000)
DEBUG = os.getenv("FLASK_DEBUG", "0").lower() in ("1", "true", "yes", "on")
