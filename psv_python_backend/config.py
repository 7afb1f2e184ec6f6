"""Shared environment configuration constants for the PSV backend."""
import os

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+asyncpg://localhost:5432/psv")

# --- API Keys ---
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")

# --- Scoring oracle (online mode) ---
PSV_ONLINE_MODEL = os.getenv("PSV_ONLINE_MODEL", "claude-3-5-sonnet-20241022")

# --- Consensus analysis ---
PSV_SIMILARITY_THRESHOLD = float(os.getenv("PSV_SIMILARITY_THRESHOLD", "0.7"))

# --- Tracing ---
TRACE_API_CALLS = os.getenv("TRACE_API_CALLS", "true").strip().lower() in {"1", "true", "yes", "on"}
API_LOG_PREVIEW_CHARS = int(os.getenv("API_LOG_PREVIEW_CHARS", "280"))
