"""Centralized configuration for darkpatch.

Re-exports everything from darkpatch.infrastructure.settings so existing imports
continue to work, then adds typed constants for database, scanning cadence and
generation timeouts. Environment variable overrides use safe defaults so the
engine starts without extra env configuration.

Classification and synthesis thresholds live in config/darkpatch_policy.yaml
(see darkpatch.runtime.policy), not here.
"""

from __future__ import annotations

import os

from darkpatch.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("DARKPATCH_DB_POOL_SIZE", "2"))
DB_POOL_TIMEOUT: float = float(os.getenv("DARKPATCH_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("DARKPATCH_DB_CONNECT_TIMEOUT", "30.0"))
DB_RETRY_MAX: int = int(os.getenv("DARKPATCH_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("DARKPATCH_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("DARKPATCH_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("DARKPATCH_DB_RETRY_JITTER", "0.1"))

# --- Change monitor ---
MONITOR_DEBOUNCE_SECONDS: float = float(os.getenv("DARKPATCH_DEBOUNCE_SECONDS", "0.1"))
MONITOR_TICK_SECONDS: float = float(os.getenv("DARKPATCH_TICK_SECONDS", "2.0"))

# --- Generation ---
GENERATION_ELEMENT_TIMEOUT: float = float(os.getenv("DARKPATCH_ELEMENT_TIMEOUT", "20"))
GENERATION_CONVERSATION_TIMEOUT: float = float(os.getenv("DARKPATCH_CONVERSATION_TIMEOUT", "15"))

# --- Prompt sampling ---
PROMPT_TEXT_SAMPLE_CHARS: int = 200
PROMPT_DESCRIPTION_MAX_CHARS: int = 1000
