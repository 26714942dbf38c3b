"""Centralized constants for levelsync.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Levels ----------
DEFAULT_TOGGLE_COUNT = 6
LEVEL_LABELS = ["none", "reasonable", "too much", "unreasonable"]
DEFAULT_LEVEL_COUNT = len(LEVEL_LABELS)

# ---------- Store keys ----------
STATES_KEY = "date_states"
QUEUE_KEY = "sync_queue"
TABLE_FORMAT_VERSION = 1

# ---------- Sync ----------
FLUSH_INTERVAL = 30.0  # seconds
SIMULATED_DELAY = 1.0  # seconds
REQUEST_TIMEOUT = 10.0
REACHABILITY_TIMEOUT = 2.0

# ---------- Change records ----------
CHANGE_ID_PREFIX = "chg_"
