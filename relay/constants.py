"""
relay/constants.py

Fixed protocol values and lookup tables used by the relay services.
Coded upstream enums are translated only through the tables in this module.
Tunable numbers (mmol/L factor, version header, step limits) live in config.py instead.
"""

# ── Upstream API ─────────────────────────────────────────────
LINKUP_HOST_TEMPLATE: str = "https://api{suffix}.libreview.io"
LOGIN_PATH: str = "/llu/auth/login"
TERMS_CONTINUE_PATH: str = "/auth/continue/{terms_type}"
CONNECTIONS_PATH: str = "/llu/connections"

# Regions the upstream may redirect a login to
KNOWN_REGIONS: tuple[str, ...] = (
    "us", "eu", "eu2", "de", "fr", "jp", "ap", "au", "ae", "ca", "la",
)
MAX_LOGIN_REDIRECTS: int = len(KNOWN_REGIONS)

# Headers sent on every upstream call (product/version come from settings)
UPSTREAM_FIXED_HEADERS: dict[str, str] = {
    "accept-encoding": "gzip",
    "cache-control": "no-cache",
    "connection": "Keep-Alive",
    "content-type": "application/json",
}
ACCOUNT_ID_HEADER: str = "account-id"

# ── External record store ────────────────────────────────────
RECORD_STORE_PATH: str = "/api/records"
RECORD_STORE_SECRET_HEADER: str = "X-Secret"
STORE_TIMESTAMP_KEY: str = "TriggerTimestamp"
STORE_REPEAT_COUNT_KEY: str = "repeatCount"

# ── Measurement lookups ──────────────────────────────────────
MEASUREMENT_COLOR: dict[int, str] = {
    1: "green",
    2: "yellow",
    3: "orange",
    4: "red",
}

TREND_ARROW_ICON: dict[int, str] = {
    1: "\u2193",  # ↓
    2: "\u2198",  # ↘
    3: "\u2192",  # →
    4: "\u2197",  # ↗
    5: "\u2191",  # ↑
}

TREND_ARROW_DIRECTION: dict[int, str] = {
    1: "south",
    2: "southeast",
    3: "east",
    4: "northeast",
    5: "north",
}

GLUCOSE_UNITS_MG_DL: int = 1
GLUCOSE_UNITS_LABEL_MG_DL: str = "mg/dl"
GLUCOSE_UNITS_LABEL_MMOL_L: str = "mmol/l"

# Upstream wall-clock format, e.g. "5/21/2022 1:38:50 PM"
UPSTREAM_TIMESTAMP_FORMAT: str = "%m/%d/%Y %I:%M:%S %p"
