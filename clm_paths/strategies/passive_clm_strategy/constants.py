# ─────────────────────────────────────────────────────────────────────────────
# PROFIT VESTING
# ─────────────────────────────────────────────────────────────────────────────

# Harvested fees unlock linearly over this window (seconds)
DURATION = 21600

# ─────────────────────────────────────────────────────────────────────────────
# CALM GUARD
# ─────────────────────────────────────────────────────────────────────────────

MIN_TWAP_INTERVAL = 60  # seconds
MAX_TICK_DEVIATION = 5000  # upper bound accepted by set_deviation

DEFAULT_TWAP_INTERVAL = 120
DEFAULT_MAX_TICK_DEVIATION = 200

# ─────────────────────────────────────────────────────────────────────────────
# RANGES
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_POSITION_WIDTH = 200  # ticks on each side of the floored tick

MAIN = "main"
ALT = "alt"
SLOT_NAMES = (MAIN, ALT)

# ─────────────────────────────────────────────────────────────────────────────
# FEES
# ─────────────────────────────────────────────────────────────────────────────

BPS_DENOMINATOR = 10_000
MAX_PROTOCOL_FEE_BPS = 1_000

# ─────────────────────────────────────────────────────────────────────────────
# HISTORY
# ─────────────────────────────────────────────────────────────────────────────

# Operation records kept in memory; older ones drop off the front
HISTORY_LIMIT = 1_000
