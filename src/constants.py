"""Constants and tuning values for the DomainTags bridge."""

__version__ = "1.2"

# event bridge
BUF_SIZE = 65536
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8882

# pending decisions
PENDING_TTL_MS = 30_000
PENDING_TTL_FLOOR_MS = 5_000

# message scheduling
TICK_MS = 50  # one host scheduler tick
MESSAGE_DELAY_TICKS = 20

# tagging
DEFAULT_TAG_NAME = "irl"
PLAYER_PLACEHOLDER = "%player%"
RELOAD_PERMISSION = "domaintags.reload"
