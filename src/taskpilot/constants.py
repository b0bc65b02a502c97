"""Constants for TaskPilot instance arbitration."""

# Well-known port the main instance occupies
DEFAULT_PORT = 8989
DEFAULT_HOST = "127.0.0.1"

# Peer protocol paths
VERSION_PATH = "/__version"
SHUTDOWN_PATH = "/__shutdown"
HEALTH_PATH = "/health"

# Network timeouts (seconds)
PEER_TIMEOUT = 2.0
PORT_WAIT_TIMEOUT = 10.0
PORT_POLL_INTERVAL = 0.3

# Takeover attempts before giving up
MAX_TAKEOVER_ATTEMPTS = 3

LOCK_FILE_TEMPLATE = "taskpilot-{port}.lock"

# Largest request body the proxy will buffer before forwarding
PROXY_MAX_BODY = 64 * 1024 * 1024

# Delay between acknowledging /__shutdown and closing the listener (seconds)
SHUTDOWN_GRACE = 0.05
