# mcpgate/server/runtime/limits.py
"""Runtime defaults and limits."""

# Largest JSON-RPC message body accepted on the message endpoint (bytes).
MAXIMUM_MESSAGE_SIZE = 4 * 1024 * 1024  # 4 MiB

# Upper bound for a single transport close during shutdown (seconds).
# None disables the bound.
DEFAULT_CLOSE_TIMEOUT_SECONDS = 10.0

# Lifetime of tokens minted by the gateway (seconds).
DEFAULT_TOKEN_TTL_SECONDS = 60 * 60

