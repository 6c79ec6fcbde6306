from contextvars import ContextVar
from typing import Optional

# Caller's bearer token, forwarded to the user directory on outbound calls.
bearer_token_var: ContextVar[Optional[str]] = ContextVar("bearer_token", default=None)
