"""Per-request context captured at the intake boundary."""

from pydantic import BaseModel, ConfigDict, Field

# Headers kept with queued events and forwarded upstream
ESSENTIAL_HEADERS = (
    "user-agent",
    "accept-language",
    "accept",
    "accept-encoding",
    "referer",
    "x-forwarded-for",
    "x-real-ip",
)


class RequestContext(BaseModel):
    """
    Request facts needed after the HTTP layer is gone.

    Attributes:
        client_ip: Resolved public client IP (None if unknown)
        headers: Lower-cased request headers
        correlation_id: Request correlation ID for log tracing
    """

    model_config = ConfigDict(frozen=True)

    client_ip: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    correlation_id: str | None = None

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    @property
    def user_agent(self) -> str:
        return self.header("user-agent")

    def essential_headers(self) -> dict[str, str]:
        """Return the subset of headers worth keeping with a queued event."""
        return {
            name: self.headers[name]
            for name in ESSENTIAL_HEADERS
            if self.headers.get(name)
        }
