"""
Sample Python client for the Server-Side Analytics Collector.

Demonstrates common workflows:
- Sending a single page view
- Sending a batch with a conversion
- Sending an encrypted batch
- Error handling and retry logic

Requirements:
    pip install httpx python-dotenv
"""

import asyncio
import os
import sys
import time
import uuid
from typing import Any

import httpx
from dotenv import load_dotenv

from src.crypto.envelope import create_encrypted_request


class CollectorClient:
    """
    Async client for the collector's intake endpoint.

    Handles encryption, rate limiting and retries.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        origin: str | None = None,
        encryption_key: str | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Base URL of the collector
            origin: Origin header to send (must be allow-listed on the server)
            encryption_key: 64 hex character key; bodies are encrypted when set
        """
        self.encryption_key = encryption_key
        headers = {
            "Content-Type": "application/json",
            "User-Agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
            ),
            "Accept-Language": "en-US,en;q=0.9",
        }
        if origin:
            headers["Origin"] = origin
        self.client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=30.0)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "CollectorClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def collect(self, body: dict[str, Any], max_retries: int = 3) -> dict[str, Any]:
        """
        Send events with automatic retry on 429 and 5xx responses.

        Args:
            body: Single event, ``{"event": ...}`` or ``{"events": [...]}``
            max_retries: Maximum retry attempts

        Returns:
            Response JSON
        """
        headers = {}
        if self.encryption_key:
            body = create_encrypted_request(body, self.encryption_key)
            headers["X-Encrypted"] = "true"

        for attempt in range(max_retries + 1):
            try:
                response = await self.client.post("/collect", json=body, headers=headers)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 429 and attempt < max_retries:
                    retry_after = int(e.response.headers.get("Retry-After", "60"))
                    print(f"Rate limited, waiting {retry_after}s...")
                    await asyncio.sleep(retry_after)
                elif e.response.status_code >= 500 and attempt < max_retries:
                    wait = 2**attempt
                    print(f"Server error {e.response.status_code}, retrying in {wait}s...")
                    await asyncio.sleep(wait)
                else:
                    raise
        raise RuntimeError("unreachable")


def page_view(session_id: str, client_id: str, url: str, referrer: str = "") -> dict[str, Any]:
    return {
        "name": "page_view",
        "params": {
            "client_id": client_id,
            "session_id": session_id,
            "page_location": url,
            "page_referrer": referrer,
            "page_title": "Example page",
        },
        "timestamp": int(time.time() * 1000),
    }


async def example_single_event(client: CollectorClient, session_id: str, client_id: str) -> None:
    """Example: Send one page view arriving from a search engine."""
    print("\n=== Example 1: Single Event ===")
    result = await client.collect(
        page_view(session_id, client_id, "https://example.com/", "https://www.google.com/")
    )
    print(f"Response: {result}")


async def example_batch(client: CollectorClient, session_id: str, client_id: str) -> None:
    """Example: Batch with a follow-up page view and a purchase in the same session."""
    print("\n=== Example 2: Batch With Conversion ===")
    purchase = {
        "name": "purchase",
        "params": {
            "client_id": client_id,
            "session_id": session_id,
            "transaction_id": f"T-{uuid.uuid4().hex[:8]}",
            "value": 49.9,
            "currency": "EUR",
        },
        "timestamp": int(time.time() * 1000),
    }
    result = await client.collect(
        {
            "events": [
                page_view(session_id, client_id, "https://example.com/checkout"),
                purchase,
            ],
            "consent": {"ad_user_data": "GRANTED", "ad_personalization": "DENIED"},
        }
    )
    print(f"Response: {result}")


async def example_error_handling(client: CollectorClient) -> None:
    """Example: Error handling for a malformed request."""
    print("\n=== Example 3: Error Handling ===")
    try:
        await client.collect({"events": []})
    except httpx.HTTPStatusError as e:
        print(f"Malformed request (expected): {e.response.status_code} {e.response.json()}")


async def main() -> None:
    """
    Main example workflow.

    Reads COLLECTOR_URL, COLLECTOR_ORIGIN and ENCRYPTION_KEY from the
    environment (or a .env file).
    """
    load_dotenv()
    base_url = os.getenv("COLLECTOR_URL", "http://localhost:8000")
    origin = os.getenv("COLLECTOR_ORIGIN")
    encryption_key = os.getenv("ENCRYPTION_KEY") or None

    if encryption_key and len(encryption_key) != 64:
        print("Error: ENCRYPTION_KEY must be 64 hex characters", file=sys.stderr)
        sys.exit(1)

    session_id = str(int(time.time()))
    client_id = f"{uuid.uuid4().int % 10**10}.{int(time.time())}"

    async with CollectorClient(base_url, origin=origin, encryption_key=encryption_key) as client:
        await example_single_event(client, session_id, client_id)
        await example_batch(client, session_id, client_id)
        await example_error_handling(client)

    print("\n=== All examples completed ===")


if __name__ == "__main__":
    asyncio.run(main())
