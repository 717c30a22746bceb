"""Pytest fixtures for integration tests with LocalStack DynamoDB."""

import os
from collections.abc import AsyncGenerator
from unittest.mock import patch

import aioboto3
import httpx
import pytest

from infrastructure.dynamodb_tables import create_queue_table
from src.config import settings
from src.repositories.queue_repository import QueueRepository

ENDPOINT_URL = os.getenv("DYNAMODB_ENDPOINT_URL", "http://localhost:4566")
TEST_TABLE = "analytics-event-queue-test"


def localstack_available() -> bool:
    try:
        httpx.get(ENDPOINT_URL, timeout=1.0)
    except httpx.HTTPError:
        return False
    return True


@pytest.fixture
async def queue_table() -> AsyncGenerator[str, None]:
    """
    Create a fresh queue table for each test and delete it afterwards.

    Skips when LocalStack is not running on DYNAMODB_ENDPOINT_URL.
    """
    if not localstack_available():
        pytest.skip(f"LocalStack not reachable at {ENDPOINT_URL}")

    connection = {
        "region_name": settings.aws_region,
        "endpoint_url": ENDPOINT_URL,
        "aws_access_key_id": "test",
        "aws_secret_access_key": "test",
    }
    with (
        patch.object(settings, "dynamodb_endpoint_url", ENDPOINT_URL),
        patch.object(settings, "aws_access_key_id", "test"),
        patch.object(settings, "aws_secret_access_key", "test"),
        patch.object(settings, "aws_session_token", None),
        patch.object(settings, "dynamodb_table_queue", TEST_TABLE),
    ):
        async with aioboto3.Session().resource("dynamodb", **connection) as dynamodb:
            await create_queue_table(dynamodb, TEST_TABLE)
            yield TEST_TABLE
            table = await dynamodb.Table(TEST_TABLE)
            await table.delete()


@pytest.fixture
def queue_repository(queue_table) -> QueueRepository:
    """Repository bound to the test table."""
    return QueueRepository()
