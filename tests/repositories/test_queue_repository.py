"""Unit tests for QueueRepository."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from src.models.queue import QueueEntry, QueueStatus
from src.repositories.base import get_dynamodb_config
from src.repositories.queue_repository import STATUS_INDEX, QueueRepository, utc_now_iso


def make_entry(**overrides) -> QueueEntry:
    data = {
        "id": "entry-1",
        "batch_id": "batch-1",
        "payload": '{"event": {}}',
        "original_headers": {"user-agent": "Mozilla/5.0"},
        "client_ip": "203.0.113.9",
        "created_at": "2025-11-11T12:00:00Z",
    }
    data.update(overrides)
    return QueueEntry(**data)


@pytest.fixture
def table() -> AsyncMock:
    """Mock DynamoDB Table."""
    table = AsyncMock()
    batch = AsyncMock()
    writer = MagicMock()
    writer.__aenter__.return_value = batch
    table.batch_writer = MagicMock(return_value=writer)
    table.batch = batch
    return table


@pytest.fixture
def repository(table) -> QueueRepository:
    """QueueRepository whose aioboto3 session yields the mock table."""
    dynamodb = MagicMock()
    dynamodb.Table = AsyncMock(return_value=table)
    resource = MagicMock()
    resource.__aenter__.return_value = dynamodb

    repository = QueueRepository()
    repository.session = MagicMock()
    repository.session.resource.return_value = resource
    return repository


def conditional_failure() -> ClientError:
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "failed"}},
        "UpdateItem",
    )


@pytest.mark.asyncio
async def test_create_stores_serialized_entry(repository, table) -> None:
    """Test that create writes the entry without empty fields."""
    entry = make_entry(final_payload={"value": 1.5})

    await repository.create(entry)

    item = table.put_item.call_args[1]["Item"]
    assert item["id"] == "entry-1"
    assert item["status"] == "pending"
    assert item["final_payload"] == json.dumps({"value": 1.5})
    assert "error_message" not in item


@pytest.mark.asyncio
async def test_create_many_uses_batch_writer(repository, table) -> None:
    """Test that several entries are written in one batch."""
    await repository.create_many([make_entry(id="a"), make_entry(id="b")])

    assert table.batch.put_item.await_count == 2


@pytest.mark.asyncio
async def test_create_many_empty_skips_write(repository, table) -> None:
    """Test that an empty list does not touch DynamoDB."""
    await repository.create_many([])

    table.batch_writer.assert_not_called()


@pytest.mark.asyncio
async def test_get_by_id_converts_decimals(repository, table) -> None:
    """Test that DynamoDB Decimals and JSON strings are converted back."""
    item = make_entry().model_dump(mode="json", exclude_none=True)
    item.update(retry_count=Decimal(2), ttl=Decimal(1731322800), final_payload='{"a": 1}')
    table.get_item.return_value = {"Item": item}

    entry = await repository.get_by_id("entry-1")

    assert entry.retry_count == 2
    assert entry.ttl == 1731322800
    assert entry.final_payload == {"a": 1}


@pytest.mark.asyncio
async def test_get_by_id_missing(repository, table) -> None:
    """Test that a missing entry returns None."""
    table.get_item.return_value = {}

    assert await repository.get_by_id("nope") is None


@pytest.mark.asyncio
async def test_list_by_status_queries_index(repository, table) -> None:
    """Test the status index query and pagination."""
    first = make_entry(id="a").model_dump(mode="json", exclude_none=True)
    second = make_entry(id="b").model_dump(mode="json", exclude_none=True)
    table.query.side_effect = [
        {"Items": [first], "LastEvaluatedKey": {"id": "a"}},
        {"Items": [second]},
    ]

    entries = await repository.list_by_status(
        QueueStatus.PENDING, limit=5, created_before="2025-11-12T00:00:00Z"
    )

    assert [entry.id for entry in entries] == ["a", "b"]
    first_call = table.query.call_args_list[0][1]
    assert first_call["IndexName"] == STATUS_INDEX
    assert first_call["ExpressionAttributeValues"][":status"] == "pending"
    assert first_call["ExpressionAttributeValues"][":before"] == "2025-11-12T00:00:00Z"
    assert first_call["ScanIndexForward"] is True
    assert table.query.call_args_list[1][1]["ExclusiveStartKey"] == {"id": "a"}
    assert table.query.call_args_list[1][1]["Limit"] == 4


@pytest.mark.asyncio
async def test_count_by_status_follows_pages(repository, table) -> None:
    """Test that counts are summed across pages."""
    table.query.side_effect = [
        {"Count": 3, "LastEvaluatedKey": {"id": "x"}},
        {"Count": 2},
    ]

    assert await repository.count_by_status(QueueStatus.COMPLETED) == 5
    assert table.query.call_args_list[0][1]["Select"] == "COUNT"


@pytest.mark.asyncio
async def test_transition_is_conditional(repository, table) -> None:
    """Test that transitions are guarded by the expected status."""
    updated = make_entry(status=QueueStatus.PROCESSING).model_dump(mode="json", exclude_none=True)
    table.update_item.return_value = {"Attributes": updated}

    entry = await repository.transition(
        "entry-1", QueueStatus.PENDING, QueueStatus.PROCESSING, retry_count=None
    )

    params = table.update_item.call_args[1]
    assert params["ConditionExpression"] == "#status = :expected"
    assert params["ExpressionAttributeValues"][":expected"] == "pending"
    assert params["ExpressionAttributeValues"][":new_status"] == "processing"
    assert "#retry_count" not in params["ExpressionAttributeNames"]
    assert entry.status is QueueStatus.PROCESSING


@pytest.mark.asyncio
async def test_transition_sets_fields(repository, table) -> None:
    """Test that extra fields are written with attribute name placeholders."""
    table.update_item.return_value = {
        "Attributes": make_entry(status=QueueStatus.COMPLETED).model_dump(mode="json", exclude_none=True)
    }

    await repository.transition(
        "entry-1",
        QueueStatus.PROCESSING,
        QueueStatus.COMPLETED,
        final_payload={"client_id": "c"},
        ttl=123,
    )

    params = table.update_item.call_args[1]
    assert "#ttl = :ttl" in params["UpdateExpression"]
    assert params["ExpressionAttributeValues"][":final_payload"] == '{"client_id": "c"}'
    assert params["ExpressionAttributeNames"]["#ttl"] == "ttl"


@pytest.mark.asyncio
async def test_transition_lost_race_returns_none(repository, table) -> None:
    """Test that a failed condition means another worker owns the entry."""
    table.update_item.side_effect = conditional_failure()

    result = await repository.transition("entry-1", QueueStatus.PENDING, QueueStatus.PROCESSING)

    assert result is None


@pytest.mark.asyncio
async def test_transition_other_errors_propagate(repository, table) -> None:
    """Test that unrelated DynamoDB errors are raised."""
    table.update_item.side_effect = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
        "UpdateItem",
    )

    with pytest.raises(ClientError):
        await repository.transition("entry-1", QueueStatus.PENDING, QueueStatus.PROCESSING)


@pytest.mark.asyncio
async def test_delete(repository, table) -> None:
    """Test deletion by id."""
    await repository.delete("entry-1")

    table.delete_item.assert_awaited_once_with(Key={"id": "entry-1"})


def test_dynamodb_config_for_localstack() -> None:
    """Test that an endpoint and explicit credentials are passed through."""
    with (
        patch("src.repositories.base.settings.dynamodb_endpoint_url", "http://localhost:4566"),
        patch("src.repositories.base.settings.aws_access_key_id", "test"),
        patch("src.repositories.base.settings.aws_secret_access_key", "secret"),
        patch("src.repositories.base.settings.aws_session_token", None),
    ):
        config = get_dynamodb_config()

    assert config["endpoint_url"] == "http://localhost:4566"
    assert config["aws_access_key_id"] == "test"
    assert "aws_session_token" not in config


def test_utc_now_iso_uses_z_suffix() -> None:
    """Test the timestamp format."""
    assert utc_now_iso().endswith("Z")
