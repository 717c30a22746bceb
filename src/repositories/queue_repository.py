"""Queue entry repository for DynamoDB operations."""

import json
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from botocore.exceptions import ClientError

from src.config import settings
from src.logging.config import get_logger
from src.models.queue import QueueEntry, QueueStatus
from src.repositories.base import BaseRepository, is_conditional_check_failure

logger = get_logger(__name__)

STATUS_INDEX = "StatusIndex"


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class QueueRepository(BaseRepository):
    """
    Repository for QueueEntry operations in DynamoDB.

    Entries are keyed by ``id``. The ``StatusIndex`` GSI (``status`` hash,
    ``created_at`` range) returns entries of one status oldest first.
    """

    def __init__(self) -> None:
        """Initialize QueueRepository with the queue table."""
        super().__init__(settings.dynamodb_table_queue)

    def _serialize(self, entry: QueueEntry) -> dict[str, Any]:
        item = entry.model_dump(mode="json", exclude_none=True)
        # Nested floats are not accepted by the DynamoDB resource API
        if entry.final_payload is not None:
            item["final_payload"] = json.dumps(entry.final_payload)
        return item

    def _deserialize(self, item: dict[str, Any]) -> QueueEntry:
        """
        Convert DynamoDB item to QueueEntry model.

        Args:
            item: DynamoDB item dict

        Returns:
            QueueEntry with Decimal and JSON fields converted
        """
        data = dict(item)
        for key in ("retry_count", "ttl"):
            if isinstance(data.get(key), Decimal):
                data[key] = int(data[key])
        if isinstance(data.get("final_payload"), str):
            data["final_payload"] = json.loads(data["final_payload"])
        return QueueEntry(**data)

    async def create(self, entry: QueueEntry) -> QueueEntry:
        """
        Store a new queue entry.

        Args:
            entry: Entry to store

        Returns:
            The stored entry
        """
        await self.put_item(self._serialize(entry))
        return entry

    async def create_many(self, entries: list[QueueEntry]) -> list[QueueEntry]:
        """Store several entries in one batch write."""
        if entries:
            await self.batch_put_items([self._serialize(entry) for entry in entries])
        return entries

    async def get_by_id(self, entry_id: str) -> QueueEntry | None:
        item = await self.get_item({"id": entry_id})
        return self._deserialize(item) if item else None

    async def list_by_status(
        self,
        status: QueueStatus,
        limit: int = 100,
        oldest_first: bool = True,
        created_before: str | None = None,
    ) -> list[QueueEntry]:
        """
        List entries of one status ordered by creation time.

        Args:
            status: Status to list
            limit: Maximum number of entries
            oldest_first: Ascending creation order when True
            created_before: Only entries created before this ISO timestamp

        Returns:
            Up to ``limit`` entries
        """
        condition = "#status = :status"
        values: dict[str, Any] = {":status": status.value}
        if created_before:
            condition += " AND created_at < :before"
            values[":before"] = created_before

        query_params: dict[str, Any] = {
            "IndexName": STATUS_INDEX,
            "KeyConditionExpression": condition,
            "ExpressionAttributeNames": {"#status": "status"},
            "ExpressionAttributeValues": values,
            "ScanIndexForward": oldest_first,
        }

        entries: list[QueueEntry] = []
        while len(entries) < limit:
            query_params["Limit"] = limit - len(entries)
            items, last_key = await self.query_items(**query_params)
            entries.extend(self._deserialize(item) for item in items)
            if not last_key:
                break
            query_params["ExclusiveStartKey"] = last_key
        return entries[:limit]

    async def count_by_status(self, status: QueueStatus) -> int:
        return await self.count_items(
            IndexName=STATUS_INDEX,
            KeyConditionExpression="#status = :status",
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={":status": status.value},
        )

    async def transition(
        self,
        entry_id: str,
        expected: QueueStatus,
        new_status: QueueStatus,
        **fields: Any,
    ) -> QueueEntry | None:
        """
        Atomically move an entry from one status to another.

        Args:
            entry_id: Entry identifier
            expected: Status the entry must currently have
            new_status: Status to set
            **fields: Other attributes to set (retry_count, error_message,
                final_payload, ttl)

        Returns:
            Updated entry, or None when the entry was not in ``expected``
        """
        values: dict[str, Any] = {
            ":expected": expected.value,
            ":new_status": new_status.value,
            ":processed_at": utc_now_iso(),
        }
        names = {"#status": "status"}
        assignments = ["#status = :new_status", "processed_at = :processed_at"]

        for name, value in fields.items():
            if value is None:
                continue
            if name == "final_payload":
                value = json.dumps(value)
            names[f"#{name}"] = name
            values[f":{name}"] = value
            assignments.append(f"#{name} = :{name}")

        try:
            attributes = await self.update_item(
                {"id": entry_id},
                "SET " + ", ".join(assignments),
                values,
                expression_names=names,
                condition_expression="#status = :expected",
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.info(
                    "Queue entry not in expected status, skipping",
                    extra={
                        "context": {
                            "entry_id": entry_id,
                            "expected": expected.value,
                            "new_status": new_status.value,
                        }
                    },
                )
                return None
            raise
        return self._deserialize(attributes)

    async def delete(self, entry_id: str) -> None:
        await self.delete_item({"id": entry_id})
