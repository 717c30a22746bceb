"""Script to create DynamoDB tables for LocalStack or AWS."""

import asyncio
from typing import Any

import aioboto3
from botocore.exceptions import ClientError

from src.repositories.queue_repository import STATUS_INDEX


async def create_queue_table(dynamodb: Any, table_name: str) -> None:
    """
    Create the event queue table with a GSI on status.

    Args:
        dynamodb: DynamoDB resource
        table_name: Name of the queue table
    """
    try:
        table = await dynamodb.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "id", "KeyType": "HASH"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "id", "AttributeType": "S"},
                {"AttributeName": "status", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": STATUS_INDEX,
                    "KeySchema": [
                        {"AttributeName": "status", "KeyType": "HASH"},
                        {"AttributeName": "created_at", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        await table.wait_until_exists()
        print(f"✓ Created table: {table_name}")
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceInUseException":
            print(f"→ Table already exists: {table_name}")
        else:
            raise


async def enable_ttl(client: Any, table_name: str) -> None:
    """Expire terminal entries through the ``ttl`` attribute."""
    try:
        await client.update_time_to_live(
            TableName=table_name,
            TimeToLiveSpecification={"Enabled": True, "AttributeName": "ttl"},
        )
        print(f"✓ Enabled TTL on: {table_name}")
    except ClientError as e:
        if e.response["Error"]["Code"] == "ValidationException":
            print(f"→ TTL already enabled: {table_name}")
        else:
            raise


async def main() -> None:
    """Create all required DynamoDB tables."""
    from src.config import settings

    print("Creating DynamoDB tables...")
    print(f"Region: {settings.aws_region}")
    print(f"Endpoint: {settings.dynamodb_endpoint_url or 'AWS'}")
    print()

    session = aioboto3.Session()
    connection = {
        "region_name": settings.aws_region,
        "endpoint_url": settings.dynamodb_endpoint_url,
        "aws_access_key_id": settings.aws_access_key_id,
        "aws_secret_access_key": settings.aws_secret_access_key,
    }
    async with session.resource("dynamodb", **connection) as dynamodb:
        await create_queue_table(dynamodb, settings.dynamodb_table_queue)
    async with session.client("dynamodb", **connection) as client:
        await enable_ttl(client, settings.dynamodb_table_queue)

    print()
    print("✓ All tables created successfully!")


if __name__ == "__main__":
    asyncio.run(main())
