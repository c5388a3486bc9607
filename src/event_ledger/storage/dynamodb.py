"""
DynamoDB storage backend

Records live in one table keyed by (stream_id HASH, version RANGE) with a
global secondary index keyed by (marker HASH, timestamp RANGE). Writes go
through TransactWriteItems with attribute_not_exists(version) on every Put,
so the batch lands completely or not at all.

The boto3 client is built and owned by the caller; this adapter only uses it.
"""

from collections.abc import Iterator, Sequence
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from event_ledger.kernel.config import LedgerSettings
from event_ledger.kernel.errors import ConcurrencyConflict, StorageFailure
from event_ledger.kernel.logging import get_logger
from event_ledger.storage.records import DEFAULT_MARKER, EventRecord

logger = get_logger(__name__)

DEFAULT_INDEX_NAME = "allEvents"

# TransactWriteItems limit
MAX_TRANSACTION_ITEMS = 100

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class DynamoDbEventBackend:
    """Event backend on top of an injected boto3 DynamoDB client"""

    def __init__(
        self,
        client: Any,
        table_name: str,
        index_name: str = DEFAULT_INDEX_NAME,
        page_size: int | None = None,
    ) -> None:
        """
        Args:
            client: boto3 DynamoDB client (boto3.client("dynamodb"))
            table_name: Table holding event records
            index_name: Global secondary index on (marker, timestamp)
            page_size: Items per Query call; None lets DynamoDB decide (1 MB pages)
        """
        self.client = client
        self.table_name = table_name
        self.index_name = index_name
        self.page_size = page_size

    @classmethod
    def from_settings(cls, client: Any, settings: LedgerSettings) -> "DynamoDbEventBackend":
        """Backend on the configured table and index, paging by settings.page_size"""
        return cls(
            client,
            table_name=settings.table_name,
            index_name=settings.index_name,
            page_size=settings.page_size,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def transact_put(self, records: Sequence[EventRecord]) -> None:
        """
        Write all records in one transaction

        Raises:
            ConcurrencyConflict: If any Put failed its attribute_not_exists condition
            StorageFailure: For every other client or transport error
        """
        if not records:
            return
        if len(records) > MAX_TRANSACTION_ITEMS:
            raise StorageFailure(
                "transact_put",
                f"DynamoDB transactions hold at most {MAX_TRANSACTION_ITEMS} items, "
                f"got {len(records)}",
            )

        transact_items = [
            {
                "Put": {
                    "TableName": self.table_name,
                    "Item": self._marshal(record),
                    "ConditionExpression": "attribute_not_exists(#version)",
                    "ExpressionAttributeNames": {"#version": "version"},
                }
            }
            for record in records
        ]

        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException":
                conflicted = self._conflicted_keys(e, records)
                if conflicted is not None:
                    raise ConcurrencyConflict(conflicted) from e
            raise StorageFailure(
                "transact_put", f"DynamoDB rejected the transaction: {e}"
            ) from e
        except BotoCoreError as e:
            raise StorageFailure("transact_put", f"DynamoDB request failed: {e}") from e

    def _conflicted_keys(
        self, error: ClientError, records: Sequence[EventRecord]
    ) -> tuple[tuple[str, int], ...] | None:
        """
        Keys whose condition failed, () if the condition failed on unknown
        items, or None if the cancellation had another cause
        """
        reasons = error.response.get("CancellationReasons") or []
        keys = tuple(
            records[index].key
            for index, reason in enumerate(reasons)
            if index < len(records) and reason.get("Code") == "ConditionalCheckFailed"
        )
        if keys:
            return keys
        if not reasons and "ConditionalCheckFailed" in str(error):
            return ()
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_stream(
        self, stream_id: str, after_version: int | None = None
    ) -> Iterator[EventRecord]:
        condition = "#stream = :stream"
        names = {"#stream": "stream_id"}
        values: dict[str, Any] = {":stream": {"S": stream_id}}
        if after_version is not None:
            condition += " AND #version > :version"
            names["#version"] = "version"
            values[":version"] = {"N": str(after_version)}

        return self._query(
            "query_stream",
            TableName=self.table_name,
            KeyConditionExpression=condition,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ScanIndexForward=True,
        )

    def query_time_range(
        self, marker: str, start: int, end: int
    ) -> Iterator[EventRecord]:
        return self._query(
            "query_time_range",
            TableName=self.table_name,
            IndexName=self.index_name,
            KeyConditionExpression="#marker = :marker AND #timestamp BETWEEN :start AND :end",
            ExpressionAttributeNames={"#marker": "marker", "#timestamp": "timestamp"},
            ExpressionAttributeValues={
                ":marker": {"S": marker},
                ":start": {"N": str(start)},
                ":end": {"N": str(end)},
            },
            ScanIndexForward=True,
        )

    def _query(self, operation: str, **params: Any) -> Iterator[EventRecord]:
        if self.page_size is not None:
            params["PaginationConfig"] = {"PageSize": self.page_size}
        try:
            for page in self.client.get_paginator("query").paginate(**params):
                for item in page.get("Items", []):
                    yield self._unmarshal(operation, item)
        except (ClientError, BotoCoreError) as e:
            raise StorageFailure(operation, f"DynamoDB query failed: {e}") from e

    # ------------------------------------------------------------------
    # Item conversion
    # ------------------------------------------------------------------

    def _marshal(self, record: EventRecord) -> dict[str, Any]:
        return {name: _serializer.serialize(value) for name, value in record.model_dump().items()}

    def _unmarshal(self, operation: str, item: dict[str, Any]) -> EventRecord:
        try:
            plain = {name: _deserializer.deserialize(value) for name, value in item.items()}
            return EventRecord(
                stream_id=plain["stream_id"],
                version=int(plain["version"]),
                marker=plain.get("marker", DEFAULT_MARKER),
                timestamp=int(plain["timestamp"]),
                payload=plain["payload"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StorageFailure(operation, f"Malformed event item: {e}") from e


def create_event_table(
    client: Any,
    table_name: str,
    index_name: str = DEFAULT_INDEX_NAME,
    wait: bool = True,
) -> bool:
    """
    Provision the event table and its time index (pay-per-request billing)

    Returns:
        True if the table was created, False if it already existed

    Raises:
        StorageFailure: If DynamoDB refuses the request for another reason
    """
    try:
        client.create_table(
            TableName=table_name,
            AttributeDefinitions=[
                {"AttributeName": "stream_id", "AttributeType": "S"},
                {"AttributeName": "version", "AttributeType": "N"},
                {"AttributeName": "marker", "AttributeType": "S"},
                {"AttributeName": "timestamp", "AttributeType": "N"},
            ],
            KeySchema=[
                {"AttributeName": "stream_id", "KeyType": "HASH"},
                {"AttributeName": "version", "KeyType": "RANGE"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": index_name,
                    "KeySchema": [
                        {"AttributeName": "marker", "KeyType": "HASH"},
                        {"AttributeName": "timestamp", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
    except ClientError as e:
        if _error_code(e) == "ResourceInUseException":
            logger.info("Event table already exists", table_name=table_name)
            return False
        raise StorageFailure("create_table", f"Unable to create {table_name}: {e}") from e
    except BotoCoreError as e:
        raise StorageFailure("create_table", f"Unable to create {table_name}: {e}") from e

    if wait:
        client.get_waiter("table_exists").wait(TableName=table_name)
    logger.info("Event table created", table_name=table_name, index_name=index_name)
    return True
