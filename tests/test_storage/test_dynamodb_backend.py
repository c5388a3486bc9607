"""
Tests for the DynamoDB backend

The backend only sees an injected client, so an in-memory stand-in that
speaks the low-level client API (and raises real botocore errors) is enough
to exercise marshalling, condition handling and pagination.
"""

from typing import Any

import pytest
from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import ClientError, EndpointConnectionError

from event_ledger.kernel.config import LedgerSettings
from event_ledger.kernel.errors import ConcurrencyConflict, StorageFailure
from event_ledger.kernel.repository import MessageRepository
from event_ledger.kernel.serializer import JsonMessageSerializer
from event_ledger.storage.dynamodb import (
    MAX_TRANSACTION_ITEMS,
    DynamoDbEventBackend,
    create_event_table,
)
from event_ledger.storage.records import EventRecord
from tests.helpers import make_timeline

_deserializer = TypeDeserializer()


def client_error(code: str, operation: str, **extra: Any) -> ClientError:
    response: dict[str, Any] = {"Error": {"Code": code, "Message": f"{code} raised"}}
    response.update(extra)
    return ClientError(response, operation)


class FakeQueryPaginator:
    def __init__(self, client: "FakeDynamoDbClient") -> None:
        self.client = client

    def paginate(self, **params: Any):  # type: ignore[no-untyped-def]
        self.client.query_calls.append(params)
        if self.client.query_error is not None:
            raise self.client.query_error

        values = params["ExpressionAttributeValues"]
        items = [
            (key, item)
            for key, item in sorted(self.client.items.items())
            if self._matches(params, values, item)
        ]
        if "IndexName" in params:
            items.sort(key=lambda entry: int(entry[1]["timestamp"]["N"]))
        matched = [item for _, item in items]

        page_size = params.get("PaginationConfig", {}).get("PageSize") or len(matched) or 1
        for offset in range(0, max(len(matched), 1), page_size):
            yield {"Items": matched[offset:offset + page_size]}

    @staticmethod
    def _matches(params: dict[str, Any], values: dict[str, Any], item: dict[str, Any]) -> bool:
        if "IndexName" in params:
            timestamp = int(item["timestamp"]["N"])
            return (
                item["marker"] == values[":marker"]
                and int(values[":start"]["N"]) <= timestamp <= int(values[":end"]["N"])
            )
        if item["stream_id"] != values[":stream"]:
            return False
        if ":version" in values:
            return int(item["version"]["N"]) > int(values[":version"]["N"])
        return True


class FakeWaiter:
    def __init__(self) -> None:
        self.waited_for: list[str] = []

    def wait(self, TableName: str) -> None:  # noqa: N803
        self.waited_for.append(TableName)


class FakeDynamoDbClient:
    """Just enough of the low-level DynamoDB client for the event backend"""

    def __init__(self) -> None:
        self.items: dict[tuple[str, int], dict[str, Any]] = {}
        self.tables: dict[str, dict[str, Any]] = {}
        self.transactions: list[list[dict[str, Any]]] = []
        self.query_calls: list[dict[str, Any]] = []
        self.write_error: Exception | None = None
        self.query_error: Exception | None = None
        self.waiter = FakeWaiter()

    def transact_write_items(self, TransactItems: list[dict[str, Any]]) -> dict[str, Any]:  # noqa: N803
        self.transactions.append(TransactItems)
        if self.write_error is not None:
            raise self.write_error

        reasons = []
        for entry in TransactItems:
            put = entry["Put"]
            assert put["ConditionExpression"] == "attribute_not_exists(#version)"
            if self._key(put["Item"]) in self.items:
                reasons.append({"Code": "ConditionalCheckFailed", "Message": "The conditional request failed"})
            else:
                reasons.append({"Code": "None"})

        if any(reason["Code"] != "None" for reason in reasons):
            raise client_error(
                "TransactionCanceledException",
                "TransactWriteItems",
                CancellationReasons=reasons,
            )
        for entry in TransactItems:
            item = entry["Put"]["Item"]
            self.items[self._key(item)] = item
        return {}

    def get_paginator(self, operation_name: str) -> FakeQueryPaginator:
        assert operation_name == "query"
        return FakeQueryPaginator(self)

    def create_table(self, **params: Any) -> dict[str, Any]:
        name = params["TableName"]
        if name in self.tables:
            raise client_error("ResourceInUseException", "CreateTable")
        self.tables[name] = params
        return {"TableDescription": {"TableName": name, "TableStatus": "CREATING"}}

    def get_waiter(self, waiter_name: str) -> FakeWaiter:
        assert waiter_name == "table_exists"
        return self.waiter

    @staticmethod
    def _key(item: dict[str, Any]) -> tuple[str, int]:
        return (item["stream_id"]["S"], int(item["version"]["N"]))


def record(stream_id: str, version: int, timestamp: int = 0) -> EventRecord:
    return EventRecord(
        stream_id=stream_id,
        version=version,
        timestamp=timestamp,
        payload=f"{stream_id}:{version}",
    )


@pytest.fixture
def client() -> FakeDynamoDbClient:
    return FakeDynamoDbClient()


@pytest.fixture
def dynamo_backend(client: FakeDynamoDbClient) -> DynamoDbEventBackend:
    return DynamoDbEventBackend(client, "events", page_size=2)


# =============================================================================
# Writes
# =============================================================================


def test_put_marshals_records_into_one_transaction(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    dynamo_backend.transact_put([record("s", 1, timestamp=10), record("s", 2, timestamp=11)])

    assert len(client.transactions) == 1
    item = client.transactions[0][0]["Put"]["Item"]
    assert client.transactions[0][0]["Put"]["TableName"] == "events"
    assert {name: _deserializer.deserialize(value) for name, value in item.items()} == {
        "stream_id": "s",
        "version": 1,
        "marker": "allEvents",
        "timestamp": 10,
        "payload": "s:1",
    }


def test_empty_put_makes_no_call(client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend) -> None:
    dynamo_backend.transact_put([])

    assert client.transactions == []


def test_failed_condition_is_a_conflict_with_keys(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    dynamo_backend.transact_put([record("s", 2)])

    with pytest.raises(ConcurrencyConflict) as exc_info:
        dynamo_backend.transact_put([record("s", 1), record("s", 2)])

    assert exc_info.value.keys == (("s", 2),)
    assert ("s", 1) not in client.items


def test_cancellation_for_other_reasons_is_a_storage_failure(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    client.write_error = client_error(
        "TransactionCanceledException",
        "TransactWriteItems",
        CancellationReasons=[{"Code": "TransactionConflict"}],
    )

    with pytest.raises(StorageFailure) as exc_info:
        dynamo_backend.transact_put([record("s", 1)])

    assert not isinstance(exc_info.value, ConcurrencyConflict)
    assert exc_info.value.operation == "transact_put"


def test_condition_failure_without_reasons_is_still_a_conflict(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    client.write_error = ClientError(
        {
            "Error": {
                "Code": "TransactionCanceledException",
                "Message": "Transaction cancelled, please refer cancellation reasons "
                "for specific reasons [ConditionalCheckFailed]",
            }
        },
        "TransactWriteItems",
    )

    with pytest.raises(ConcurrencyConflict) as exc_info:
        dynamo_backend.transact_put([record("s", 1)])

    assert exc_info.value.keys == ()


@pytest.mark.parametrize(
    "error",
    [
        client_error("ProvisionedThroughputExceededException", "TransactWriteItems"),
        client_error("AccessDeniedException", "TransactWriteItems"),
        EndpointConnectionError(endpoint_url="https://dynamodb.eu-west-1.amazonaws.com"),
    ],
)
def test_transport_and_service_errors_are_storage_failures(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend, error: Exception
) -> None:
    client.write_error = error

    with pytest.raises(StorageFailure):
        dynamo_backend.transact_put([record("s", 1)])


def test_oversized_batch_rejected_before_calling_dynamodb(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    with pytest.raises(StorageFailure):
        dynamo_backend.transact_put([record("s", v) for v in range(MAX_TRANSACTION_ITEMS + 1)])

    assert client.transactions == []


# =============================================================================
# Reads
# =============================================================================


def test_query_stream_reads_every_page(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    dynamo_backend.transact_put([record("s", v) for v in range(5)] + [record("t", 0)])

    versions = [r.version for r in dynamo_backend.query_stream("s")]

    assert versions == [0, 1, 2, 3, 4]
    params = client.query_calls[-1]
    assert params["ScanIndexForward"] is True
    assert params["PaginationConfig"] == {"PageSize": 2}
    assert "IndexName" not in params


def test_query_stream_after_version(dynamo_backend: DynamoDbEventBackend) -> None:
    dynamo_backend.transact_put([record("s", v) for v in range(5)])

    assert [r.version for r in dynamo_backend.query_stream("s", after_version=2)] == [3, 4]


def test_query_time_range_uses_index(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    dynamo_backend.transact_put([record("s", v, timestamp=100 + v) for v in range(6)])

    timestamps = [r.timestamp for r in dynamo_backend.query_time_range("allEvents", 101, 104)]

    assert timestamps == [101, 102, 103, 104]
    assert client.query_calls[-1]["IndexName"] == "allEvents"


def test_query_errors_become_storage_failures(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    client.query_error = client_error("ThrottlingException", "Query")

    with pytest.raises(StorageFailure) as exc_info:
        list(dynamo_backend.query_stream("s"))

    assert exc_info.value.operation == "query_stream"


def test_malformed_item_is_a_storage_failure(
    client: FakeDynamoDbClient, dynamo_backend: DynamoDbEventBackend
) -> None:
    client.items[("s", 1)] = {"stream_id": {"S": "s"}, "version": {"N": "1"}}

    with pytest.raises(StorageFailure):
        list(dynamo_backend.query_stream("s"))


def test_repository_on_dynamodb(
    client: FakeDynamoDbClient, serializer: JsonMessageSerializer
) -> None:
    repository = MessageRepository(DynamoDbEventBackend(client, "events", page_size=2), serializer)

    assert repository.persist(make_timeline("cart-1", 3)).is_ok()
    conflict = repository.persist(make_timeline("cart-1", 1))

    stream = repository.retrieve_all("cart-1")
    assert [m.version for m in stream] == [0, 1, 2]
    assert stream.last_version == 2
    assert isinstance(conflict.error, ConcurrencyConflict)


# =============================================================================
# Table provisioning
# =============================================================================


def test_create_event_table(client: FakeDynamoDbClient) -> None:
    assert create_event_table(client, "events") is True

    params = client.tables["events"]
    assert params["KeySchema"][0] == {"AttributeName": "stream_id", "KeyType": "HASH"}
    assert params["GlobalSecondaryIndexes"][0]["IndexName"] == "allEvents"
    assert client.waiter.waited_for == ["events"]


def test_create_event_table_tolerates_existing_table(client: FakeDynamoDbClient) -> None:
    create_event_table(client, "events", wait=False)

    assert create_event_table(client, "events", wait=False) is False
    assert client.waiter.waited_for == []


def test_backend_from_settings(client: FakeDynamoDbClient) -> None:
    settings = LedgerSettings.from_env(
        {
            "EVENT_LEDGER_TABLE_NAME": "ledger-prod",
            "EVENT_LEDGER_INDEX_NAME": "byTime",
            "EVENT_LEDGER_PAGE_SIZE": "25",
        }
    )

    backend = DynamoDbEventBackend.from_settings(client, settings)
    backend.transact_put([record("s", 1, timestamp=5)])
    list(backend.query_time_range("allEvents", 0, 10))

    assert backend.client is client
    assert client.transactions[0][0]["Put"]["TableName"] == "ledger-prod"
    params = client.query_calls[-1]
    assert params["TableName"] == "ledger-prod"
    assert params["IndexName"] == "byTime"
    assert params["PaginationConfig"] == {"PageSize": 25}
