"""Unit tests for DocumentClient against moto's DynamoDB."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from dockyard.clients.documents import DocumentClient
from dockyard.exceptions import (
    ConditionalCheckError,
    NotFoundError,
    TableExistsError,
    ValidationError,
)


@pytest.fixture
def documents(aws_credentials):
    with mock_aws():
        client = DocumentClient(region="us-east-1", access_key="test", secret_key="test")
        yield client
        client.close()


@pytest.fixture
def users_table(documents: DocumentClient) -> str:
    documents.create_table("users")
    return "users"


class TestDocumentClientTables:
    """Test table lifecycle."""

    def test_create_and_describe(self, documents: DocumentClient) -> None:
        documents.create_table("activity_logs")

        table = documents.describe_table("activity_logs")

        assert table["TableStatus"] == "ACTIVE"
        assert table["KeySchema"] == [{"AttributeName": "id", "KeyType": "HASH"}]

    def test_create_twice_raises(self, documents: DocumentClient, users_table: str) -> None:
        with pytest.raises(TableExistsError):
            documents.create_table(users_table)

    def test_recreate_after_delete(self, documents: DocumentClient, users_table: str) -> None:
        documents.delete_table(users_table)
        documents.create_table(users_table)

    def test_delete_waits_until_gone(self) -> None:
        boto_client = MagicMock()
        client = DocumentClient(boto3_client_factory=lambda *args, **kwargs: boto_client)

        client.delete_table("users")

        boto_client.get_waiter.assert_called_once_with("table_not_exists")
        boto_client.get_waiter.return_value.wait.assert_called_once_with(
            TableName="users", WaiterConfig={"Delay": 1, "MaxAttempts": 60}
        )

    def test_delete_without_wait(self) -> None:
        boto_client = MagicMock()
        client = DocumentClient(boto3_client_factory=lambda *args, **kwargs: boto_client)

        client.delete_table("users", wait=False)

        boto_client.delete_table.assert_called_once_with(TableName="users")
        boto_client.get_waiter.assert_not_called()

    def test_describe_missing_table(self, documents: DocumentClient) -> None:
        with pytest.raises(NotFoundError, match="Cannot describe table 'nope'"):
            documents.describe_table("nope")

    def test_delete_missing_table(self, documents: DocumentClient) -> None:
        with pytest.raises(NotFoundError):
            documents.delete_table("nope")


class TestDocumentClientItems:
    """Test item operations."""

    def test_put_get_round_trip(self, documents: DocumentClient, users_table: str) -> None:
        item = {"id": "user-1", "name": "John Doe", "age": 30, "tags": ["a", "b"]}

        documents.put_item(users_table, item)

        assert documents.get_item(users_table, {"id": "user-1"}) == {
            "id": "user-1",
            "name": "John Doe",
            "age": Decimal(30),
            "tags": ["a", "b"],
        }

    def test_put_overwrites(self, documents: DocumentClient, users_table: str) -> None:
        documents.put_item(users_table, {"id": "u", "name": "Old", "extra": "x"})
        documents.put_item(users_table, {"id": "u", "name": "New"})

        assert documents.get_item(users_table, {"id": "u"}) == {"id": "u", "name": "New"}

    def test_get_missing_item_is_empty(self, documents: DocumentClient, users_table: str) -> None:
        assert documents.get_item(users_table, {"id": "absent"}) == {}

    def test_update_with_attribute_names(self, documents: DocumentClient, users_table: str) -> None:
        documents.put_item(users_table, {"id": "user-1", "name": "John Doe"})

        updated = documents.update_item(
            users_table,
            {"id": "user-1"},
            "SET #n = :name",
            {":name": "Jane Doe"},
            expression_names={"#n": "name"},
        )

        assert updated == {"name": "Jane Doe"}
        assert documents.get_item(users_table, {"id": "user-1"})["name"] == "Jane Doe"

    def test_failed_condition(self, documents: DocumentClient, users_table: str) -> None:
        with pytest.raises(ConditionalCheckError):
            documents.update_item(
                users_table,
                {"id": "ghost"},
                "SET age = :age",
                {":age": 1},
                condition_expression="attribute_exists(id)",
            )

    def test_malformed_expression(self, documents: DocumentClient, users_table: str) -> None:
        documents.put_item(users_table, {"id": "user-1"})

        with pytest.raises(ValidationError):
            documents.update_item(users_table, {"id": "user-1"}, "SET age = :missing", {":age": 1})

    def test_delete_item_idempotent(self, documents: DocumentClient, users_table: str) -> None:
        documents.put_item(users_table, {"id": "user-1"})

        documents.delete_item(users_table, {"id": "user-1"})
        documents.delete_item(users_table, {"id": "user-1"})

        assert documents.get_item(users_table, {"id": "user-1"}) == {}

    def test_query_by_key(self, documents: DocumentClient, users_table: str) -> None:
        documents.put_item(users_table, {"id": "user-1", "name": "John"})
        documents.put_item(users_table, {"id": "user-2", "name": "Jane"})

        items = documents.query(users_table, "id = :id", {":id": "user-2"})

        assert items == [{"id": "user-2", "name": "Jane"}]

    def test_scan_returns_every_item(self, documents: DocumentClient, users_table: str) -> None:
        for i in range(25):
            documents.put_item(users_table, {"id": f"user-{i}", "n": i})

        items = documents.scan(users_table)

        assert sorted(int(item["n"]) for item in items) == list(range(25))

    def test_missing_table_on_item_access(self, documents: DocumentClient) -> None:
        with pytest.raises(NotFoundError):
            documents.get_item("nope", {"id": "x"})


class TestDocumentClientErrorMapping:
    """Test errors without a dockyard equivalent."""

    def test_unmapped_error_propagates_unchanged(self) -> None:
        error = ClientError(
            {"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "PutItem"
        )
        boto_client = MagicMock()
        boto_client.put_item.side_effect = error
        client = DocumentClient(boto3_client_factory=lambda *args, **kwargs: boto_client)

        with pytest.raises(ClientError) as exc_info:
            client.put_item("users", {"id": "x"})

        assert exc_info.value is error

    def test_client_configured_with_timeouts(self) -> None:
        factory = MagicMock()

        DocumentClient(endpoint_url="http://localhost:4566", timeout=3.0, boto3_client_factory=factory)

        args, kwargs = factory.call_args
        assert args == ("dynamodb",)
        assert kwargs["endpoint_url"] == "http://localhost:4566"
        assert kwargs["aws_access_key_id"] == "test"
        assert kwargs["config"].connect_timeout == 3.0
        assert kwargs["config"].read_timeout == 3.0
