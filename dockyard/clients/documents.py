"""Document-store façade over the DynamoDB API."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, NoReturn

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import ClientError

from dockyard.constants import DEFAULT_OPERATION_TIMEOUT_SECONDS
from dockyard.exceptions import (
    ConditionalCheckError,
    NotFoundError,
    TableExistsError,
    ValidationError,
)
from dockyard.harness.spec import Endpoint

logger = logging.getLogger(__name__)

ERROR_CODE_MAP: dict[str, type[Exception]] = {
    "ResourceNotFoundException": NotFoundError,
    "ResourceInUseException": TableExistsError,
    "ConditionalCheckFailedException": ConditionalCheckError,
    "ValidationException": ValidationError,
}

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def serialize_item(item: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a plain dict into DynamoDB attribute values."""
    return {key: _serializer.serialize(value) for key, value in item.items()}


def deserialize_item(item: Mapping[str, Any]) -> dict[str, Any]:
    """Convert DynamoDB attribute values into a plain dict (numbers as Decimal)."""
    return {key: _deserializer.deserialize(value) for key, value in item.items()}


def raise_client_error(error: ClientError, context: str) -> NoReturn:
    """Re-raise a ``ClientError`` as its dockyard equivalent.

    Errors whose code has no mapping propagate unchanged.
    """
    code = error.response.get("Error", {}).get("Code", "")
    message = error.response.get("Error", {}).get("Message", str(error))
    mapped = ERROR_CODE_MAP.get(code)
    if mapped is None:
        raise error
    raise mapped(f"{context}: {message}") from error


class DocumentClient:
    """Blocking DynamoDB client working with plain Python dicts.

    Tables created here use a single string hash key named ``id`` and
    on-demand billing.

    Parameters
    ----------
    endpoint_url : str | None
        Service endpoint, e.g. ``http://localhost:4566`` for LocalStack.
        ``None`` uses the default AWS endpoint resolution.
    region : str
        Region name.
    access_key : str
        Static access key id.
    secret_key : str
        Static secret access key.
    timeout : float
        Connect and read timeout in seconds.
    boto3_client_factory : Callable | None
        Factory used instead of ``boto3.client`` (for tests).
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key: str = "test",
        secret_key: str = "test",
        timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS,
        boto3_client_factory: Callable[..., Any] | None = None,
    ) -> None:
        factory = boto3_client_factory or boto3.client
        self.region = region
        self.timeout = timeout
        self._client = factory(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 3, "mode": "standard"},
            ),
        )

    @classmethod
    def from_endpoint(
        cls, endpoint: Endpoint, timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS
    ) -> DocumentClient:
        """Connect to the LocalStack service behind a resolved endpoint."""
        endpoint.ensure_valid()
        params = endpoint.parameters
        return cls(
            endpoint_url=endpoint.url,
            region=params.get("region", "us-east-1"),
            access_key=params.get("access_key", "test"),
            secret_key=params.get("secret_key", "test"),
            timeout=timeout,
        )

    def create_table(self, name: str, wait: bool = True) -> dict[str, Any]:
        """Create a table keyed by string attribute ``id``.

        Parameters
        ----------
        name : str
            Table name.
        wait : bool
            Block until the table is ACTIVE.

        Returns
        -------
        dict[str, Any]
            Table description returned by the service.

        Raises
        ------
        TableExistsError
            If a table with this name already exists.
        """
        try:
            response = self._client.create_table(
                TableName=name,
                KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
        except ClientError as e:
            raise_client_error(e, f"Cannot create table '{name}'")

        if wait:
            waiter = self._client.get_waiter("table_exists")
            waiter.wait(TableName=name, WaiterConfig={"Delay": 1, "MaxAttempts": 60})
        logger.debug("Created table %s", name)
        return response["TableDescription"]

    def describe_table(self, name: str) -> dict[str, Any]:
        """Return the table description.

        Raises
        ------
        NotFoundError
            If the table does not exist.
        """
        try:
            return self._client.describe_table(TableName=name)["Table"]
        except ClientError as e:
            raise_client_error(e, f"Cannot describe table '{name}'")

    def delete_table(self, name: str, wait: bool = True) -> None:
        """Delete a table.

        With ``wait`` the call returns only once the table is gone, so the
        name can be reused right away.

        Raises
        ------
        NotFoundError
            If the table does not exist.
        """
        try:
            self._client.delete_table(TableName=name)
        except ClientError as e:
            raise_client_error(e, f"Cannot delete table '{name}'")

        if wait:
            waiter = self._client.get_waiter("table_not_exists")
            waiter.wait(TableName=name, WaiterConfig={"Delay": 1, "MaxAttempts": 60})
        logger.debug("Deleted table %s", name)

    def put_item(self, table: str, item: Mapping[str, Any]) -> None:
        """Insert or fully replace an item."""
        try:
            self._client.put_item(TableName=table, Item=serialize_item(item))
        except ClientError as e:
            raise_client_error(e, f"Cannot put item into '{table}'")

    def get_item(self, table: str, key: Mapping[str, Any]) -> dict[str, Any]:
        """Return the item with ``key``, or an empty dict when absent."""
        try:
            response = self._client.get_item(TableName=table, Key=serialize_item(key))
        except ClientError as e:
            raise_client_error(e, f"Cannot get item from '{table}'")
        return deserialize_item(response.get("Item", {}))

    def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        update_expression: str,
        expression_values: Mapping[str, Any],
        expression_names: Mapping[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any]:
        """Apply an update expression and return the updated attributes.

        Parameters
        ----------
        table : str
            Table name.
        key : Mapping[str, Any]
            Primary key of the item.
        update_expression : str
            E.g. ``"SET #n = :name"``.
        expression_values : Mapping[str, Any]
            Placeholder values, e.g. ``{":name": "Jane"}``.
        expression_names : Mapping[str, str] | None
            Placeholder names for reserved words, e.g. ``{"#n": "name"}``.
        condition_expression : str | None
            Optional guard; a failed guard raises ``ConditionalCheckError``.

        Returns
        -------
        dict[str, Any]
            Attributes changed by the update, after the update.

        Raises
        ------
        ConditionalCheckError
            If ``condition_expression`` does not hold.
        ValidationError
            If the expression is rejected by the service.
        """
        kwargs: dict[str, Any] = {
            "TableName": table,
            "Key": serialize_item(key),
            "UpdateExpression": update_expression,
            "ExpressionAttributeValues": serialize_item(expression_values),
            "ReturnValues": "UPDATED_NEW",
        }
        if expression_names:
            kwargs["ExpressionAttributeNames"] = dict(expression_names)
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression

        try:
            response = self._client.update_item(**kwargs)
        except ClientError as e:
            raise_client_error(e, f"Cannot update item in '{table}'")
        return deserialize_item(response.get("Attributes", {}))

    def delete_item(self, table: str, key: Mapping[str, Any]) -> None:
        """Delete an item; deleting an absent item succeeds."""
        try:
            self._client.delete_item(TableName=table, Key=serialize_item(key))
        except ClientError as e:
            raise_client_error(e, f"Cannot delete item from '{table}'")

    def query(
        self,
        table: str,
        key_condition_expression: str,
        expression_values: Mapping[str, Any],
        expression_names: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Return every item matching a key condition, in service order."""
        kwargs: dict[str, Any] = {
            "TableName": table,
            "KeyConditionExpression": key_condition_expression,
            "ExpressionAttributeValues": serialize_item(expression_values),
        }
        if expression_names:
            kwargs["ExpressionAttributeNames"] = dict(expression_names)

        return self._paginate("query", f"Cannot query '{table}'", **kwargs)

    def scan(self, table: str) -> list[dict[str, Any]]:
        """Return every item of the table across all pages."""
        return self._paginate("scan", f"Cannot scan '{table}'", TableName=table)

    def close(self) -> None:
        self._client.close()
        logger.debug("Closed document client")

    def _paginate(self, operation: str, context: str, **kwargs: Any) -> list[dict[str, Any]]:
        paginator = self._client.get_paginator(operation)
        items: list[dict[str, Any]] = []
        try:
            for page in paginator.paginate(**kwargs):
                items.extend(deserialize_item(item) for item in page.get("Items", []))
        except ClientError as e:
            raise_client_error(e, context)
        return items
