"""directory_shared.store — DynamoDB adapter for the Organizations and Users tables.

Tables:
  Organizations   hash key orgId
  Users           hash key userId, GSI OrgId-index (hash key orgId, projection ALL)

All writes are unconditional (last writer wins). Every botocore failure is
re-raised as TransientStoreError so callers can decide between a 500 response
(API) and batch redelivery (consumer).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from directory_shared.config import DirectoryConfig
from directory_shared.errors import TransientStoreError
from directory_shared.serialization import _deserialize, _serialize, _serialize_item

logger = logging.getLogger(__name__)


def _build_set_expression(fields: Dict[str, Any]) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    """Build a ``SET`` update expression for the given attributes.

    Every attribute goes through a ``#name`` placeholder since ``name`` is a
    DynamoDB reserved word.
    """
    if not fields:
        raise ValueError("update requires at least one field")
    parts: List[str] = []
    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    for key, value in fields.items():
        parts.append(f"#{key} = :{key}")
        names[f"#{key}"] = key
        values[f":{key}"] = _serialize(value)
    return "SET " + ", ".join(parts), names, values


class RecordStore:
    """Point reads, full puts, partial updates, index queries and scans."""

    def __init__(self, ddb, config: DirectoryConfig):
        self._ddb = ddb
        self._config = config

    @property
    def organizations_table(self) -> str:
        return self._config.organizations_table

    @property
    def users_table(self) -> str:
        return self._config.users_table

    def _call(self, operation: str, fn: Callable[..., Dict[str, Any]], **kwargs: Any) -> Dict[str, Any]:
        try:
            return fn(**kwargs)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            logger.error("DynamoDB %s on %s failed (%s): %s", operation, kwargs.get("TableName"), code, exc)
            raise TransientStoreError(f"DynamoDB {operation} failed: {code}") from exc
        except BotoCoreError as exc:
            logger.error("DynamoDB %s on %s failed: %s", operation, kwargs.get("TableName"), exc)
            raise TransientStoreError(f"DynamoDB {operation} failed: {exc}") from exc

    def _paginate(self, operation: str, kwargs: Dict[str, Any]) -> List[Dict[str, Any]]:
        fn = getattr(self._ddb, operation)
        items: List[Dict[str, Any]] = []
        while True:
            resp = self._call(operation, fn, **kwargs)
            items.extend(_deserialize(raw) for raw in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return items

    def _get(self, table: str, key: Dict[str, str]) -> Optional[Dict[str, Any]]:
        resp = self._call(
            "get_item",
            self._ddb.get_item,
            TableName=table,
            Key={k: _serialize(v) for k, v in key.items()},
        )
        raw = resp.get("Item")
        if not raw:
            return None
        return _deserialize(raw)

    def _put(self, table: str, item: Dict[str, Any]) -> None:
        self._call("put_item", self._ddb.put_item, TableName=table, Item=_serialize_item(item))

    def _update(self, table: str, key: Dict[str, str], fields: Dict[str, Any]) -> Dict[str, Any]:
        expression, names, values = _build_set_expression(fields)
        resp = self._call(
            "update_item",
            self._ddb.update_item,
            TableName=table,
            Key={k: _serialize(v) for k, v in key.items()},
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        return _deserialize(resp.get("Attributes") or {})

    # -- Organizations ------------------------------------------------------

    def get_organization(self, org_id: str) -> Optional[Dict[str, Any]]:
        return self._get(self.organizations_table, {"orgId": org_id})

    def put_organization(self, item: Dict[str, Any]) -> None:
        self._put(self.organizations_table, item)

    def update_organization(self, org_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._update(self.organizations_table, {"orgId": org_id}, fields)

    def scan_organizations(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Full table scan, optionally filtered on ``name``.

        Used for listing and for the name uniqueness check; cost grows with
        the table.
        """
        kwargs: Dict[str, Any] = {"TableName": self.organizations_table}
        if name is not None:
            kwargs["FilterExpression"] = "#name = :name"
            kwargs["ExpressionAttributeNames"] = {"#name": "name"}
            kwargs["ExpressionAttributeValues"] = {":name": _serialize(name)}
        return self._paginate("scan", kwargs)

    # -- Users --------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._get(self.users_table, {"userId": user_id})

    def put_user(self, item: Dict[str, Any]) -> None:
        self._put(self.users_table, item)

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._update(self.users_table, {"userId": user_id}, fields)

    def query_users_by_organization(self, org_id: str, email: Optional[str] = None) -> List[Dict[str, Any]]:
        """All users of ``org_id`` via the orgId secondary index."""
        kwargs: Dict[str, Any] = {
            "TableName": self.users_table,
            "IndexName": self._config.users_org_index,
            "KeyConditionExpression": "orgId = :orgId",
            "ExpressionAttributeValues": {":orgId": _serialize(org_id)},
        }
        if email is not None:
            kwargs["FilterExpression"] = "email = :email"
            kwargs["ExpressionAttributeValues"][":email"] = _serialize(email)
        return self._paginate("query", kwargs)

    # -- Table bootstrap ----------------------------------------------------

    def _table_exists(self, table: str) -> bool:
        try:
            self._ddb.describe_table(TableName=table)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
                return False
            raise TransientStoreError(f"DynamoDB describe_table failed for {table}") from exc
        except BotoCoreError as exc:
            raise TransientStoreError(f"DynamoDB describe_table failed for {table}: {exc}") from exc
        return True

    def ensure_tables(self) -> List[str]:
        """Create both tables (and the users index) when missing.

        Returns the names of the tables that were created.
        """
        created: List[str] = []
        if not self._table_exists(self.organizations_table):
            self._call(
                "create_table",
                self._ddb.create_table,
                TableName=self.organizations_table,
                AttributeDefinitions=[{"AttributeName": "orgId", "AttributeType": "S"}],
                KeySchema=[{"AttributeName": "orgId", "KeyType": "HASH"}],
                BillingMode="PAY_PER_REQUEST",
            )
            created.append(self.organizations_table)
        if not self._table_exists(self.users_table):
            self._call(
                "create_table",
                self._ddb.create_table,
                TableName=self.users_table,
                AttributeDefinitions=[
                    {"AttributeName": "userId", "AttributeType": "S"},
                    {"AttributeName": "orgId", "AttributeType": "S"},
                ],
                KeySchema=[{"AttributeName": "userId", "KeyType": "HASH"}],
                GlobalSecondaryIndexes=[
                    {
                        "IndexName": self._config.users_org_index,
                        "KeySchema": [{"AttributeName": "orgId", "KeyType": "HASH"}],
                        "Projection": {"ProjectionType": "ALL"},
                    }
                ],
                BillingMode="PAY_PER_REQUEST",
            )
            created.append(self.users_table)
        for table in created:
            logger.info("[INFO] Created DynamoDB table %s", table)
        return created
