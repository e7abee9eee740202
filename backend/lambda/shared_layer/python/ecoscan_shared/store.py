"""ecoscan_shared.store — DynamoDB point-operation stores.

Every operation here touches a single item by key (or, for the admin list
views, a paginated scan / GSI query). Nothing spans items transactionally:
the status path issues its bin update and history insert as two
independent writes.

Failures from botocore surface as ``StoreUnavailable``; a failed
``attribute_exists`` / ``attribute_not_exists`` condition is reported
through the return value instead of an exception.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ecoscan_shared import config
from ecoscan_shared.aws_clients import _get_ddb
from ecoscan_shared.errors import StoreUnavailable
from ecoscan_shared.serialization import _deserialize, _serialize, _serialize_item

logger = logging.getLogger(__name__)

__all__ = [
    "BinStore",
    "LocationStore",
    "QRCodeStore",
    "RecordTable",
    "bin_store",
    "location_store",
    "qr_code_store",
]


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def _unavailable(op: str, table: str, exc: Exception) -> StoreUnavailable:
    logger.error("dynamodb %s on %s failed: %s", op, table, exc)
    return StoreUnavailable(str(exc))


class RecordTable:
    """Single DynamoDB table keyed by a string ``id`` attribute."""

    key = "id"

    def __init__(self, ddb, table_name: str):
        self._ddb = ddb
        self.table_name = table_name

    def _key(self, record_id: str) -> Dict[str, Any]:
        return {self.key: _serialize(record_id)}

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self._ddb.get_item(
                TableName=self.table_name,
                Key=self._key(record_id),
                ConsistentRead=True,
            )
        except (BotoCoreError, ClientError) as exc:
            raise _unavailable("get_item", self.table_name, exc) from exc
        raw = resp.get("Item")
        return _deserialize(raw) if raw else None

    def scan(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return every record, optionally filtered on attribute equality."""
        kwargs: Dict[str, Any] = {"TableName": self.table_name}
        if filters:
            names, values, clauses = {}, {}, []
            for i, (attr, value) in enumerate(sorted(filters.items())):
                names[f"#f{i}"] = attr
                values[f":f{i}"] = _serialize(value)
                clauses.append(f"#f{i} = :f{i}")
            kwargs["FilterExpression"] = " AND ".join(clauses)
            kwargs["ExpressionAttributeNames"] = names
            kwargs["ExpressionAttributeValues"] = values

        items: List[Dict[str, Any]] = []
        try:
            while True:
                resp = self._ddb.scan(**kwargs)
                items.extend(_deserialize(raw) for raw in resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as exc:
            raise _unavailable("scan", self.table_name, exc) from exc
        return items

    def put_new(self, item: Dict[str, Any]) -> bool:
        """Insert ``item``; False when a record with its id already exists."""
        try:
            self._ddb.put_item(
                TableName=self.table_name,
                Item=_serialize_item(item),
                ConditionExpression=f"attribute_not_exists({self.key})",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise _unavailable("put_item", self.table_name, exc) from exc
        except BotoCoreError as exc:
            raise _unavailable("put_item", self.table_name, exc) from exc
        return True

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """SET ``fields`` on an existing record.

        Returns the post-update record, or None when no record has this id.
        """
        if not fields:
            return self.get(record_id)
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        sets: List[str] = []
        for i, (attr, value) in enumerate(fields.items()):
            names[f"#a{i}"] = attr
            values[f":v{i}"] = _serialize(value)
            sets.append(f"#a{i} = :v{i}")
        names["#pk"] = self.key

        try:
            resp = self._ddb.update_item(
                TableName=self.table_name,
                Key=self._key(record_id),
                UpdateExpression="SET " + ", ".join(sets),
                ConditionExpression="attribute_exists(#pk)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return None
            raise _unavailable("update_item", self.table_name, exc) from exc
        except BotoCoreError as exc:
            raise _unavailable("update_item", self.table_name, exc) from exc
        attrs = resp.get("Attributes")
        return _deserialize(attrs) if attrs else None

    def delete(self, record_id: str) -> bool:
        """Delete a record; False when it did not exist."""
        try:
            self._ddb.delete_item(
                TableName=self.table_name,
                Key=self._key(record_id),
                ConditionExpression=f"attribute_exists({self.key})",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise _unavailable("delete_item", self.table_name, exc) from exc
        except BotoCoreError as exc:
            raise _unavailable("delete_item", self.table_name, exc) from exc
        return True


class BinStore:
    """Bin records plus their append-only status history."""

    def __init__(
        self,
        ddb,
        bins_table: str,
        status_updates_table: str,
        status_index: str = "binId-timestamp-index",
    ):
        self._ddb = ddb
        self.bins = RecordTable(ddb, bins_table)
        self.history = RecordTable(ddb, status_updates_table)
        self.status_index = status_index

    # -- status path --------------------------------------------------------

    def update_bin_status(self, bin_id: str, status: str, timestamp: str) -> Optional[Dict[str, Any]]:
        """Set status/lastUpdated; None when the bin does not exist."""
        return self.bins.update(bin_id, {"status": status, "lastUpdated": timestamp})

    def append_status_history(self, record: Dict[str, Any]) -> None:
        if not self.history.put_new(record):
            # uuid4 collision; never expected.
            raise StoreUnavailable(f"Status update {record.get('id')} already exists")

    def list_status_updates(self, bin_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Newest-first history for one bin, via the binId GSI."""
        kwargs: Dict[str, Any] = {
            "TableName": self.history.table_name,
            "IndexName": self.status_index,
            "KeyConditionExpression": "binId = :b",
            "ExpressionAttributeValues": {":b": _serialize(bin_id)},
            "ScanIndexForward": False,
        }
        items: List[Dict[str, Any]] = []
        try:
            while len(items) < limit:
                kwargs["Limit"] = limit - len(items)
                resp = self._ddb.query(**kwargs)
                items.extend(_deserialize(raw) for raw in resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as exc:
            raise _unavailable("query", self.history.table_name, exc) from exc
        return items[:limit]

    # -- admin CRUD ---------------------------------------------------------

    def get_bin(self, bin_id: str) -> Optional[Dict[str, Any]]:
        return self.bins.get(bin_id)

    def list_bins(self, location_id: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = {"locationId": location_id} if location_id else None
        return self.bins.scan(filters)

    def put_bin(self, item: Dict[str, Any]) -> bool:
        return self.bins.put_new(item)

    def update_bin(self, bin_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.bins.update(bin_id, fields)

    def delete_bin(self, bin_id: str) -> bool:
        return self.bins.delete(bin_id)


class LocationStore(RecordTable):
    pass


class QRCodeStore(RecordTable):
    def list_for_bin(self, bin_id: str) -> List[Dict[str, Any]]:
        return self.scan({"binId": bin_id})


# ---------------------------------------------------------------------------
# Default constructors used by the Lambda entry points
# ---------------------------------------------------------------------------


def bin_store(ddb=None) -> BinStore:
    return BinStore(
        ddb or _get_ddb(),
        config.BINS_TABLE,
        config.STATUS_UPDATES_TABLE,
        config.STATUS_UPDATES_BIN_INDEX,
    )


def location_store(ddb=None) -> LocationStore:
    return LocationStore(ddb or _get_ddb(), config.LOCATIONS_TABLE)


def qr_code_store(ddb=None) -> QRCodeStore:
    return QRCodeStore(ddb or _get_ddb(), config.QR_CODES_TABLE)
