"""test_layer.py — Unit tests for ecoscan_shared layer modules.

Run from shared_layer directory:
    python3 -m pytest test_layer.py -v
"""

from __future__ import annotations

import base64
import json
import os
import re
import sys
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError, EndpointConnectionError

# Ensure the layer's python/ directory is importable.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "python"))

from ecoscan_shared import auth as auth_mod
from ecoscan_shared.auth import _authenticate, _extract_token, _is_admin
from ecoscan_shared.errors import InvalidRequest, StoreUnavailable
from ecoscan_shared.http_utils import _error, _parse_body, _path_method, _path_param, _query_param, _response
from ecoscan_shared.models import BinStatus, StatusUpdateRequest, parse_bin, parse_location, qr_code_record
from ecoscan_shared.serialization import _deserialize, _new_id, _now_iso, _serialize
from ecoscan_shared.store import BinStore, RecordTable


def _client_error(code: str, op: str = "UpdateItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


class AuthTests(unittest.TestCase):
    def test_extract_token_from_bearer_header(self):
        event = {"headers": {"Authorization": "Bearer abc.def.ghi"}}
        self.assertEqual(_extract_token(event), "abc.def.ghi")

    def test_extract_token_from_cookie_header(self):
        event = {"headers": {"cookie": "ecoscan_id_token=abc123; other=val"}}
        self.assertEqual(_extract_token(event), "abc123")

    def test_extract_token_from_cookies_array(self):
        event = {"headers": {}, "cookies": ["other=val", "ecoscan_id_token=xyz789"]}
        self.assertEqual(_extract_token(event), "xyz789")

    def test_extract_token_missing(self):
        self.assertIsNone(_extract_token({"headers": {"cookie": "other=val"}}))

    def test_authenticate_no_token(self):
        claims, err = _authenticate({"headers": {}})
        self.assertIsNone(claims)
        self.assertEqual(err["statusCode"], 401)

    def test_authenticate_invalid_token(self):
        with patch.object(auth_mod, "_verify_token", side_effect=ValueError("Token has expired. Please sign in again.")):
            claims, err = _authenticate({"headers": {"authorization": "Bearer t"}})
        self.assertIsNone(claims)
        self.assertEqual(err["statusCode"], 401)
        self.assertIn("expired", json.loads(err["body"])["message"])

    def test_authenticate_admin(self):
        admin = {"sub": "u1", "cognito:groups": ["ADMIN"]}
        with patch.object(auth_mod, "_verify_token", return_value=admin):
            claims, err = _authenticate({"headers": {"authorization": "Bearer t"}})
        self.assertIsNone(err)
        self.assertEqual(claims["sub"], "u1")

    def test_authenticate_member_is_forbidden(self):
        member = {"sub": "u2", "cognito:groups": ["MEMBER"]}
        with patch.object(auth_mod, "_verify_token", return_value=member):
            claims, err = _authenticate({"headers": {"authorization": "Bearer t"}})
        self.assertIsNone(claims)
        self.assertEqual(err["statusCode"], 403)

    def test_member_allowed_when_admin_not_required(self):
        member = {"sub": "u2"}
        with patch.object(auth_mod, "_verify_token", return_value=member):
            claims, err = _authenticate({"headers": {"authorization": "Bearer t"}}, require_admin=False)
        self.assertIsNone(err)
        self.assertEqual(claims, member)

    def test_is_admin_accepts_comma_separated_groups(self):
        self.assertTrue(_is_admin({"cognito:groups": "MEMBER, ADMIN"}))
        self.assertFalse(_is_admin({}))


class HttpUtilsTests(unittest.TestCase):
    def test_response_format(self):
        resp = _response(200, {"key": "val"})
        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(resp["headers"]["Content-Type"], "application/json")
        self.assertEqual(resp["headers"]["Access-Control-Allow-Origin"], "*")
        self.assertEqual(json.loads(resp["body"]), {"key": "val"})

    def test_error_format(self):
        resp = _error(500, "Error updating bin status", error="boom")
        self.assertEqual(resp["statusCode"], 500)
        self.assertEqual(json.loads(resp["body"]), {"message": "Error updating bin status", "error": "boom"})

    def test_parse_body(self):
        self.assertEqual(_parse_body({"body": '{"status": "OK"}'}), {"status": "OK"})

    def test_parse_body_base64(self):
        raw = base64.b64encode(b'{"status": "FULL"}').decode()
        self.assertEqual(_parse_body({"body": raw, "isBase64Encoded": True}), {"status": "FULL"})

    def test_parse_body_empty_and_invalid(self):
        self.assertEqual(_parse_body({}), {})
        self.assertIsNone(_parse_body({"body": "{oops"}))

    def test_parse_body_base64_not_utf8(self):
        raw = base64.b64encode(b"\xff\xfe").decode()
        self.assertIsNone(_parse_body({"body": raw, "isBase64Encoded": True}))

    def test_parse_body_invalid_base64(self):
        self.assertIsNone(_parse_body({"body": "not base64!", "isBase64Encoded": True}))

    def test_path_method_v2_and_v1(self):
        v2 = {"requestContext": {"http": {"method": "put", "path": "/bins/a/status"}}}
        self.assertEqual(_path_method(v2), ("PUT", "/bins/a/status"))
        v1 = {"httpMethod": "GET", "path": "/bins"}
        self.assertEqual(_path_method(v1), ("GET", "/bins"))

    def test_path_and_query_params(self):
        event = {"pathParameters": {"id": " b1 "}, "queryStringParameters": {"binId": "", "limit": "5"}}
        self.assertEqual(_path_param(event, "id"), "b1")
        self.assertIsNone(_path_param(event, "other"))
        self.assertIsNone(_query_param(event, "binId"))
        self.assertEqual(_query_param(event, "limit"), "5")


class SerializationTests(unittest.TestCase):
    def test_serialize_float_as_decimal(self):
        self.assertEqual(_serialize(52.52)["N"], "52.52")

    def test_deserialize_numbers(self):
        out = _deserialize({"a": {"N": "5"}, "b": {"N": "1.5"}, "s": {"S": "x"}})
        self.assertEqual(out, {"a": 5, "b": 1.5, "s": "x"})

    def test_now_iso_has_millis_and_z(self):
        self.assertRegex(_now_iso(), r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")

    def test_new_id_is_unique(self):
        self.assertNotEqual(_new_id(), _new_id())


class ModelTests(unittest.TestCase):
    def test_status_parse(self):
        self.assertIs(BinStatus.parse("FULL"), BinStatus.FULL)
        for bad in ("full", "", None, 1, "EMPTY"):
            with self.assertRaises(InvalidRequest):
                BinStatus.parse(bad)

    def test_status_request_prefers_path_id(self):
        req = StatusUpdateRequest.parse("b1", {"status": "OK"})
        self.assertEqual((req.bin_id, req.status), ("b1", BinStatus.OK))

    def test_status_request_accepts_body_id_without_path(self):
        req = StatusUpdateRequest.parse(None, {"id": "b2", "status": "FULL"})
        self.assertEqual(req.bin_id, "b2")

    def test_status_request_checks_id_before_status(self):
        with self.assertRaisesRegex(InvalidRequest, "Bin ID is required"):
            StatusUpdateRequest.parse("  ", {"status": "bogus"})

    def test_status_request_rejects_list_body(self):
        with self.assertRaisesRegex(InvalidRequest, "Status must be either OK or FULL"):
            StatusUpdateRequest.parse("b1", ["OK"])

    def test_parse_location_partial(self):
        self.assertEqual(parse_location({"longitude": -0.12}, partial=True), {"longitude": -0.12})

    def test_parse_location_requires_all_fields(self):
        with self.assertRaisesRegex(InvalidRequest, "address is required"):
            parse_location({"name": "X", "latitude": 1, "longitude": 1})

    def test_parse_bin_rejects_long_name(self):
        with self.assertRaisesRegex(InvalidRequest, "at most"):
            parse_bin({"name": "x" * 201, "locationId": "l"})

    def test_qr_code_record_url(self):
        qr = qr_code_record("b1", "2026-10-18T00:00:00.000Z", qr_id="q1")
        self.assertEqual(qr["id"], "q1")
        self.assertTrue(re.match(r"^https?://.+/bin/b1$", qr["url"]))


class RecordTableTests(unittest.TestCase):
    def setUp(self):
        self.ddb = MagicMock()
        self.table = RecordTable(self.ddb, "ecoscan-locations")

    def test_get_uses_consistent_read(self):
        self.ddb.get_item.return_value = {"Item": {"id": {"S": "l1"}, "latitude": {"N": "52.5"}}}
        self.assertEqual(self.table.get("l1"), {"id": "l1", "latitude": 52.5})
        kwargs = self.ddb.get_item.call_args.kwargs
        self.assertTrue(kwargs["ConsistentRead"])
        self.assertEqual(kwargs["Key"], {"id": {"S": "l1"}})

    def test_get_missing(self):
        self.ddb.get_item.return_value = {}
        self.assertIsNone(self.table.get("nope"))

    def test_scan_follows_pagination_and_filters(self):
        self.ddb.scan.side_effect = [
            {"Items": [{"id": {"S": "a"}}], "LastEvaluatedKey": {"id": {"S": "a"}}},
            {"Items": [{"id": {"S": "b"}}]},
        ]
        items = self.table.scan({"binId": "b1"})
        self.assertEqual([i["id"] for i in items], ["a", "b"])
        second = self.ddb.scan.call_args_list[1].kwargs
        self.assertEqual(second["ExclusiveStartKey"], {"id": {"S": "a"}})
        self.assertEqual(second["FilterExpression"], "#f0 = :f0")
        self.assertEqual(second["ExpressionAttributeNames"], {"#f0": "binId"})

    def test_put_new_is_conditional(self):
        self.assertTrue(self.table.put_new({"id": "l1", "name": "Park", "skip": None}))
        kwargs = self.ddb.put_item.call_args.kwargs
        self.assertEqual(kwargs["ConditionExpression"], "attribute_not_exists(id)")
        self.assertNotIn("skip", kwargs["Item"])

    def test_put_new_existing_returns_false(self):
        self.ddb.put_item.side_effect = _client_error("ConditionalCheckFailedException", "PutItem")
        self.assertFalse(self.table.put_new({"id": "l1"}))

    def test_delete_missing_returns_false(self):
        self.ddb.delete_item.side_effect = _client_error("ConditionalCheckFailedException", "DeleteItem")
        self.assertFalse(self.table.delete("l1"))

    def test_other_client_errors_become_store_unavailable(self):
        self.ddb.delete_item.side_effect = _client_error("ResourceNotFoundException", "DeleteItem")
        with self.assertRaises(StoreUnavailable):
            self.table.delete("l1")

    def test_empty_update_reads_current_record(self):
        self.ddb.get_item.return_value = {"Item": {"id": {"S": "l1"}}}
        self.assertEqual(self.table.update("l1", {}), {"id": "l1"})
        self.ddb.update_item.assert_not_called()


class BinStoreTests(unittest.TestCase):
    def setUp(self):
        self.ddb = MagicMock()
        self.store = BinStore(self.ddb, "bins", "status-updates", "binId-timestamp-index")

    def test_update_bin_status_is_conditional_and_returns_new_image(self):
        self.ddb.update_item.return_value = {
            "Attributes": {
                "id": {"S": "abc123"},
                "status": {"S": "FULL"},
                "lastUpdated": {"S": "2026-10-18T09:30:00.123Z"},
            }
        }
        out = self.store.update_bin_status("abc123", "FULL", "2026-10-18T09:30:00.123Z")

        self.assertEqual(out["status"], "FULL")
        kwargs = self.ddb.update_item.call_args.kwargs
        self.assertEqual(kwargs["TableName"], "bins")
        self.assertEqual(kwargs["Key"], {"id": {"S": "abc123"}})
        self.assertEqual(kwargs["ReturnValues"], "ALL_NEW")
        self.assertEqual(kwargs["ConditionExpression"], "attribute_exists(#pk)")
        self.assertEqual(kwargs["UpdateExpression"], "SET #a0 = :v0, #a1 = :v1")
        self.assertEqual(
            kwargs["ExpressionAttributeNames"],
            {"#a0": "status", "#a1": "lastUpdated", "#pk": "id"},
        )
        self.assertEqual(kwargs["ExpressionAttributeValues"][":v0"], {"S": "FULL"})

    def test_update_bin_status_missing_bin_returns_none(self):
        self.ddb.update_item.side_effect = _client_error("ConditionalCheckFailedException")
        self.assertIsNone(self.store.update_bin_status("missing", "OK", "t"))

    def test_update_bin_status_transport_failure(self):
        self.ddb.update_item.side_effect = EndpointConnectionError(endpoint_url="http://localhost:8000")
        with self.assertRaises(StoreUnavailable):
            self.store.update_bin_status("abc123", "OK", "t")

    def test_append_status_history(self):
        record = {"id": "h1", "binId": "abc123", "status": "FULL", "timestamp": "t"}
        self.store.append_status_history(record)
        kwargs = self.ddb.put_item.call_args.kwargs
        self.assertEqual(kwargs["TableName"], "status-updates")
        self.assertEqual(kwargs["Item"]["binId"], {"S": "abc123"})

    def test_append_status_history_throttled(self):
        self.ddb.put_item.side_effect = _client_error("ProvisionedThroughputExceededException", "PutItem")
        with self.assertRaisesRegex(StoreUnavailable, "ProvisionedThroughputExceeded"):
            self.store.append_status_history({"id": "h1", "binId": "b", "status": "OK", "timestamp": "t"})

    def test_list_status_updates_queries_index_newest_first(self):
        self.ddb.query.return_value = {
            "Items": [{"id": {"S": "h2"}, "binId": {"S": "b1"}}, {"id": {"S": "h1"}, "binId": {"S": "b1"}}],
        }
        rows = self.store.list_status_updates("b1", limit=10)
        self.assertEqual([r["id"] for r in rows], ["h2", "h1"])
        kwargs = self.ddb.query.call_args.kwargs
        self.assertEqual(kwargs["IndexName"], "binId-timestamp-index")
        self.assertFalse(kwargs["ScanIndexForward"])
        self.assertEqual(kwargs["Limit"], 10)

    def test_list_bins_by_location_filters(self):
        self.ddb.scan.return_value = {"Items": []}
        self.store.list_bins("loc-1")
        kwargs = self.ddb.scan.call_args.kwargs
        self.assertEqual(kwargs["ExpressionAttributeValues"], {":f0": {"S": "loc-1"}})
