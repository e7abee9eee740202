"""bin_api/lambda_function.py

Lambda API for bin records and their status history.

Routes (via API Gateway proxy):
    GET     /bins[?locationId=]        public
    GET     /bins/{id}                 public (the QR status page loads this)
    POST    /bins                      admin
    PUT     /bins/{id}                 admin
    DELETE  /bins/{id}                 admin
    GET     /status-updates?binId=     public, newest first
    OPTIONS /bins*, /status-updates

Creating a bin also creates its QR code record; deleting a bin removes its
QR codes. Status itself is only changed through PUT /bins/{id}/status
(update_bin_status Lambda).

Environment variables:
    BINS_TABLE                default: ecoscan-bins
    STATUS_UPDATES_TABLE      default: ecoscan-status-updates
    STATUS_UPDATES_BIN_INDEX  default: binId-timestamp-index
    LOCATIONS_TABLE           default: ecoscan-locations
    QR_CODES_TABLE            default: ecoscan-qrcodes
    PUBLIC_APP_URL            default: https://ecoscan.example.com
    COGNITO_USER_POOL_ID      default: ""
    COGNITO_CLIENT_ID         default: ""
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from ecoscan_shared.auth import _authenticate
from ecoscan_shared.config import configure_logging
from ecoscan_shared.errors import InvalidRequest, NotFound, StoreUnavailable
from ecoscan_shared.http_utils import _error, _no_content, _parse_body, _path_method, _query_param, _response
from ecoscan_shared.models import BinStatus, parse_bin, qr_code_record
from ecoscan_shared.serialization import _new_id, _now_iso
from ecoscan_shared.store import BinStore, LocationStore, QRCodeStore, bin_store, location_store, qr_code_store

logger = configure_logging()

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200

_BINS_PATH = re.compile(r"/bins/?$")
_BIN_PATH = re.compile(r"/bins/([^/]+)/?$")
_HISTORY_PATH = re.compile(r"/status-updates/?$")

_stores: Optional[Dict[str, Any]] = None


def _get_stores() -> Dict[str, Any]:
    global _stores
    if _stores is None:
        _stores = {
            "bins": bin_store(),
            "locations": location_store(),
            "qrcodes": qr_code_store(),
        }
    return _stores


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def _require_location(locations: LocationStore, location_id: str) -> None:
    if locations.get(location_id) is None:
        raise InvalidRequest(f"Location '{location_id}' not found")


def create_bin(bins: BinStore, locations: LocationStore, qrcodes: QRCodeStore, body: Any) -> Dict[str, Any]:
    fields = parse_bin(body)
    _require_location(locations, fields["locationId"])

    now = _now_iso()
    bin_id = _new_id()
    qr = qr_code_record(bin_id, now)
    item = {
        "id": bin_id,
        **fields,
        "qrCodeId": qr["id"],
        "status": BinStatus.OK.value,
        "lastUpdated": now,
        "createdAt": now,
        "updatedAt": now,
    }
    if not bins.put_bin(item):
        raise StoreUnavailable(f"Bin id collision: {bin_id}")
    if not qrcodes.put_new(qr):
        raise StoreUnavailable(f"QR code id collision: {qr['id']}")
    logger.info("created bin %s at location %s", bin_id, fields["locationId"])
    return item


def get_bin(bins: BinStore, bin_id: str) -> Dict[str, Any]:
    item = bins.get_bin(bin_id)
    if item is None:
        raise NotFound("Bin not found")
    return item


def edit_bin(bins: BinStore, locations: LocationStore, bin_id: str, body: Any) -> Dict[str, Any]:
    fields = parse_bin(body, partial=True)
    if "locationId" in fields:
        _require_location(locations, fields["locationId"])
    fields["updatedAt"] = _now_iso()
    updated = bins.update_bin(bin_id, fields)
    if updated is None:
        raise NotFound("Bin not found")
    return updated


def remove_bin(bins: BinStore, qrcodes: QRCodeStore, bin_id: str) -> None:
    if not bins.delete_bin(bin_id):
        raise NotFound("Bin not found")
    for qr in qrcodes.list_for_bin(bin_id):
        qrcodes.delete(qr["id"])
    logger.info("deleted bin %s", bin_id)


def _history_limit(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_HISTORY_LIMIT
    try:
        limit = int(raw)
    except ValueError:
        raise InvalidRequest("limit must be an integer") from None
    if not 1 <= limit <= MAX_HISTORY_LIMIT:
        raise InvalidRequest(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")
    return limit


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def _route(event: Dict[str, Any], stores: Dict[str, Any]) -> Dict[str, Any]:
    method, path = _path_method(event)
    bins: BinStore = stores["bins"]

    if method == "GET" and _HISTORY_PATH.search(path):
        bin_id = _query_param(event, "binId")
        if not bin_id:
            raise InvalidRequest("binId query parameter is required")
        limit = _history_limit(_query_param(event, "limit"))
        return _response(200, bins.list_status_updates(bin_id, limit))

    if method == "GET" and _BINS_PATH.search(path):
        return _response(200, bins.list_bins(_query_param(event, "locationId")))

    match = _BIN_PATH.search(path)
    if method == "GET" and match:
        return _response(200, get_bin(bins, match.group(1)))

    if method not in ("POST", "PUT", "DELETE"):
        return _error(404, f"Unsupported route: {method} {path}")

    _claims, auth_err = _authenticate(event)
    if auth_err:
        return auth_err

    if method == "POST" and _BINS_PATH.search(path):
        return _response(201, create_bin(bins, stores["locations"], stores["qrcodes"], _parse_body(event)))
    if method == "PUT" and match:
        return _response(200, edit_bin(bins, stores["locations"], match.group(1), _parse_body(event)))
    if method == "DELETE" and match:
        remove_bin(bins, stores["qrcodes"], match.group(1))
        return _no_content()
    return _error(404, f"Unsupported route: {method} {path}")


def handle_event(event: Dict[str, Any], stores: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _no_content()
    try:
        return _route(event, stores or _get_stores())
    except InvalidRequest as exc:
        return _error(400, str(exc))
    except NotFound as exc:
        return _error(404, str(exc))
    except Exception as exc:
        logger.exception("bin_api %s %s failed", method, path)
        return _error(500, "Error processing bin request", error=str(exc))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_event(event)
