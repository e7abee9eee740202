"""update_bin_status/lambda_function.py

Public Lambda behind the QR-code status page: a citizen reports a bin as
OK or FULL.

Route (via API Gateway proxy):
    PUT     /bins/{id}/status      body: {"status": "OK" | "FULL"}
    OPTIONS /bins/{id}/status

Responses:
    200  updated bin record
    400  {"message": "Bin ID is required"}
         {"message": "Status must be either OK or FULL"}
    404  {"message": "Bin not found"}
    500  {"message": "Error updating bin status", "error": "<detail>"}

The bin update and the history insert are two independent DynamoDB writes
issued in parallel. There is no transaction across them: a 404 can leave a
history row for a bin that does not exist, and a failure of either write
surfaces as a 500 without rolling back the other.

Environment variables:
    BINS_TABLE                default: ecoscan-bins
    STATUS_UPDATES_TABLE      default: ecoscan-status-updates
    DYNAMODB_REGION           default: eu-central-1
    DYNAMODB_ENDPOINT_URL     default: unset
    LOG_LEVEL                 default: INFO
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from ecoscan_shared.config import configure_logging
from ecoscan_shared.errors import InvalidRequest, NotFound
from ecoscan_shared.http_utils import _error, _no_content, _parse_body, _path_method, _path_param, _response
from ecoscan_shared.models import StatusUpdateRequest
from ecoscan_shared.serialization import _new_id, _now_iso
from ecoscan_shared.store import BinStore, bin_store

logger = configure_logging()

_STATUS_PATH = re.compile(r"/bins/([^/]+)/status/?$")

_store: Optional[BinStore] = None


def _get_store() -> BinStore:
    global _store
    if _store is None:
        _store = bin_store()
    return _store


def handle_status_update(
    store: BinStore,
    request: StatusUpdateRequest,
    now: Callable[[], str] = _now_iso,
) -> Dict[str, Any]:
    """Apply one status report and return the updated bin.

    Raises NotFound when the bin does not exist; store failures propagate
    as StoreUnavailable.
    """
    timestamp = now()
    status = request.status.value
    history_record = {
        "id": _new_id(),
        "binId": request.bin_id,
        "status": status,
        "timestamp": timestamp,
    }

    with ThreadPoolExecutor(max_workers=2) as pool:
        bin_future = pool.submit(store.update_bin_status, request.bin_id, status, timestamp)
        history_future = pool.submit(store.append_status_history, history_record)
        # Wait for both before inspecting either, so neither write is abandoned.
        bin_exc = bin_future.exception()
        history_exc = history_future.exception()

    if bin_exc is not None:
        raise bin_exc
    if history_exc is not None:
        raise history_exc

    updated = bin_future.result()
    if updated is None:
        raise NotFound("Bin not found")

    logger.info("bin %s reported %s at %s", request.bin_id, status, timestamp)
    return updated


def _bin_id_from_event(event: Dict[str, Any]) -> Optional[str]:
    bin_id = _path_param(event, "id")
    if bin_id:
        return bin_id
    _, path = _path_method(event)
    match = _STATUS_PATH.search(path)
    return match.group(1) if match else None


def handle_event(event: Dict[str, Any], store: Optional[BinStore] = None) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _no_content()
    if method != "PUT":
        return _error(405, f"Unsupported route: {method} {path}")

    try:
        request = StatusUpdateRequest.parse(_bin_id_from_event(event), _parse_body(event))
    except InvalidRequest as exc:
        return _error(400, str(exc))

    try:
        updated = handle_status_update(store or _get_store(), request)
    except NotFound as exc:
        logger.warning("status report for unknown bin %s", request.bin_id)
        return _error(404, str(exc))
    except Exception as exc:
        logger.exception("Error updating bin status for %s", request.bin_id)
        return _error(500, "Error updating bin status", error=str(exc))

    return _response(200, updated)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_event(event)
