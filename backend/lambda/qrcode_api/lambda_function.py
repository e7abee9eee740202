"""qrcode_api/lambda_function.py

Lambda API for QR code records. The QR image itself is rendered in the
browser from the record's ``url``; only the record lives here.

Routes (via API Gateway proxy, all admin):
    GET     /qrcodes
    GET     /qrcodes/{id}
    POST    /qrcodes               body: {"binId": "..."}
    DELETE  /qrcodes/{id}
    OPTIONS /qrcodes*

POST issues a fresh QR record for an existing bin and points the bin's
``qrCodeId`` at it (e.g. after a sticker was damaged). Deleting the QR code
a bin currently points at clears that bin's ``qrCodeId``.

Environment variables:
    QR_CODES_TABLE            default: ecoscan-qrcodes
    BINS_TABLE                default: ecoscan-bins
    PUBLIC_APP_URL            default: https://ecoscan.example.com
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from ecoscan_shared.auth import _authenticate
from ecoscan_shared.config import configure_logging
from ecoscan_shared.errors import InvalidRequest, NotFound, StoreUnavailable
from ecoscan_shared.http_utils import _error, _no_content, _parse_body, _path_method, _response
from ecoscan_shared.models import qr_code_record
from ecoscan_shared.serialization import _now_iso
from ecoscan_shared.store import BinStore, QRCodeStore, bin_store, qr_code_store

logger = configure_logging()

_QRCODES_PATH = re.compile(r"/qrcodes/?$")
_QRCODE_PATH = re.compile(r"/qrcodes/([^/]+)/?$")

_stores: Optional[Dict[str, Any]] = None


def _get_stores() -> Dict[str, Any]:
    global _stores
    if _stores is None:
        _stores = {"qrcodes": qr_code_store(), "bins": bin_store()}
    return _stores


def generate_qr_code(qrcodes: QRCodeStore, bins: BinStore, body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise InvalidRequest("Request body must be a JSON object")
    bin_id = body.get("binId")
    if not isinstance(bin_id, str) or not bin_id.strip():
        raise InvalidRequest("binId is required")
    bin_id = bin_id.strip()
    if bins.get_bin(bin_id) is None:
        raise NotFound("Bin not found")

    now = _now_iso()
    qr = qr_code_record(bin_id, now)
    if not qrcodes.put_new(qr):
        raise StoreUnavailable(f"QR code id collision: {qr['id']}")
    if bins.update_bin(bin_id, {"qrCodeId": qr["id"], "updatedAt": now}) is None:
        # Bin deleted between the read and the re-link.
        qrcodes.delete(qr["id"])
        raise NotFound("Bin not found")
    logger.info("issued QR code %s for bin %s", qr["id"], bin_id)
    return qr


def get_qr_code(qrcodes: QRCodeStore, qr_id: str) -> Dict[str, Any]:
    item = qrcodes.get(qr_id)
    if item is None:
        raise NotFound("QR code not found")
    return item


def remove_qr_code(qrcodes: QRCodeStore, bins: BinStore, qr_id: str) -> None:
    qr = get_qr_code(qrcodes, qr_id)
    if not qrcodes.delete(qr_id):
        raise NotFound("QR code not found")
    owner = bins.get_bin(qr["binId"])
    if owner is not None and owner.get("qrCodeId") == qr_id:
        bins.update_bin(owner["id"], {"qrCodeId": "", "updatedAt": _now_iso()})


def _route(event: Dict[str, Any], stores: Dict[str, Any]) -> Dict[str, Any]:
    method, path = _path_method(event)
    qrcodes: QRCodeStore = stores["qrcodes"]
    match = _QRCODE_PATH.search(path)

    _claims, auth_err = _authenticate(event)
    if auth_err:
        return auth_err

    if method == "GET" and _QRCODES_PATH.search(path):
        return _response(200, qrcodes.scan())
    if method == "GET" and match:
        return _response(200, get_qr_code(qrcodes, match.group(1)))
    if method == "POST" and _QRCODES_PATH.search(path):
        return _response(201, generate_qr_code(qrcodes, stores["bins"], _parse_body(event)))
    if method == "DELETE" and match:
        remove_qr_code(qrcodes, stores["bins"], match.group(1))
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
        logger.exception("qrcode_api %s %s failed", method, path)
        return _error(500, "Error processing QR code request", error=str(exc))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_event(event)
