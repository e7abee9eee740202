"""ecoscan_shared.models — Status enumeration and validated request shapes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set

from ecoscan_shared import config
from ecoscan_shared.errors import InvalidRequest
from ecoscan_shared.serialization import _new_id

BIN_ID_REQUIRED = "Bin ID is required"
INVALID_STATUS = "Status must be either OK or FULL"


class BinStatus(str, Enum):
    OK = "OK"
    FULL = "FULL"

    @classmethod
    def parse(cls, raw: Any) -> "BinStatus":
        # Case-sensitive: "ok" is rejected.
        if not isinstance(raw, str):
            raise InvalidRequest(INVALID_STATUS)
        try:
            return cls(raw)
        except ValueError:
            raise InvalidRequest(INVALID_STATUS) from None


_STATUS_BODY_FIELDS = {"id", "status"}


@dataclass(frozen=True)
class StatusUpdateRequest:
    bin_id: str
    status: BinStatus

    @classmethod
    def parse(cls, path_bin_id: Optional[str], body: Any) -> "StatusUpdateRequest":
        """Validate a status report before any store access.

        ``body`` is the decoded JSON body (None when it failed to decode).
        The bin id comes from the path; an ``id`` in the body is only
        accepted when the path carries none or the two agree.
        """
        body_id = body.get("id") if isinstance(body, dict) else None
        bin_id = (path_bin_id or "").strip()
        if body_id is not None:
            body_id = str(body_id).strip()
            if bin_id and body_id and body_id != bin_id:
                raise InvalidRequest("Bin ID does not match request path")
            bin_id = bin_id or body_id
        if not bin_id:
            raise InvalidRequest(BIN_ID_REQUIRED)

        if not isinstance(body, dict) or set(body) - _STATUS_BODY_FIELDS:
            raise InvalidRequest(INVALID_STATUS)
        return cls(bin_id=bin_id, status=BinStatus.parse(body.get("status")))


# ---------------------------------------------------------------------------
# Admin payload validation
# ---------------------------------------------------------------------------

MAX_NAME_LENGTH = 200
MAX_ADDRESS_LENGTH = 500


def _required_str(body: Dict[str, Any], field: str, max_len: int = MAX_NAME_LENGTH) -> str:
    value = body.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"{field} is required")
    value = value.strip()
    if len(value) > max_len:
        raise InvalidRequest(f"{field} must be at most {max_len} characters")
    return value


def _coordinate(body: Dict[str, Any], field: str, bound: float) -> float:
    value = body.get(field)
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequest(f"{field} must be a number")
    if not -bound <= value <= bound:
        raise InvalidRequest(f"{field} must be between -{bound:g} and {bound:g}")
    return float(value)


def _reject_fields(body: Dict[str, Any], allowed: Set[str]) -> None:
    unknown = sorted(set(body) - allowed)
    if unknown:
        raise InvalidRequest(f"Unsupported field(s): {', '.join(unknown)}")


def _object_body(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return body


def parse_location(body: Any, *, partial: bool = False) -> Dict[str, Any]:
    """Validate a location payload; ``partial`` allows any subset of fields."""
    body = _object_body(body)
    _reject_fields(body, {"name", "address", "latitude", "longitude"})
    out: Dict[str, Any] = {}
    if not partial or "name" in body:
        out["name"] = _required_str(body, "name")
    if not partial or "address" in body:
        out["address"] = _required_str(body, "address", MAX_ADDRESS_LENGTH)
    if not partial or "latitude" in body:
        out["latitude"] = _coordinate(body, "latitude", 90)
    if not partial or "longitude" in body:
        out["longitude"] = _coordinate(body, "longitude", 180)
    if partial and not out:
        raise InvalidRequest("No updatable fields supplied")
    return out


_READ_ONLY_BIN_FIELDS = {"id", "status", "lastUpdated", "qrCodeId", "createdAt", "updatedAt"}


def parse_bin(body: Any, *, partial: bool = False) -> Dict[str, Any]:
    """Validate a bin payload from the admin dashboard.

    Status only changes through the status report route; the other server
    managed fields are rejected by name so the dashboard gets a clear error.
    """
    body = _object_body(body)
    read_only = sorted(set(body) & _READ_ONLY_BIN_FIELDS)
    if read_only:
        raise InvalidRequest(f"Field(s) cannot be edited: {', '.join(read_only)}")
    _reject_fields(body, {"name", "locationId"})
    out: Dict[str, Any] = {}
    if not partial or "name" in body:
        out["name"] = _required_str(body, "name")
    if not partial or "locationId" in body:
        out["locationId"] = _required_str(body, "locationId")
    if partial and not out:
        raise InvalidRequest("No updatable fields supplied")
    return out


def qr_code_record(bin_id: str, created_at: str, qr_id: Optional[str] = None) -> Dict[str, Any]:
    """QR code record pointing at the public status page of ``bin_id``."""
    return {
        "id": qr_id or _new_id(),
        "url": f"{config.PUBLIC_APP_URL}/bin/{bin_id}",
        "binId": bin_id,
        "createdAt": created_at,
    }
