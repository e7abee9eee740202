"""location_api/lambda_function.py

Lambda API for bin locations shown on the dashboard map.

Routes (via API Gateway proxy):
    GET     /locations             public
    GET     /locations/{id}        public
    POST    /locations             admin
    PUT     /locations/{id}        admin
    DELETE  /locations/{id}        admin, 409 while bins still reference it
    OPTIONS /locations*

Environment variables:
    LOCATIONS_TABLE           default: ecoscan-locations
    BINS_TABLE                default: ecoscan-bins
    COGNITO_USER_POOL_ID      default: ""
    COGNITO_CLIENT_ID         default: ""
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from ecoscan_shared.auth import _authenticate
from ecoscan_shared.config import configure_logging
from ecoscan_shared.errors import Conflict, InvalidRequest, NotFound, StoreUnavailable
from ecoscan_shared.http_utils import _error, _no_content, _parse_body, _path_method, _response
from ecoscan_shared.models import parse_location
from ecoscan_shared.serialization import _new_id, _now_iso
from ecoscan_shared.store import BinStore, LocationStore, bin_store, location_store

logger = configure_logging()

_LOCATIONS_PATH = re.compile(r"/locations/?$")
_LOCATION_PATH = re.compile(r"/locations/([^/]+)/?$")

_stores: Optional[Dict[str, Any]] = None


def _get_stores() -> Dict[str, Any]:
    global _stores
    if _stores is None:
        _stores = {"locations": location_store(), "bins": bin_store()}
    return _stores


def create_location(locations: LocationStore, body: Any) -> Dict[str, Any]:
    fields = parse_location(body)
    now = _now_iso()
    item = {"id": _new_id(), **fields, "createdAt": now, "updatedAt": now}
    if not locations.put_new(item):
        raise StoreUnavailable(f"Location id collision: {item['id']}")
    logger.info("created location %s (%s)", item["id"], item["name"])
    return item


def get_location(locations: LocationStore, location_id: str) -> Dict[str, Any]:
    item = locations.get(location_id)
    if item is None:
        raise NotFound("Location not found")
    return item


def edit_location(locations: LocationStore, location_id: str, body: Any) -> Dict[str, Any]:
    fields = parse_location(body, partial=True)
    fields["updatedAt"] = _now_iso()
    updated = locations.update(location_id, fields)
    if updated is None:
        raise NotFound("Location not found")
    return updated


def remove_location(locations: LocationStore, bins: BinStore, location_id: str) -> None:
    in_use = bins.list_bins(location_id)
    if in_use:
        raise Conflict(f"Location still has {len(in_use)} bin(s); move or delete them first")
    if not locations.delete(location_id):
        raise NotFound("Location not found")
    logger.info("deleted location %s", location_id)


def _route(event: Dict[str, Any], stores: Dict[str, Any]) -> Dict[str, Any]:
    method, path = _path_method(event)
    locations: LocationStore = stores["locations"]
    match = _LOCATION_PATH.search(path)

    if method == "GET" and _LOCATIONS_PATH.search(path):
        return _response(200, locations.scan())
    if method == "GET" and match:
        return _response(200, get_location(locations, match.group(1)))

    if method not in ("POST", "PUT", "DELETE"):
        return _error(404, f"Unsupported route: {method} {path}")

    _claims, auth_err = _authenticate(event)
    if auth_err:
        return auth_err

    if method == "POST" and _LOCATIONS_PATH.search(path):
        return _response(201, create_location(locations, _parse_body(event)))
    if method == "PUT" and match:
        return _response(200, edit_location(locations, match.group(1), _parse_body(event)))
    if method == "DELETE" and match:
        remove_location(locations, stores["bins"], match.group(1))
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
    except Conflict as exc:
        return _error(409, str(exc))
    except Exception as exc:
        logger.exception("location_api %s %s failed", method, path)
        return _error(500, "Error processing location request", error=str(exc))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_event(event)
