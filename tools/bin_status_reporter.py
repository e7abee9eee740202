#!/usr/bin/env python3
"""Report a bin's fill status the way the public QR status page does.

``BinStatusReporter`` holds the page state (loading / error / confirmation)
behind the two OK and FULL actions; ``EcoScanApiClient`` is the thin HTTP
client for the public bin endpoints. Run as a script to report from a
terminal:

    python3 tools/bin_status_reporter.py --api-url https://api.example.com --bin-id abc123 FULL
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import threading
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

STATUS_OK = "OK"
STATUS_FULL = "FULL"
CONFIRMATION_MESSAGE = "Thank you! Status has been updated successfully."
FALLBACK_ERROR = "Failed to update bin status"
DEFAULT_TIMEOUT_SECONDS = 10


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class EcoScanApiClient:
    def __init__(self, base_url: str, *, id_token: str = "", timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip("/")
        self.id_token = id_token
        self.timeout = timeout

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None, query: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"
        headers = {"Accept": "application/json"}
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        if self.id_token:
            headers["Authorization"] = f"Bearer {self.id_token}"

        req = urllib.request.Request(url, data=data, method=method, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            raise ApiError(exc.code, _error_message(exc)) from exc
        except urllib.error.URLError as exc:
            raise ApiError(0, f"Network error: {exc.reason}") from exc
        except OSError as exc:
            # Read timeouts after the connection is up are not wrapped in URLError.
            raise ApiError(0, f"Network error: {exc}") from exc
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise ApiError(0, "Invalid response from server") from exc

    def get_bin(self, bin_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/bins/{urllib.parse.quote(bin_id, safe='')}")

    def list_bins(self, location_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._request("GET", "/bins", query={"locationId": location_id} if location_id else None)

    def update_bin_status(self, bin_id: str, status: str) -> Dict[str, Any]:
        return self._request("PUT", f"/bins/{urllib.parse.quote(bin_id, safe='')}/status", body={"status": status})

    def list_status_updates(self, bin_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", "/status-updates", query={"binId": bin_id})


def _error_message(exc: urllib.error.HTTPError) -> str:
    try:
        payload = json.loads(exc.read().decode("utf-8", errors="replace") or "{}")
    except (ValueError, OSError):
        payload = {}
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"Request failed with status {exc.code}"


class BinStatusReporter:
    """State behind the OK / FULL buttons on the bin status page."""

    def __init__(
        self,
        api: EcoScanApiClient,
        bin: Dict[str, Any],
        on_status_updated: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.api = api
        self.bin = bin
        self.on_status_updated = on_status_updated
        self.loading = False
        self.error: Optional[str] = None
        self.success = False
        self._lock = threading.Lock()

    @property
    def confirmation(self) -> Optional[str]:
        return CONFIRMATION_MESSAGE if self.success else None

    def report_ok(self) -> bool:
        return self._report(STATUS_OK)

    def report_full(self) -> bool:
        return self._report(STATUS_FULL)

    def dismiss_confirmation(self) -> None:
        self.success = False

    def _report(self, status: str) -> bool:
        """Send one report. Returns False if ignored or failed."""
        with self._lock:
            if self.loading:
                return False
            self.loading = True
        self.error = None
        try:
            updated = self.api.update_bin_status(self.bin["id"], status)
        except ApiError as exc:
            logger.error("Error updating status for bin %s: %s", self.bin.get("id"), exc)
            self.error = exc.message or FALLBACK_ERROR
            return False
        except Exception as exc:
            logger.exception("Unexpected error updating status for bin %s", self.bin.get("id"))
            self.error = str(exc) or FALLBACK_ERROR
            return False
        finally:
            with self._lock:
                self.loading = False

        self.bin = updated
        self.success = True
        if self.on_status_updated is not None:
            self.on_status_updated(updated)
        return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Report an EcoScan bin as OK or FULL.")
    parser.add_argument("--api-url", default=os.environ.get("ECOSCAN_API_URL", ""))
    parser.add_argument("--bin-id", required=True)
    parser.add_argument("status", choices=(STATUS_OK, STATUS_FULL))
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.api_url:
        print("[ERROR] --api-url or ECOSCAN_API_URL is required")
        return 2

    reporter = BinStatusReporter(EcoScanApiClient(args.api_url), {"id": args.bin_id})
    action = reporter.report_full if args.status == STATUS_FULL else reporter.report_ok
    if not action():
        print(f"[ERROR] {reporter.error}")
        return 1
    print(f"[OK] {reporter.confirmation} ({args.bin_id} -> {reporter.bin.get('status')})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
