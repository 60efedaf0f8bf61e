from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import requests

from cloudstack_node.config.runtime import CollectorSettings

logger = logging.getLogger(__name__)


class CloudStackAPIError(RuntimeError):
    """Transport, auth or payload failure talking to the CloudStack API."""

    def __init__(self, message: str, *, command: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.command = command
        self.status_code = status_code


class CloudStackAPI(Protocol):
    def list_events(self, domain_id: str | None, start_date: str | None = None) -> list[dict[str, Any]]: ...

    def list_virtual_machines(self, domain_id: str | None) -> list[dict[str, Any]]: ...

    def list_volumes(self, domain_id: str | None) -> list[dict[str, Any]]: ...


def sign_params(params: dict[str, Any], secret_key: str) -> str:
    """CloudStack request signature: HMAC-SHA1 over the sorted, lowercased query."""
    query = "&".join(
        f"{key}={quote(str(params[key]), safe='*')}"
        for key in sorted(params, key=str.lower)
    )
    digest = hmac.new(secret_key.encode("utf-8"), query.lower().encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


@dataclass
class CloudStackClient:
    endpoint: str
    api_key: str
    secret_key: str
    verify_ssl: bool = True
    timeout_seconds: float = 30.0
    page_size: int = 500
    session: Any | None = None

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()

    @classmethod
    def from_settings(cls, settings: CollectorSettings, session: Any | None = None) -> "CloudStackClient":
        return cls(
            endpoint=settings.endpoint,
            api_key=settings.api_key,
            secret_key=settings.secret_key,
            verify_ssl=settings.ssl,
            timeout_seconds=settings.timeout_seconds,
            page_size=settings.page_size,
            session=session,
        )

    def list_events(self, domain_id: str | None, start_date: str | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {}
        if start_date is not None:
            params["startdate"] = start_date
        return self._list("listEvents", "event", domain_id, params)

    def list_virtual_machines(self, domain_id: str | None) -> list[dict[str, Any]]:
        return self._list("listVirtualMachines", "virtualmachine", domain_id)

    def list_volumes(self, domain_id: str | None) -> list[dict[str, Any]]:
        return self._list("listVolumes", "volume", domain_id)

    def _list(
        self,
        command: str,
        item_key: str,
        domain_id: str | None,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        base_params = dict(params or {})
        if domain_id is not None:
            base_params["domainid"] = domain_id

        items: list[dict[str, Any]] = []
        page = 1
        while True:
            body = self.request(command, {**base_params, "page": page, "pagesize": self.page_size})
            chunk = body.get(item_key) or []
            if not isinstance(chunk, list):
                raise CloudStackAPIError(f"{command}: '{item_key}' is not a list", command=command)
            items.extend(item for item in chunk if isinstance(item, dict))

            total = _as_int(body.get("count"))
            if len(chunk) < self.page_size or (total is not None and len(items) >= total):
                break
            page += 1

        items = _unique_by_id(items)
        logger.debug("%s domainid=%s returned %d items over %d page(s)", command, domain_id, len(items), page)
        return items

    def request(self, command: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue one signed API call and return the ``<command>response`` body."""
        query: dict[str, Any] = {
            key: value for key, value in (params or {}).items() if value is not None
        }
        query.update({"command": command, "response": "json", "apikey": self.api_key})
        query["signature"] = sign_params(query, self.secret_key)

        try:
            response = self.session.get(
                self.endpoint,
                params=query,
                timeout=self.timeout_seconds,
                verify=self.verify_ssl,
            )
        except requests.RequestException as exc:
            raise CloudStackAPIError(f"{command}: request failed: {exc}", command=command) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            raise CloudStackAPIError(
                f"{command}: HTTP {response.status_code}: {_error_text(payload) or response.text[:200]}",
                command=command,
                status_code=response.status_code,
            )
        if not isinstance(payload, dict):
            raise CloudStackAPIError(f"{command}: response is not a JSON object", command=command)

        body = payload.get(f"{command.lower()}response")
        if body is None:
            error = _error_text(payload)
            if error:
                raise CloudStackAPIError(f"{command}: {error}", command=command)
            raise CloudStackAPIError(f"{command}: missing '{command.lower()}response'", command=command)
        if not isinstance(body, dict):
            raise CloudStackAPIError(f"{command}: malformed response body", command=command)
        if "errortext" in body:
            raise CloudStackAPIError(f"{command}: {body['errortext']}", command=command)
        return body


def _error_text(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    for value in payload.values():
        if isinstance(value, dict) and value.get("errortext"):
            return str(value["errortext"])
    return None


def _unique_by_id(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # Listings shift when items are added between page requests.
    seen: set[str] = set()
    unique: list[dict[str, Any]] = []
    for item in items:
        item_id = item.get("id")
        if item_id is not None:
            if str(item_id) in seen:
                continue
            seen.add(str(item_id))
        unique.append(item)
    return unique


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
