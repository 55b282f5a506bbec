"""
Innovator implementation of `RemoteQueueClient`.

Requests are AML items wrapped in a SOAP envelope and POSTed to
`<url>/Server/InnovatorServer.aspx`; the SOAPACTION header names the server
action (`ApplyItem`, `ProcessReplicationQueue`, `ValidateUser`, `Logoff`).
Responses carry either `<Result>` items or a SOAP fault. Faults are mapped
onto the `repqueue.errors` taxonomy:

- fault code "0"                 -> EmptyResult
- authentication faults, HTTP and connection failures -> TransportError
- any other fault                -> RemoteLogicError
- unparseable or unexpected XML  -> ProtocolError

Read-only requests are retried on connection failures with tenacity. Requests
with side effects (`process_batch`, `create_transaction`, `purge`) are never
retried: the server may already have acted on them.
"""

from __future__ import annotations

import hashlib
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from repqueue.config import Credentials
from repqueue.domain.models import BatchResult, Record
from repqueue.errors import (
    EMPTY_RESULT_CODE,
    EmptyResult,
    ProtocolError,
    RemoteLogicError,
    TransportError,
)
from repqueue.utils.logging import get_logger

log = get_logger(__name__)

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SERVER_PATH = "/Server/InnovatorServer.aspx"
PROCESS_QUEUE_ACTION = "ProcessReplicationQueue"

ET.register_namespace("SOAP-ENV", SOAP_NS)


def _is_connectivity_error(exc: BaseException) -> bool:
    """True when a TransportError was caused by the network, not by the server."""
    return isinstance(exc, TransportError) and isinstance(exc.__cause__, httpx.TransportError)


_retry_read = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_connectivity_error),
    reraise=True,
)


def _item(item_type: Optional[str] = None, action: Optional[str] = None, **attrs: str) -> ET.Element:
    element = ET.Element("Item")
    if item_type:
        element.set("type", item_type)
    if action:
        element.set("action", action)
    for key, value in attrs.items():
        element.set(key, value)
    return element


def _envelope(payload: ET.Element) -> bytes:
    envelope = ET.Element(f"{{{SOAP_NS}}}Envelope")
    body = ET.SubElement(envelope, f"{{{SOAP_NS}}}Body")
    body.append(payload)
    return ET.tostring(envelope, encoding="utf-8")


def _record_from_item(item: ET.Element) -> Record:
    properties: Dict[str, str] = {}
    for child in item:
        if len(child) == 0 and child.text is not None:
            properties[child.tag] = child.text
    item_id = item.get("id") or properties.get("id")
    if not item_id:
        raise ProtocolError(f"<Item type={item.get('type')!r}> without an id")
    return Record(
        id=item_id,
        status=properties.get("replication_status"),
        name=properties.get("filename") or properties.get("name") or item.get("keyed_name"),
        properties=properties,
    )


class AmlQueueClient:
    """
    AML-over-HTTP client bound to a single identity.

    Switching identity requires a new client; the session is never reused
    across users.
    """

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.credentials = credentials
        self._endpoint = credentials.url.rstrip("/") + SERVER_PATH
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout)
        self._password_hash = hashlib.md5(credentials.password.encode("utf-8")).hexdigest()

    def __enter__(self) -> "AmlQueueClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def _headers(self, action: str) -> Dict[str, str]:
        return {
            "SOAPACTION": action,
            "AUTHUSER": self.credentials.user,
            "AUTHPASSWORD": self._password_hash,
            "DATABASE": self.credentials.database,
            "Content-Type": "text/xml; charset=utf-8",
        }

    def _call(
        self,
        action: str,
        payload: ET.Element,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> ET.Element:
        """Send one request and return the SOAP body of a non-fault response."""
        log.debug(
            f"[AML] {operation}",
            extra={"action": action, "user": self.credentials.user, "params": params or {}},
        )
        try:
            response = self._http.post(
                self._endpoint, content=_envelope(payload), headers=self._headers(action)
            )
        except httpx.HTTPError as exc:
            raise TransportError(str(exc), operation=operation, params=params) from exc

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as exc:
            if response.is_error:
                raise TransportError(
                    f"HTTP {response.status_code} {response.reason_phrase}",
                    code=str(response.status_code),
                    operation=operation,
                    params=params,
                ) from exc
            raise ProtocolError(
                f"unparseable response: {exc}", operation=operation, params=params
            ) from exc

        body = root.find(f"{{{SOAP_NS}}}Body")
        if body is None:
            raise ProtocolError("response has no SOAP body", operation=operation, params=params)

        fault = body.find(f"{{{SOAP_NS}}}Fault")
        if fault is not None:
            code = (fault.findtext("faultcode") or "").strip()
            message = (fault.findtext("faultstring") or "").strip() or "server fault"
            if code == EMPTY_RESULT_CODE:
                raise EmptyResult(message, operation=operation, params=params)
            if "Authentication" in code or response.status_code in (401, 403):
                raise TransportError(message, code=code, operation=operation, params=params)
            raise RemoteLogicError(message, code=code, operation=operation, params=params)

        if response.is_error:
            raise TransportError(
                f"HTTP {response.status_code} {response.reason_phrase}",
                code=str(response.status_code),
                operation=operation,
                params=params,
            )
        return body

    def _apply(self, payload: ET.Element, operation: str, params: Dict[str, Any]) -> List[Record]:
        body = self._call("ApplyItem", payload, operation, params)
        result = body.find("Result")
        if result is None:
            return []
        return [_record_from_item(item) for item in result.findall("Item")]

    @_retry_read
    def login(self) -> None:
        """Validate the credentials; raises TransportError when refused."""
        operation = "ValidateUser"
        params = {"user": self.credentials.user, "database": self.credentials.database}
        try:
            self._call("ValidateUser", ET.Element("ValidateUser"), operation, params)
        except RemoteLogicError as exc:
            raise TransportError(
                f"Failed login to Innovator: {exc.message}",
                code=exc.code,
                operation=operation,
                params=params,
            ) from exc
        log.info(f"Logged in as user '{self.credentials.user}'")

    def logout(self) -> None:
        self._call("Logoff", ET.Element("logoff"), "Logoff", {"user": self.credentials.user})

    def process_batch(self, max_batch: int, max_pending: int) -> BatchResult:
        params = {"max_batch": max_batch, "max_pending": max_pending}
        payload = _item(max_batch=str(max_batch), max_pending=str(max_pending))
        body = self._call(PROCESS_QUEUE_ACTION, payload, PROCESS_QUEUE_ACTION, params)
        item = next(body.iter("Item"), None)
        if item is None:
            return BatchResult.empty_queue()
        return BatchResult.from_attributes(item.attrib, operation=PROCESS_QUEUE_ACTION)

    def create_transaction(self, record_id: str, target_id: str) -> Optional[Record]:
        payload = _item("File", "replicate", id=record_id)
        relationships = ET.SubElement(payload, "Relationships")
        located = ET.SubElement(relationships, "Item", {"type": "Located", "action": "get"})
        related = ET.SubElement(located, "related_id")
        ET.SubElement(related, "Item", {"type": "Vault", "id": target_id})
        records = self._apply(
            payload, "replicate", {"record_id": record_id, "target_id": target_id}
        )
        return records[0] if records else None

    @_retry_read
    def query_by_type(self, item_type: str) -> List[Record]:
        return self._apply(_item(item_type, "get"), "get", {"type": item_type})

    @_retry_read
    def find_vault_id(self, vault_name: str) -> str:
        payload = _item("Vault", "get", select="id")
        ET.SubElement(payload, "name").text = vault_name
        records = self._apply(payload, "get", {"type": "Vault", "vault": vault_name})
        if not records:
            raise EmptyResult(
                f"No vault named '{vault_name}'", operation="get", params={"type": "Vault"}
            )
        return records[0].id

    @_retry_read
    def find_records(self, name_pattern: str, vault_id: str) -> List[Record]:
        """Files whose filename matches `name_pattern` and that reside in vault `vault_id`."""
        payload = _item(
            "File", "get", levels="1", config_path="Located", select="id, filename"
        )
        ET.SubElement(payload, "filename", {"condition": "like"}).text = name_pattern
        relationships = ET.SubElement(payload, "Relationships")
        located = ET.SubElement(relationships, "Item", {"type": "Located", "action": "get"})
        ET.SubElement(located, "related_id").text = vault_id
        return self._apply(
            payload, "get", {"type": "File", "pattern": name_pattern, "vault_id": vault_id}
        )

    def purge(self, item_type: str) -> None:
        """Delete every item of `item_type`. Requires administrative rights."""
        payload = _item(item_type, "delete", where="id like '%'")
        self._apply(payload, "delete", {"type": item_type})


__all__ = ["AmlQueueClient", "PROCESS_QUEUE_ACTION", "SERVER_PATH", "SOAP_NS"]
