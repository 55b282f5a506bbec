from __future__ import annotations

import hashlib
import xml.etree.ElementTree as ET
from typing import Callable, List

import httpx
import pytest
from tenacity import wait_none

from repqueue.client.aml import SERVER_PATH, SOAP_NS, AmlQueueClient
from repqueue.config import Credentials
from repqueue.domain.models import TXN_TYPE
from repqueue.errors import EmptyResult, ProtocolError, RemoteLogicError, TransportError

CREDENTIALS = Credentials(
    url="http://innovator.test/InnovatorServer/",
    database="TestDB",
    user="replicator",
    password="secret",
)


def _soap(inner: str) -> bytes:
    return (
        f'<SOAP-ENV:Envelope xmlns:SOAP-ENV="{SOAP_NS}">'
        f"<SOAP-ENV:Body>{inner}</SOAP-ENV:Body></SOAP-ENV:Envelope>"
    ).encode("utf-8")


def _fault(code: str, message: str) -> bytes:
    return _soap(
        f"<SOAP-ENV:Fault><faultcode>{code}</faultcode>"
        f"<faultstring>{message}</faultstring></SOAP-ENV:Fault>"
    )


class _Server:
    """Records requests and answers with a fixed handler."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []
        self._respond = respond

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    def payload(self, index: int = -1) -> ET.Element:
        root = ET.fromstring(self.requests[index].content)
        body = root.find(f"{{{SOAP_NS}}}Body")
        assert body is not None
        return body[0]


def _client(server: _Server) -> AmlQueueClient:
    return AmlQueueClient(CREDENTIALS, http_client=httpx.Client(transport=httpx.MockTransport(server)))


def _ok(content: bytes) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(200, content=content)


def test_process_batch_without_item_means_empty_queue() -> None:
    server = _Server(_ok(_soap("<Result/>")))

    result = _client(server).process_batch(10, 15)

    assert result.empty is True
    request = server.requests[0]
    assert request.url.path == "/InnovatorServer" + SERVER_PATH
    assert request.headers["SOAPACTION"] == "ProcessReplicationQueue"
    assert request.headers["AUTHUSER"] == "replicator"
    assert request.headers["AUTHPASSWORD"] == hashlib.md5(b"secret").hexdigest()
    assert request.headers["DATABASE"] == "TestDB"
    payload = server.payload()
    assert payload.tag == "Item"
    assert payload.get("max_batch") == "10"
    assert payload.get("max_pending") == "15"


def test_process_batch_parses_counts() -> None:
    server = _Server(
        _ok(_soap('<Result><Item processed="10" need_processing="15" locked_by_others="5"/></Result>'))
    )

    result = _client(server).process_batch(10, 15)

    assert result.empty is False
    assert (result.processed, result.need_processing, result.locked_by_others) == (10, 15, 5)
    assert result.remaining == 10


def test_process_batch_with_malformed_counts_is_protocol_error() -> None:
    server = _Server(_ok(_soap('<Result><Item processed="10" need_processing="many"/></Result>')))

    with pytest.raises(ProtocolError) as excinfo:
        _client(server).process_batch(10, 15)

    assert "ProcessReplicationQueue" in str(excinfo.value)


def test_connection_failure_on_batch_is_not_retried() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    server = _Server(refuse)

    with pytest.raises(TransportError) as excinfo:
        _client(server).process_batch(10, 15)

    assert len(server.requests) == 1
    assert excinfo.value.params == {"max_batch": 10, "max_pending": 15}


def test_query_by_type_returns_records() -> None:
    server = _Server(
        _ok(
            _soap(
                "<Result>"
                '<Item type="ReplicationTxn" id="A1"><replication_status>Completed</replication_status></Item>'
                '<Item type="ReplicationTxn" id="A2"><replication_status>Pending</replication_status></Item>'
                '<Item type="ReplicationTxn" id="A3"/>'
                "</Result>"
            )
        )
    )

    records = _client(server).query_by_type(TXN_TYPE)

    assert [r.id for r in records] == ["A1", "A2", "A3"]
    assert [r.status for r in records] == ["Completed", "Pending", None]
    payload = server.payload()
    assert payload.get("type") == TXN_TYPE
    assert payload.get("action") == "get"
    assert server.requests[0].headers["SOAPACTION"] == "ApplyItem"


def test_fault_code_zero_is_empty_result() -> None:
    server = _Server(_ok(_fault("0", "No items of type ReplicationTxn found.")))

    with pytest.raises(EmptyResult) as excinfo:
        _client(server).query_by_type(TXN_TYPE)

    assert excinfo.value.code == "0"


def test_other_fault_is_remote_logic_error() -> None:
    server = _Server(
        lambda request: httpx.Response(500, content=_fault("SOAP-ENV:Server", "Invalid AML"))
    )

    with pytest.raises(RemoteLogicError) as excinfo:
        _client(server).query_by_type(TXN_TYPE)

    assert excinfo.value.code == "SOAP-ENV:Server"
    assert "Invalid AML" in str(excinfo.value)
    assert "type='ReplicationTxn'" in str(excinfo.value)


def test_http_error_without_soap_body_is_transport_error() -> None:
    server = _Server(lambda request: httpx.Response(503, content=b"<html>down</html"))

    with pytest.raises(TransportError) as excinfo:
        _client(server).query_by_type(TXN_TYPE)

    assert excinfo.value.code == "503"


def test_unparseable_success_response_is_protocol_error() -> None:
    server = _Server(_ok(b"this is not xml"))

    with pytest.raises(ProtocolError):
        _client(server).process_batch(1, 1)


def test_response_without_soap_body_is_protocol_error() -> None:
    server = _Server(_ok(b"<Result/>"))

    with pytest.raises(ProtocolError):
        _client(server).query_by_type(TXN_TYPE)


def test_read_queries_are_retried_on_connection_failures() -> None:
    attempts = []

    def flaky(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, content=_soap('<Result><Item id="A1"/></Result>'))

    client = _client(_Server(flaky))
    query = AmlQueueClient.query_by_type.retry_with(wait=wait_none())

    records = query(client, TXN_TYPE)

    assert len(attempts) == 3
    assert [r.id for r in records] == ["A1"]


def test_server_faults_are_not_retried() -> None:
    server = _Server(_ok(_fault("SOAP-ENV:Server", "Invalid AML")))
    client = _client(server)
    query = AmlQueueClient.query_by_type.retry_with(wait=wait_none())

    with pytest.raises(RemoteLogicError):
        query(client, TXN_TYPE)

    assert len(server.requests) == 1


def test_create_transaction_sends_replicate_request() -> None:
    server = _Server(_ok(_soap('<Result><Item type="File" id="F1"/></Result>')))

    response = _client(server).create_transaction("F1", "VAULT1")

    assert response is not None and response.id == "F1"
    payload = server.payload()
    assert payload.get("type") == "File"
    assert payload.get("action") == "replicate"
    assert payload.get("id") == "F1"
    vault = payload.find("./Relationships/Item/related_id/Item")
    assert vault is not None
    assert vault.get("type") == "Vault"
    assert vault.get("id") == "VAULT1"


def test_find_records_filters_by_filename_and_vault() -> None:
    server = _Server(
        _ok(
            _soap(
                "<Result>"
                '<Item type="File" id="F1"><filename>file0001.txt</filename>'
                '<Relationships><Item type="Located" id="L1"/></Relationships></Item>'
                "</Result>"
            )
        )
    )

    records = _client(server).find_records("file*", "VAULT1")

    assert [(r.id, r.name) for r in records] == [("F1", "file0001.txt")]
    payload = server.payload()
    assert payload.findtext("filename") == "file*"
    assert payload.find("filename").get("condition") == "like"
    assert payload.findtext("./Relationships/Item/related_id") == "VAULT1"


def test_find_vault_id() -> None:
    server = _Server(_ok(_soap('<Result><Item type="Vault" id="VAULT1"/></Result>')))

    assert _client(server).find_vault_id("Default") == "VAULT1"
    assert server.payload().findtext("name") == "Default"


def test_purge_deletes_every_item_of_type() -> None:
    server = _Server(_ok(_soap("<Result/>")))

    _client(server).purge(TXN_TYPE)

    payload = server.payload()
    assert payload.get("action") == "delete"
    assert payload.get("where") == "id like '%'"


def test_login_success_and_refusal() -> None:
    ok = _Server(_ok(_soap("<Result><id>USER1</id></Result>")))
    _client(ok).login()
    assert ok.requests[0].headers["SOAPACTION"] == "ValidateUser"

    refused = _Server(_ok(_fault("SOAP-ENV:Server.Authentication", "Authentication failed")))
    with pytest.raises(TransportError):
        _client(refused).login()
    assert len(refused.requests) == 1
