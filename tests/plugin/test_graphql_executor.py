import json

import httpx
import pytest

from gqltask.core.config import get_settings
from gqltask.core.errors import ErrorKind, HttpStatusError, SecretError, TemplateError
from gqltask.core.secret import SecretCipher, generate_key
from gqltask.tools.graphql import executor as executor_module
from gqltask.tools.graphql import execute_graphql_task, execute_graphql_task_result


GET_USER = "query GetUser($id: ID!) { user(id: $id) { name email } }"
USER = {"data": {"user": {"name": "admin", "email": "admin@example.com"}}}


def _client(body=USER, status_code=200, captured=None):
    def handler(request):
        if captured is not None:
            captured.append(request)
        if isinstance(body, Exception):
            raise body
        return httpx.Response(status_code, json=body)
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def scoped_clients(monkeypatch):
    """Replace httpx.Client in the executor with one backed by a mock transport."""
    state = {"body": USER, "status_code": 200, "instances": []}
    real_client = httpx.Client

    class RecordingClient(real_client):
        def __init__(self, **kwargs):
            state["kwargs"] = kwargs
            kwargs["transport"] = httpx.MockTransport(
                lambda request: httpx.Response(state["status_code"], json=state["body"])
            )
            super().__init__(**kwargs)
            state["instances"].append(self)

    monkeypatch.setattr(executor_module.httpx, "Client", RecordingClient)
    return state


@pytest.fixture
def encryption_key(monkeypatch):
    key = generate_key()
    monkeypatch.setenv("GQLTASK_ENCRYPTION_KEY", key)
    get_settings(reload=True)
    yield key
    monkeypatch.delenv("GQLTASK_ENCRYPTION_KEY", raising=False)
    get_settings(reload=True)


def test_basic_query_sends_graphql_payload():
    captured = []
    config = {"uri": "http://h/graphql", "query": GET_USER, "variables": {"id": "123"}}

    output = execute_graphql_task(config, client=_client(captured=captured))

    assert output.to_output()["code"] == 200
    assert output.body == USER["data"]
    assert output.error is None
    assert output.encrypted_body is None

    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "http://h/graphql"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"query": GET_USER, "variables": {"id": "123"}}


def test_templates_are_rendered_from_context():
    captured = []
    config = {
        "uri": "http://{{ host }}/graphql",
        "query": GET_USER,
        "variables": {"id": "{{ user.id }}"},
        "operationName": "GetUser",
        "headers": {"Authorization": "Bearer {{ token }}"},
    }
    context = {"host": "api.local", "user": {"id": 5}, "token": "abc"}

    execute_graphql_task(config, context, client=_client(captured=captured))

    request = captured[0]
    assert request.url.host == "api.local"
    assert request.headers["authorization"] == "Bearer abc"
    assert json.loads(request.content) == {
        "query": GET_USER,
        "variables": {"id": 5},
        "operationName": "GetUser",
    }


def test_missing_query_fails_before_any_request():
    captured = []
    with pytest.raises(TemplateError):
        execute_graphql_task({"uri": "http://h/graphql"}, client=_client(captured=captured))
    assert captured == []


def test_graphql_errors_kept_by_default():
    body = {
        "data": {"users": [{"name": "admin"}, None]},
        "errors": [{"message": "User with ID 2 not found", "path": ["users", 1]}],
    }
    output = execute_graphql_task(
        {"uri": "http://h/graphql", "query": "query { users { name } }"},
        client=_client(body=body),
    )
    assert output.body is not None
    assert output.error == body["errors"]


def test_status_error_raises_with_classification():
    with pytest.raises(HttpStatusError) as exc:
        execute_graphql_task(
            {"uri": "http://h/graphql", "query": "{ a }"},
            client=_client(body={"errors": [{"message": "boom"}]}, status_code=503),
        )
    assert exc.value.status_code == 503
    assert exc.value.info.kind == ErrorKind.SERVER_ERROR
    assert exc.value.info.retryable is True


def test_allow_failed_processes_error_status():
    output = execute_graphql_task(
        {"uri": "http://h/graphql", "query": "{ a }", "allowFailed": True},
        client=_client(body={"errors": [{"message": "bad query"}]}, status_code=400),
    )
    assert output.code == 400
    assert output.error == [{"message": "bad query"}]
    assert output.body is None


def test_transport_timeout_propagates_unmodified():
    timeout = httpx.ReadTimeout("timed out")
    with pytest.raises(httpx.ReadTimeout):
        execute_graphql_task({"uri": "http://h/graphql", "query": "{ a }"}, client=_client(body=timeout))


def test_encrypt_body_with_explicit_cipher():
    cipher = SecretCipher(generate_key())
    body = {"data": {"sensitiveData": "secret information"}}
    output = execute_graphql_task(
        {"uri": "http://h/graphql", "query": "query { sensitiveData }", "encryptBody": True},
        cipher=cipher,
        client=_client(body=body),
    )
    assert output.code == 200
    assert output.body is None
    assert output.encrypted_body is not None
    assert json.loads(cipher.decrypt(output.encrypted_body)) == body


def test_encrypt_body_uses_configured_key(encryption_key):
    output = execute_graphql_task(
        {"uri": "http://h/graphql", "query": "query { sensitiveData }", "encryptBody": "{{ secure }}"},
        {"secure": True},
        client=_client(body={"data": {"sensitiveData": "secret information"}}),
    )
    assert output.body is None
    assert "secret information" in SecretCipher(encryption_key).decrypt(output.encrypted_body)


def test_encrypt_body_without_key_fails(monkeypatch):
    monkeypatch.delenv("GQLTASK_ENCRYPTION_KEY", raising=False)
    get_settings(reload=True)
    with pytest.raises(SecretError):
        execute_graphql_task(
            {"uri": "http://h/graphql", "query": "{ a }", "encryptBody": True},
            client=_client(body={"data": {"a": 1}}),
        )


def test_scoped_client_is_closed_after_success(scoped_clients):
    output = execute_graphql_task({"uri": "http://h/graphql", "query": GET_USER, "timeout": 5})

    assert output.body == USER["data"]
    client = scoped_clients["instances"][0]
    assert client.is_closed
    assert client.timeout.read == 5
    assert scoped_clients["kwargs"]["follow_redirects"] is True


def test_scoped_client_is_closed_after_failure(scoped_clients):
    scoped_clients["status_code"] = 500
    with pytest.raises(HttpStatusError):
        execute_graphql_task({"uri": "http://h/graphql", "query": GET_USER})
    assert scoped_clients["instances"][0].is_closed


def test_scoped_client_uses_settings_timeout(scoped_clients, monkeypatch):
    monkeypatch.setenv("GQLTASK_HTTP_TIMEOUT", "12")
    get_settings(reload=True)
    try:
        execute_graphql_task({"uri": "http://h/graphql", "query": GET_USER})
    finally:
        monkeypatch.delenv("GQLTASK_HTTP_TIMEOUT")
        get_settings(reload=True)
    assert scoped_clients["instances"][0].timeout.read == 12


def test_result_envelope_success():
    result = execute_graphql_task_result(
        {"uri": "http://h/graphql", "query": GET_USER}, client=_client()
    )
    assert result["status"] == "success"
    assert result["data"]["body"] == USER["data"]
    assert set(result["data"]) == {"uri", "code", "headers", "body", "error", "encryptedBody"}


def test_result_envelope_error():
    result = execute_graphql_task_result({"uri": "http://h/graphql", "query": "{{ missing }}"})
    assert result["status"] == "error"
    assert result["error_info"]["kind"] == "template"
    assert "missing" in result["error"]


def test_result_envelope_connection_error():
    result = execute_graphql_task_result(
        {"uri": "http://h/graphql", "query": "{ a }"},
        client=_client(body=httpx.ConnectError("connection refused")),
    )
    assert result["status"] == "error"
    assert result["error_info"]["kind"] == "connection"
    assert result["error_info"]["retryable"] is True


def test_result_id_matches_logging_context(monkeypatch):
    bound = []
    real_context = executor_module.LoggingContext

    def recording_context(**fields):
        bound.append(fields)
        return real_context(**fields)

    monkeypatch.setattr(executor_module, "LoggingContext", recording_context)
    result = execute_graphql_task_result(
        {"uri": "http://h/graphql", "query": GET_USER}, client=_client()
    )
    assert bound and all(fields["task_id"] == result["id"] for fields in bound)


def test_result_keeps_caller_task_id():
    result = execute_graphql_task_result(
        {"uri": "http://h/graphql", "query": "{{ missing }}"}, task_id="task-42"
    )
    assert result["id"] == "task-42"


def test_unsupported_scheme_is_uri_error_not_connection_error():
    result = execute_graphql_task_result({"uri": "ftp://h/graphql", "query": "{ a }"})
    assert result["status"] == "error"
    assert result["error_info"]["kind"] == "schema"
    assert result["error_info"]["retryable"] is False
