import json

import pytest
from typer.testing import CliRunner

from gqltask import cli as cli_module
from gqltask.core.errors import GraphQLError
from gqltask.core.secret import SecretCipher, generate_key
from gqltask.tools.graphql.models import OutputEnvelope


runner = CliRunner()


@pytest.fixture
def captured(monkeypatch):
    calls = []

    def fake_execute(config, context):
        calls.append((config, context))
        return OutputEnvelope(uri=config.uri, code=200, headers={}, body={"ok": True})

    monkeypatch.setattr(cli_module, "execute_graphql_task", fake_execute)
    return calls


def test_request_command_builds_config(captured):
    result = runner.invoke(cli_module.cli_app, [
        "request", "http://h/graphql",
        "--query", "query GetUser($id: ID!) { user(id: $id) { name } }",
        "--var", "id=123",
        "--header", "Authorization: Bearer abc",
        "--header", "X-Trace: 1",
        "--operation-name", "GetUser",
        "--fail-on-errors",
    ])
    assert result.exit_code == 0, result.output
    config, context = captured[0]
    assert config.variables == {"id": "123"}
    assert config.headers == {"Authorization": ["Bearer abc"], "X-Trace": ["1"]}
    assert config.operation_name == "GetUser"
    assert config.fail_on_errors is True
    assert config.encrypt_body is False
    assert context == {}
    assert json.loads(result.stdout)["body"] == {"ok": True}


def test_request_command_merges_vars_json(captured):
    result = runner.invoke(cli_module.cli_app, [
        "request", "http://h/graphql", "-q", "{ a }",
        "--vars-json", '{"input": {"n": 1}, "id": "1"}', "--var", "id=2",
    ])
    assert result.exit_code == 0, result.output
    assert captured[0][0].variables == {"input": {"n": 1}, "id": "2"}


def test_request_command_rejects_bad_var(captured):
    result = runner.invoke(cli_module.cli_app, ["request", "http://h/graphql", "-q", "{ a }", "--var", "novalue"])
    assert result.exit_code != 0
    assert captured == []


def test_request_command_reports_task_error(monkeypatch):
    def failing(config, context):
        raise GraphQLError([{"message": "nope"}], '[{"message": "nope"}]')

    monkeypatch.setattr(cli_module, "execute_graphql_task", failing)
    result = runner.invoke(cli_module.cli_app, ["request", "http://h/graphql", "-q", "{ a }"])
    assert result.exit_code == 1
    assert "GRAPHQL_ERRORS" in result.output


def test_run_command_loads_task_and_context(tmp_path, captured):
    task_file = tmp_path / "task.yaml"
    task_file.write_text(
        "uri: https://{{ host }}/graphql\n"
        "query: |\n"
        "  query { users { name } }\n"
        "failOnErrors: true\n"
        "headers:\n"
        "  Accept: application/json\n"
    )
    context_file = tmp_path / "context.yaml"
    context_file.write_text("host: api.example.com\n")

    result = runner.invoke(cli_module.cli_app, ["run", str(task_file), "--context", str(context_file)])

    assert result.exit_code == 0, result.output
    config, context = captured[0]
    assert config.uri == "https://{{ host }}/graphql"
    assert config.fail_on_errors is True
    assert context == {"host": "api.example.com"}


def test_run_command_rejects_unknown_keys(tmp_path, captured):
    task_file = tmp_path / "task.yaml"
    task_file.write_text("uri: http://h/graphql\nquery: '{ a }'\nretries: 3\n")
    result = runner.invoke(cli_module.cli_app, ["run", str(task_file)])
    assert result.exit_code == 1
    assert "Invalid task definition" in result.output
    assert captured == []


def test_secret_generate_and_decrypt():
    result = runner.invoke(cli_module.cli_app, ["secret", "generate-key"])
    assert result.exit_code == 0
    key = result.stdout.strip()

    token = SecretCipher(key).encrypt('{"data": {"x": 1}}')
    result = runner.invoke(cli_module.cli_app, ["secret", "decrypt", token.model_dump_json(), "--key", key])
    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == '{"data": {"x": 1}}'


def test_secret_decrypt_with_wrong_key():
    token = SecretCipher(generate_key()).encrypt("x")
    result = runner.invoke(cli_module.cli_app, ["secret", "decrypt", token.value, "--key", generate_key()])
    assert result.exit_code == 1
