import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from gqltask.core.common import to_json
from gqltask.core.errors import TaskError
from gqltask.core.logger import setup_logger
from gqltask.core.secret import SecretCipher, generate_key
from gqltask.tools.graphql import TaskConfig, execute_graphql_task

logger = setup_logger(__name__, include_location=True)

cli_app = typer.Typer(help="Run templated GraphQL requests.")
secret_app = typer.Typer(help="Manage the response encryption key.")
cli_app.add_typer(secret_app, name="secret")


def _parse_vars(pairs: List[str]) -> Dict[str, str]:
    result = {}
    for pair in pairs:
        if "=" not in pair:
            raise typer.BadParameter(f"Expected KEY=VALUE, got '{pair}'", param_hint="--var")
        key, value = pair.split("=", 1)
        result[key.strip()] = value
    return result


def _parse_headers(values: List[str]) -> Dict[str, List[str]]:
    headers: Dict[str, List[str]] = {}
    for item in values:
        if ":" not in item:
            raise typer.BadParameter(f"Expected 'Name: value', got '{item}'", param_hint="--header")
        name, value = item.split(":", 1)
        headers.setdefault(name.strip(), []).append(value.strip())
    return headers


def _load_yaml(path: Path, what: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        typer.echo(f"Error reading {what} file: {e}", err=True)
        raise typer.Exit(code=1)


def _run(config: TaskConfig, context: Dict[str, Any]) -> None:
    try:
        output = execute_graphql_task(config, context)
    except TaskError as e:
        typer.echo(f"Task failed [{e.info.code}]: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        logger.error(f"CLI: task failed: {e}", exc_info=True)
        typer.echo(f"Task failed: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(to_json(output.to_output(), indent=2))


@cli_app.command("request")
def request_command(
    uri: str = typer.Argument(..., help="GraphQL endpoint (template)"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Query or mutation text (template)"),
    var: List[str] = typer.Option([], "--var", "-v", help="Variable as KEY=VALUE, repeatable"),
    vars_json: Optional[str] = typer.Option(None, "--vars-json", help="Variables as a JSON object"),
    header: List[str] = typer.Option([], "--header", "-H", help="Header as 'Name: value', repeatable"),
    operation_name: Optional[str] = typer.Option(None, "--operation-name", "-o", help="Operation to execute"),
    method: str = typer.Option("POST", "--method", "-X", help="HTTP method"),
    encrypt_body: bool = typer.Option(False, "--encrypt-body", help="Return the body as encryptedBody"),
    fail_on_errors: bool = typer.Option(False, "--fail-on-errors", help="Fail when the response has GraphQL errors"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Request timeout in seconds"),
    context_file: Optional[Path] = typer.Option(None, "--context", "-c", help="YAML file with template variables"),
):
    """
    Execute a single GraphQL request and print the output envelope.
    """
    variables: Optional[Dict[str, Any]] = None
    if vars_json:
        try:
            variables = json.loads(vars_json)
        except json.JSONDecodeError as e:
            typer.echo(f"Invalid JSON for --vars-json: {e}", err=True)
            raise typer.Exit(code=1)
        if not isinstance(variables, dict):
            typer.echo("--vars-json must be a JSON object", err=True)
            raise typer.Exit(code=1)
    if var:
        variables = {**(variables or {}), **_parse_vars(var)}

    config = TaskConfig(
        uri=uri,
        query=query,
        variables=variables,
        operation_name=operation_name,
        method=method,
        headers=_parse_headers(header),
        encrypt_body=encrypt_body,
        fail_on_errors=fail_on_errors,
        timeout=timeout,
    )
    context = _load_yaml(context_file, "context") if context_file else {}
    _run(config, context)


@cli_app.command("run")
def run_command(
    task_file: Path = typer.Argument(..., help="YAML task definition"),
    context_file: Optional[Path] = typer.Option(None, "--context", "-c", help="YAML file with template variables"),
):
    """
    Execute a GraphQL task defined in a YAML file.

    Keys follow TaskConfig: uri, query, variables, operationName, headers,
    encryptBody, failOnErrors, method, timeout, ...
    """
    raw = _load_yaml(task_file, "task")
    if not isinstance(raw, dict):
        typer.echo("Task file must contain a mapping", err=True)
        raise typer.Exit(code=1)
    try:
        config = TaskConfig.model_validate(raw)
    except ValueError as e:
        typer.echo(f"Invalid task definition: {e}", err=True)
        raise typer.Exit(code=1)
    context = _load_yaml(context_file, "context") if context_file else {}
    _run(config, context)


@secret_app.command("generate-key")
def generate_key_command():
    """
    Print a new key for GQLTASK_ENCRYPTION_KEY.
    """
    typer.echo(generate_key())


@secret_app.command("decrypt")
def decrypt_command(
    token: str = typer.Argument(..., help="encryptedBody value, or its JSON form"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Key to use instead of GQLTASK_ENCRYPTION_KEY"),
):
    """
    Decrypt an encryptedBody produced with --encrypt-body.
    """
    value: Any = token
    if token.lstrip().startswith("{"):
        try:
            value = json.loads(token)
        except json.JSONDecodeError as e:
            typer.echo(f"Invalid JSON token: {e}", err=True)
            raise typer.Exit(code=1)
    try:
        cipher = SecretCipher(key) if key else SecretCipher.from_settings()
        typer.echo(cipher.decrypt(value))
    except TaskError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
