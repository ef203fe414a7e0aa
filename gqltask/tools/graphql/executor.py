"""
GraphQL task executor.

Renders the request, sends it with httpx and turns the response into an
OutputEnvelope.
"""

import uuid
import datetime
from typing import Any, Dict, Mapping, Optional, Union

import httpx
from jinja2 import Environment

from gqltask.core.config import get_settings
from gqltask.core.dsl.render import Renderer
from gqltask.core.errors import HttpStatusError, classify_exception
from gqltask.core.logger import LoggingContext, setup_logger
from gqltask.core.sanitize import sanitize_headers
from gqltask.core.secret import SecretCipher, default_encryptor

from .models import OutputEnvelope, RawResponse, ResolvedRequest, TaskConfig
from .request import build_request
from .response import process_response

logger = setup_logger(__name__, include_location=True)


def execute_graphql_task(
    config: Union[TaskConfig, Mapping[str, Any]],
    context: Optional[Dict[str, Any]] = None,
    jinja_env: Optional[Environment] = None,
    cipher: Optional[SecretCipher] = None,
    client: Optional[httpx.Client] = None,
    task_id: Optional[str] = None,
) -> OutputEnvelope:
    """
    Execute a GraphQL task.

    Args:
        config: Task configuration, or a mapping validated into one
        context: Variables available to the templates
        jinja_env: Jinja2 environment for rendering (a strict one by default)
        cipher: Cipher for encrypt_body; built from settings when needed
        client: httpx client to send with. When omitted a client is opened for
            this call and closed afterwards.
        task_id: Id bound to the log records of this call; generated when omitted

    Returns:
        The output envelope

    Raises:
        TaskError subclasses for template, URI, encoding, JSON, GraphQL and
        HTTP status failures; httpx transport errors unmodified.
    """
    if not isinstance(config, TaskConfig):
        config = TaskConfig.model_validate(dict(config))

    task_id = task_id or str(uuid.uuid4())
    start_time = datetime.datetime.now()
    render = Renderer(context, env=jinja_env)

    with LoggingContext(task_id=task_id):
        # Rendering happens before any connection is opened
        request = build_request(config, render)
        logger.info(f"GRAPHQL.EXECUTE: {request.method} {request.uri}")

        if client is not None:
            raw_response = _send(client, request, config)
        else:
            settings = get_settings()
            timeout = config.timeout or settings.http_timeout
            with httpx.Client(
                timeout=timeout,
                follow_redirects=config.follow_redirects,
                verify=config.verify_ssl,
                headers={"User-Agent": settings.user_agent},
            ) as scoped_client:
                raw_response = _send(scoped_client, request, config)

        output = process_response(request, raw_response, config, render, default_encryptor(cipher))

        duration = (datetime.datetime.now() - start_time).total_seconds()
        logger.success(
            f"GRAPHQL.EXECUTE: completed code={output.code} "
            f"errors={'yes' if output.error is not None else 'no'} duration={duration:.3f}s"
        )
        return output


def _send(client: httpx.Client, request: ResolvedRequest, config: TaskConfig) -> RawResponse:
    logger.debug(f"GRAPHQL.EXECUTE: request headers (redacted)={sanitize_headers(request.headers)}")
    try:
        response = client.request(
            request.method,
            request.uri,
            headers=request.header_items(),
            content=request.body_bytes(),
        )
    except httpx.HTTPError as e:
        logger.error(f"GRAPHQL.EXECUTE: {type(e).__name__} - {e}")
        raise

    logger.debug(f"GRAPHQL.EXECUTE: HTTP response received - status_code={response.status_code}")
    if not response.is_success and not config.allow_failed:
        raise HttpStatusError(
            response.status_code,
            response.reason_phrase,
            headers=dict(response.headers),
            response_body=response.text,
        )
    return RawResponse.from_httpx(response)


def execute_graphql_task_result(
    config: Union[TaskConfig, Mapping[str, Any]],
    context: Optional[Dict[str, Any]] = None,
    jinja_env: Optional[Environment] = None,
    cipher: Optional[SecretCipher] = None,
    client: Optional[httpx.Client] = None,
    task_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Same as execute_graphql_task, but failures are reported in the returned
    dictionary instead of being raised:

        {'id': ..., 'status': 'success', 'data': <output>}
        {'id': ..., 'status': 'error', 'error': <message>, 'error_info': {...}}
    """
    task_id = task_id or str(uuid.uuid4())
    try:
        output = execute_graphql_task(
            config, context, jinja_env=jinja_env, cipher=cipher, client=client, task_id=task_id
        )
    except Exception as e:
        info = classify_exception(e)
        with LoggingContext(task_id=task_id):
            logger.error(f"GRAPHQL.EXECUTE: task failed - {info.code}: {info.message}")
        return {'id': task_id, 'status': 'error', 'error': str(e), 'error_info': info.to_dict()}
    return {'id': task_id, 'status': 'success', 'data': output.to_output()}
