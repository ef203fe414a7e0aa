"""
GraphQL request preparation.

Renders the task templates into a ResolvedRequest: URI, method, headers and
the JSON payload {"query", "variables", "operationName"}.
"""

import json
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from gqltask.core.dsl.render import RenderFn
from gqltask.core.errors import TemplateError, UriError
from gqltask.core.logger import setup_logger
from gqltask.core.sanitize import sanitize_headers, sanitize_sensitive_data

from .models import ResolvedRequest, TaskConfig

logger = setup_logger(__name__, include_location=True)

DEFAULT_METHOD = "POST"
JSON_CONTENT_TYPE = "application/json"

# Characters a URI may never contain once spaces have been replaced
_ILLEGAL_URI_CHARS = re.compile(r'[\x00-\x20\x7f<>"{}|\\^`]')
_BAD_PERCENT_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')
_SUPPORTED_SCHEMES = ("http", "https")


def build_request(config: TaskConfig, render: RenderFn) -> ResolvedRequest:
    """
    Render a task configuration into a request.

    Args:
        config: Task configuration with unrendered templates
        render: Render function bound to the invocation context

    Returns:
        The resolved request

    Raises:
        TemplateError: uri or query is missing, renders empty, or references an
            undefined variable
        UriError: the rendered URI is not an absolute URI
    """
    uri = _render_uri(config, render)

    method = (_render_text(render, config.method) or "").strip().upper() or DEFAULT_METHOD

    query = _render_text(render, config.query)
    if not query or not query.strip():
        raise TemplateError("GraphQL query is required and must render to a non-empty string")

    payload: Dict[str, Any] = {"query": query}

    if config.variables is not None:
        variables = render(config.variables)
        if isinstance(variables, str):
            variables = _parse_json_object(variables)
        if not isinstance(variables, dict):
            raise TemplateError(f"GraphQL variables must render to a mapping, got {type(variables).__name__}")
        if variables or config.always_include_variables:
            payload["variables"] = variables

    operation_name = (_render_text(render, config.operation_name) or "").strip()
    if operation_name:
        payload["operationName"] = operation_name

    headers = render_headers(config.headers, render)
    if not any(name.lower() == "content-type" for name in headers):
        headers["Content-Type"] = [JSON_CONTENT_TYPE]

    logger.debug(
        f"GRAPHQL.BUILD_REQUEST: method={method} uri={uri} payload_keys={list(payload.keys())} "
        f"variables={sanitize_sensitive_data(payload.get('variables'))} headers={sanitize_headers(headers)}"
    )
    return ResolvedRequest(method=method, uri=uri, headers=headers, payload=payload)


def render_headers(header_templates: Dict[str, Any], render: RenderFn) -> Dict[str, List[str]]:
    """
    Render header names and values into an ordered multimap.

    A header may map to a single template or a list of templates. Headers whose
    names differ only in case are merged under the first spelling seen, values
    kept in order.
    """
    headers: Dict[str, List[str]] = {}
    canonical: Dict[str, str] = {}
    for raw_name, raw_values in (header_templates or {}).items():
        name = (_render_text(render, raw_name) or "").strip()
        if not name:
            raise TemplateError(f"Header name '{raw_name}' rendered empty")
        if not isinstance(raw_values, (list, tuple)):
            raw_values = [raw_values]
        values: List[str] = []
        for template in raw_values:
            rendered = render(template)
            # '{{ tokens }}' may resolve to a list of values
            items = rendered if isinstance(rendered, (list, tuple)) else [rendered]
            values.extend("" if v is None else str(v) for v in items)
        key = canonical.setdefault(name.lower(), name)
        headers.setdefault(key, []).extend(values)
    return headers


def _render_uri(config: TaskConfig, render: RenderFn) -> str:
    rendered = (_render_text(render, config.uri) or "").strip()
    if not rendered:
        raise TemplateError("Request uri is required and must render to a non-empty string")
    # Hand-written templates often carry spaces in query strings
    uri = rendered.replace(" ", "%20")
    validate_uri(uri)
    return uri


def validate_uri(uri: str) -> None:
    """Raise UriError unless uri is a syntactically valid absolute URI."""
    match = _ILLEGAL_URI_CHARS.search(uri)
    if match:
        raise UriError(f"Invalid URI '{uri}': illegal character {match.group(0)!r} at index {match.start()}", uri=uri)
    match = _BAD_PERCENT_ESCAPE.search(uri)
    if match:
        raise UriError(f"Invalid URI '{uri}': malformed escape pair at index {match.start()}", uri=uri)
    try:
        parts = urlsplit(uri)
        # Accessing port validates it
        parts.port
    except ValueError as e:
        raise UriError(f"Invalid URI '{uri}': {e}", uri=uri) from e
    if not parts.scheme or not parts.hostname:
        raise UriError(f"Invalid URI '{uri}': an absolute URI with scheme and host is required", uri=uri)
    if parts.scheme.lower() not in _SUPPORTED_SCHEMES:
        raise UriError(f"Invalid URI '{uri}': unsupported scheme '{parts.scheme}'", uri=uri)


def _render_text(render: RenderFn, template: Optional[Any]) -> Optional[str]:
    if template is None:
        return None
    value = render(template)
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _parse_json_object(text: str) -> Any:
    if not text.strip():
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise TemplateError(f"GraphQL variables rendered to a string that is not JSON: {e}") from e
