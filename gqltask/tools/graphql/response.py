"""
GraphQL response processing.

Turns a raw HTTP response into an OutputEnvelope: strict UTF-8 decoding, a
check that every code point is assigned in the Unicode database, JSON
parsing, data/errors extraction, the fail-on-errors policy and optional body
encryption.
"""

import json
import unicodedata
from typing import Any, Callable, Optional

from gqltask.core.dsl.render import RenderFn, render_bool
from gqltask.core.errors import DecodeError, EncodingError, GraphQLError
from gqltask.core.logger import setup_logger
from gqltask.core.sanitize import sanitize_headers
from gqltask.core.secret import EncryptedString

from .models import OutputEnvelope, ParsedResult, RawResponse, ResolvedRequest, TaskConfig

logger = setup_logger(__name__, include_location=True)

EncryptFn = Callable[[str], EncryptedString]


def decode_body(content: Optional[bytes]) -> Optional[str]:
    """
    Decode a response body as UTF-8.

    Returns None when there is no body.

    Raises:
        EncodingError: invalid UTF-8, or a code point that is not assigned in
            the Unicode character database
    """
    if not content:
        return None
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(
            f"Response body is not valid UTF-8: {e.reason} at byte offset {e.start}",
            offset=e.start,
        ) from e
    check_code_points(text)
    return text


def check_code_points(text: str) -> None:
    if text.isascii():
        return
    for char in text:
        # Cn = unassigned (includes noncharacters such as U+FFFF)
        if unicodedata.category(char) == "Cn":
            code_point = ord(char)
            raise EncodingError(
                f"Illegal unicode code point in response body: {code_point}, "
                "the GraphQL task only supports valid Unicode strings as the response body.",
                code_point=code_point,
            )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a valid JSON value")


def parse_body(text: Optional[str]) -> ParsedResult:
    """Extract ``data`` and ``errors`` from a JSON object body."""
    if not text:
        return ParsedResult()
    try:
        document = json.loads(text, parse_constant=_reject_constant)
    except ValueError as e:
        # JSONDecodeError, or a NaN/Infinity literal
        raise DecodeError(f"Response body is not valid JSON: {e}", preview=text[:200]) from e
    if not isinstance(document, dict):
        raise DecodeError(
            f"Response body must be a JSON object, got {type(document).__name__}",
            preview=text[:200],
        )
    return ParsedResult(data=document.get("data"), errors=document.get("errors"))


def process_response(
    request: ResolvedRequest,
    response: RawResponse,
    config: TaskConfig,
    render: RenderFn,
    encrypt: EncryptFn,
) -> OutputEnvelope:
    """
    Build the task output from an HTTP response.

    Args:
        request: The request that produced the response
        response: Status, headers and raw body bytes
        config: Task configuration (encrypt_body and fail_on_errors templates)
        render: Render function bound to the invocation context
        encrypt: Encrypt collaborator, only called when encrypt_body is true

    Returns:
        The output envelope

    Raises:
        EncodingError, DecodeError, GraphQLError
    """
    logger.debug(
        f"GRAPHQL.PROCESS_RESPONSE: status={response.status_code} "
        f"headers={sanitize_headers(response.headers)} length={len(response.content or b'')}"
    )

    text = decode_body(response.content)
    parsed = parse_body(text)

    if parsed.errors is not None:
        if render_bool(render, config.fail_on_errors, default=False):
            serialized = json.dumps(parsed.errors, ensure_ascii=False)
            logger.error(f"GRAPHQL.PROCESS_RESPONSE: failing on GraphQL errors: {serialized}")
            raise GraphQLError(parsed.errors, serialized)
        logger.warning(
            f"GRAPHQL.PROCESS_RESPONSE: response carries GraphQL errors, keeping partial data: "
            f"{json.dumps(parsed.errors, ensure_ascii=False)[:500]}"
        )

    body: Any = parsed.data
    encrypted_body = None
    if render_bool(render, config.encrypt_body, default=False):
        body = None
        if text is not None:
            encrypted_body = encrypt(text)
            logger.debug("GRAPHQL.PROCESS_RESPONSE: response body encrypted")

    return OutputEnvelope(
        uri=request.uri,
        code=response.status_code,
        headers=response.headers,
        body=body,
        error=parsed.errors,
        encrypted_body=encrypted_body,
    )
