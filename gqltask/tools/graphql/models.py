"""
Data model of a GraphQL task invocation.

TaskConfig holds the unrendered templates. Everything else is built fresh for
a single request/response cycle.
"""

import json
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from gqltask.core.secret import EncryptedString

BoolTemplate = Union[bool, str]
HeaderTemplates = Dict[str, Union[str, List[str]]]


class TaskConfig(BaseModel):
    """GraphQL task configuration. String fields are Jinja2 templates."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    uri: Optional[str] = Field(default=None, validation_alias=AliasChoices("uri", "url", "endpoint"))
    method: Optional[str] = "POST"
    query: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("query", "body", "bodyTemplate", "body_template")
    )
    # A mapping of templates, or one template rendering to a mapping or a JSON object
    variables: Optional[Union[Dict[str, Any], str]] = None
    operation_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("operation_name", "operationName")
    )
    headers: HeaderTemplates = Field(default_factory=dict)
    encrypt_body: BoolTemplate = Field(
        default=False, validation_alias=AliasChoices("encrypt_body", "encryptBody")
    )
    fail_on_errors: BoolTemplate = Field(
        default=False,
        validation_alias=AliasChoices("fail_on_errors", "failOnErrors", "failOnGraphQLErrors"),
    )
    always_include_variables: bool = Field(
        default=True, validation_alias=AliasChoices("always_include_variables", "alwaysIncludeVariables")
    )

    # HTTP client options
    timeout: Optional[float] = Field(default=None, gt=0)
    follow_redirects: bool = Field(
        default=True, validation_alias=AliasChoices("follow_redirects", "followRedirects")
    )
    verify_ssl: bool = Field(default=True, validation_alias=AliasChoices("verify_ssl", "verifySsl"))
    allow_failed: bool = Field(default=False, validation_alias=AliasChoices("allow_failed", "allowFailed"))


class ResolvedRequest(BaseModel):
    """A fully rendered HTTP request."""

    model_config = ConfigDict(frozen=True)

    method: str
    uri: str
    headers: Dict[str, List[str]] = Field(default_factory=dict)
    payload: Dict[str, Any]

    def body_bytes(self) -> bytes:
        return json.dumps(self.payload, ensure_ascii=False).encode("utf-8")

    def header_items(self) -> List[tuple]:
        """Headers as (name, value) pairs, one pair per value."""
        return [(name, value) for name, values in self.headers.items() for value in values]


class RawResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: Dict[str, List[str]] = Field(default_factory=dict)
    content: Optional[bytes] = None

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "RawResponse":
        headers: Dict[str, List[str]] = {}
        for name, value in response.headers.multi_items():
            headers.setdefault(name, []).append(value)
        return cls(status_code=response.status_code, headers=headers, content=response.content or None)


class ParsedResult(BaseModel):
    data: Any = None
    errors: Any = None


class OutputEnvelope(BaseModel):
    """Task result. ``to_output()`` is the externally visible form."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    uri: str
    code: int
    headers: Dict[str, List[str]] = Field(default_factory=dict)
    body: Any = None
    error: Any = None
    encrypted_body: Optional[EncryptedString] = Field(default=None, alias="encryptedBody")

    def to_output(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
