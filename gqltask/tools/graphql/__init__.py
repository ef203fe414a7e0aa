"""
GraphQL plugin package for gqltask.

Builds a GraphQL request from templates, executes it over HTTP and normalizes
the response into an output envelope, optionally encrypting the body.
"""

from gqltask.tools.graphql.executor import execute_graphql_task, execute_graphql_task_result
from gqltask.tools.graphql.models import OutputEnvelope, RawResponse, ResolvedRequest, TaskConfig
from gqltask.tools.graphql.request import build_request
from gqltask.tools.graphql.response import process_response

__all__ = [
    'execute_graphql_task',
    'execute_graphql_task_result',
    'build_request',
    'process_response',
    'TaskConfig',
    'ResolvedRequest',
    'RawResponse',
    'OutputEnvelope',
]
