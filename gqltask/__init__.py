from gqltask.core.config import APP_VERSION as __version__
from gqltask.tools.graphql import (
    OutputEnvelope,
    TaskConfig,
    build_request,
    execute_graphql_task,
    process_response,
)

__all__ = [
    "__version__",
    "OutputEnvelope",
    "TaskConfig",
    "build_request",
    "execute_graphql_task",
    "process_response",
]
