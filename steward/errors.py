"""Exception taxonomy for steward.

Domain managers raise these. Tool handlers translate them into failed
ToolResults so the model sees the reason.
"""

from __future__ import annotations


class StewardError(Exception):
    """Base class for all steward errors."""


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class GraphError(StewardError):
    """Graph validation or lookup failure with a machine-readable code."""

    code = "GRAPH_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TypeNameError(GraphError):
    code = "INVALID_TYPE_NAME"


class TypeAlreadyExists(GraphError):
    code = "TYPE_ALREADY_EXISTS"


class NodeTypeNotFound(GraphError):
    code = "NODE_TYPE_NOT_FOUND"

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class EdgeTypeNotFound(GraphError):
    code = "EDGE_TYPE_NOT_FOUND"

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class PropertiesValidationError(GraphError):
    """Properties failed the type's schema. Carries every violation."""

    def __init__(self, code: str, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.code = code
        self.errors = errors

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class EndpointNotFound(GraphError):
    code = "EDGE_ENDPOINT_NOT_FOUND"

    def __init__(self, endpoint: str, name: str, node_type: str | None) -> None:
        label = "Source" if endpoint == "source" else "Target"
        if node_type:
            message = f'{label} node "{name}" of type "{node_type}" not found. Create it first.'
        else:
            message = f'{label} node "{name}" not found. Create it first.'
        super().__init__(message)
        self.endpoint = endpoint


class AmbiguousNodeReference(GraphError):
    code = "AMBIGUOUS_NODE_REFERENCE"


class EdgeConstraintViolation(GraphError):
    code = "EDGE_CONSTRAINT_VIOLATION"

    def __init__(
        self,
        edge_type: str,
        endpoint: str,
        node_type: str,
        allowed: list[str],
    ) -> None:
        super().__init__(
            f'Edge type "{edge_type}" does not allow {endpoint} node type '
            f'"{node_type}" (allowed {endpoint} types: {", ".join(sorted(allowed))}).'
        )
        self.endpoint = endpoint
        self.allowed = allowed


# ---------------------------------------------------------------------------
# Tasks, agents, conversations
# ---------------------------------------------------------------------------


class TaskNotFound(StewardError):
    pass


class TaskStateError(StewardError):
    """A terminal transition was attempted on a task that is not in progress."""


class AgentNotFound(StewardError):
    pass


class ConversationError(StewardError):
    pass


class DelegationError(StewardError):
    """A lead tried to hand work to an agent that is not its subordinate."""


class OwnershipError(StewardError):
    """An agent or task does not reference exactly one owner."""


# ---------------------------------------------------------------------------
# Language model
# ---------------------------------------------------------------------------


class LLMError(RuntimeError):
    """Language-model call failed after retries, or returned unusable output."""
