from typing import Optional


class FlowragError(Exception):
    """
    Base error for graph, pipeline and routing failures.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConnectionRejectedError(FlowragError):
    """
    Raised when an edge violates a hard type contract; the edge is never created.
    """

    def __init__(
        self,
        message: str,
        source_id: Optional[str] = None,
        target_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.source_id = source_id
        self.target_id = target_id


class HandlerError(FlowragError):
    """
    A node's own failure. Recorded on the node; traversal continues.
    """


class ConfigurationError(HandlerError):
    """
    A node (or the runtime) is missing a required setting.
    """


class ExternalServiceError(FlowragError):
    """
    The embedding, retrieval or generation service failed or returned garbage.
    """

    def __init__(self, message: str, service: str, status: Optional[int] = None):
        super().__init__(message)
        self.service = service
        self.status = status


class GraphIntegrityError(FlowragError):
    """
    Dangling edge or unknown node reference in a graph document.
    """


class GraphCycleError(FlowragError):
    """
    The graph contains a directed cycle and cycle rejection is enabled.
    """

    def __init__(self, message: str, cycle: Optional[list[str]] = None):
        super().__init__(message)
        self.cycle = list(cycle or [])


class RunInterruptedError(FlowragError):
    """
    A run was cancelled or exceeded its deadline before traversal finished.
    """

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason
