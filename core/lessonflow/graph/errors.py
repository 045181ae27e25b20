"""
Graph Errors - Failure taxonomy for building and running graphs.

- ConfigurationError: bad wiring, raised while building/compiling
- ResolutionError: a router or goto named a node that does not exist
- SuspendWithoutResumeError: resume() on a thread that is not suspended
- CollaboratorError: model call or document extraction failed
- ThreadBusyError: a second run was requested for a thread already running
- CheckpointConflictError: a checkpoint append would break the parent chain
- GraphRecursionError: a run exceeded its node execution budget
"""


class GraphError(Exception):
    """Base class for all lessonflow errors."""


class ConfigurationError(GraphError):
    """Graph wiring is invalid. Never recovered at run time."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or [message]
        super().__init__(message)


class ResolutionError(GraphError):
    """A router, goto or edge resolved to an undeclared node."""


class SuspendWithoutResumeError(GraphError):
    """resume() was called for a thread that has no pending interrupt."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread '{thread_id}' is not suspended; nothing to resume")


class ThreadBusyError(GraphError):
    """A run is already in flight for this thread."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread '{thread_id}' already has a run in progress")


class CheckpointConflictError(GraphError):
    """A checkpoint does not extend the thread's current latest checkpoint."""


class GraphRecursionError(GraphError):
    """The run executed more nodes than the configured max_steps."""


class CollaboratorError(GraphError):
    """An external collaborator (model, extractor) failed or timed out."""


class ExtractionError(CollaboratorError):
    """Text could not be extracted from a document."""
