class CourseGenError(Exception):
    """Base exception for the course generation scheduler."""

    pass


class GenerationError(CourseGenError):
    """Raised when the content generation collaborator fails for a task."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(f"Generation failed for '{kind}': {message}")


class FallbackGenerationError(CourseGenError):
    """Raised when templated fallback content cannot be built from a payload."""

    pass


class UnknownRequestError(CourseGenError):
    """Raised when an awaitable accessor is given an id that is not tracked."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Unknown request id '{request_id}'")


class AdmissionDroppedError(CourseGenError):
    """Raised when a request is dropped after exhausting its admission retries."""

    def __init__(self, request_id: str, retries: int):
        self.request_id = request_id
        self.retries = retries
        super().__init__(f"Request '{request_id}' dropped after {retries} admission retries")


class SchedulerStoppedError(CourseGenError):
    """Raised when work is enqueued on a scheduler that has been stopped."""

    pass


class InvalidTransitionError(CourseGenError):
    """Raised when a task is moved to a status its current status cannot reach."""

    def __init__(self, task_id: str, current: str, target: str):
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Task '{task_id}' cannot move from '{current}' to '{target}'")
