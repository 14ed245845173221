"""
Error types for the audio sculpture pipeline

Every failure the pipeline cannot resolve to a documented default is raised
as a SculptureError subclass and propagates to whoever called the stage.
Mesh integrity problems are not errors: see MeshIntegrityWarning in
sculpture_types.py.
"""


class SculptureError(Exception):
    """Base class for pipeline failures"""

    code = "SCULPTURE_ERROR"
    recoverable = False

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {
            'error': type(self).__name__,
            'code': self.code,
            'message': self.message,
            'recoverable': self.recoverable,
        }


class InvalidAudioData(SculptureError):
    """Sample or feature input is missing, empty or unusable"""

    code = "INVALID_AUDIO_DATA"


class MemoryLimitExceeded(SculptureError):
    """Estimated working set does not fit in the caller's memory budget

    Recoverable: retry with a smaller window size, a shorter clip or a lower
    mesh resolution.
    """

    code = "MEMORY_LIMIT_EXCEEDED"
    recoverable = True

    def __init__(self, operation, estimated, available):
        self.operation = operation
        self.estimated = int(estimated)
        self.available = int(available)
        super().__init__(
            f"{operation} needs ~{self.estimated} bytes but only "
            f"{self.available} bytes are available"
        )

    @property
    def usage_percentage(self):
        if self.available <= 0:
            return float('inf')
        return self.estimated / self.available * 100

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'estimated': self.estimated,
            'available': self.available,
            'usage_percentage': self.usage_percentage,
        })
        return data


class Cancelled(SculptureError):
    """Cooperative abort requested through a CancellationToken

    Not a failure: the caller decides whether to retry.
    """

    code = "OPERATION_CANCELLED"
    recoverable = True

    def __init__(self, step):
        self.step = step
        super().__init__(f"{step} was cancelled")


# share of the memory budget a single stage may claim
MEMORY_BUDGET_FRACTION = 0.7


def check_memory_budget(operation, estimated, available):
    """Raise MemoryLimitExceeded unless estimated < 70% of available

    available=None means no budget was supplied and the check is skipped.
    """
    if available is None:
        return
    if estimated >= available * MEMORY_BUDGET_FRACTION:
        raise MemoryLimitExceeded(operation, estimated, available)
