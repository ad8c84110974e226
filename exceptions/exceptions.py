from typing import List, Tuple


class StepPreconditionError(Exception):
    def __init__(self, code: str, message: str, context: str = ""):
        super().__init__(message)
        self.code = code
        self.context = context


class ColorizationError(StepPreconditionError):
    """Raised once a colorization pass is over if any worker task failed."""

    def __init__(self, failures: List[Tuple[int, BaseException]], context: str = ""):
        first_start, first_exc = failures[0]
        message = (
            f"{len(failures)} colorization task(s) failed; first failure at point "
            f"{first_start}: {first_exc!r}"
        )
        super().__init__("COLORIZATION_FAILED", message, context=context)
        self.failures = failures
