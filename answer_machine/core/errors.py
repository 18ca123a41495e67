"""Answer Machine validation errors."""


class AnswerMachineError(Exception):
    """Base error; the message is the user-facing error reason."""


class ThreadNotFoundError(AnswerMachineError):
    def __init__(self, thread_id=None):
        super().__init__("Thread not found")
        self.thread_id = thread_id


class InvalidIterationBoundsError(AnswerMachineError):
    def __init__(self, min_iterations: int, max_iterations: int):
        super().__init__(f"Invalid iteration settings: min ({min_iterations}) > max ({max_iterations})")
        self.min_iterations = min_iterations
        self.max_iterations = max_iterations


class NoUserMessageError(AnswerMachineError):
    def __init__(self):
        super().__init__("No user message found")
