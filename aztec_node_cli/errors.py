"""Exceptions raised by the node CLI; each one aborts the current menu action"""


class NodeCliError(RuntimeError):
    pass


class MissingDependencyError(NodeCliError):
    """A required external command is not on PATH"""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Missing required command(s): {', '.join(self.missing)}")


class InputValidationError(NodeCliError):
    """An operator supplied value does not match its lexical pattern"""

    def __init__(self, field: str, value: str = ""):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}")


class ExternalCommandError(NodeCliError):
    """An external tool exited non-zero or returned output we cannot use"""

    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message)
