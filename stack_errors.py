"""Exceptions raised by the stack deployment tooling."""


class StackToolError(Exception):
    """Base class for all fatal errors reported by deploy and cleanup."""


class ConfigurationError(StackToolError, ValueError):
    """The parameter file is missing, unreadable or lacks a mandatory key."""


class StackOperationError(StackToolError):
    """CloudFormation (or S3) rejected a request.

    The message is the raw botocore error text so it can be shown verbatim.
    """


class StackNotFoundError(StackToolError):
    """The stack disappeared while a create or update was being monitored."""


class MonitorTimeoutError(StackToolError):
    """The optional monitoring timeout elapsed before a terminal status."""
