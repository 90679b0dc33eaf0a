"""Custom exception hierarchy for clusterdeck configuration and operations."""

from __future__ import annotations


class ClusterDeckError(Exception):
    """Base exception for all clusterdeck errors.

    All clusterdeck-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI and the deployment manager.
    """

    pass


class ConfigError(ClusterDeckError):
    """Exception raised for configuration errors.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class ValidationError(ClusterDeckError):
    """Exception raised when a deployment descriptor fails validation.

    Covers missing required descriptor fields, dangling node mappings and
    unsupported regions.

    Attributes:
        field: The field that failed validation
        message: Description of the validation failure
        expected: Human description of expected value/type
        actual: The actual value that failed validation
    """

    def __init__(
        self,
        field: str,
        message: str,
        expected: str,
        actual: str,
    ) -> None:
        """Initialize ValidationError with detailed information.

        Args:
            field: Field that failed validation (dot notation for nested fields)
            message: Description of what went wrong
            expected: Human-readable description of expected value
            actual: The actual value that failed
        """
        self.field = field
        self.message = message
        self.expected = expected
        self.actual = actual
        full_message = (
            f"Validation error in '{field}': {message}\n"
            f"  Expected: {expected}\n"
            f"  Got: {actual}"
        )
        super().__init__(full_message)


class FileNotFoundError(ClusterDeckError):
    """Exception raised when a settings or descriptor file is not found.

    Attributes:
        path: Path to the file that was not found
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize FileNotFoundError with path and message."""
        self.path = path
        self.message = message
        super().__init__(f"File not found: {path}\n{message}")


class DeploymentError(ClusterDeckError):
    """Exception raised when a deployment operation fails.

    Attributes:
        operation: Operation that failed (create, delete, reload, ...)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Create a deployment error for an operation."""
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment {operation} failed: {message}")


class ProvisioningError(DeploymentError):
    """Exception raised when a provisioning pipeline step fails.

    The pipeline has already attempted a rollback of whatever was created
    before this error reaches the caller.

    Attributes:
        step: Name of the pipeline step that failed
    """

    def __init__(self, step: str, message: str) -> None:
        """Create a provisioning error for a failed step."""
        self.step = step
        super().__init__(operation="create", message=f"step '{step}': {message}")


class TeardownError(DeploymentError):
    """Exception raised when one or more teardown steps fail.

    Attributes:
        failures: Mapping of teardown step name to its error message
    """

    def __init__(self, failures: dict[str, str]) -> None:
        """Create an aggregate teardown error."""
        self.failures = dict(failures)
        details = "; ".join(f"{step}: {reason}" for step, reason in failures.items())
        super().__init__(
            operation="delete",
            message=f"{len(failures)} teardown step(s) failed ({details})",
        )


class UnsupportedOperationError(DeploymentError):
    """Exception raised for deployer operations that are not supported."""

    def __init__(self, operation: str) -> None:
        """Create an unsupported operation error."""
        super().__init__(operation=operation, message="Unimplemented")


class NotFoundError(DeploymentError):
    """Exception raised when a required resource cannot be located.

    Attributes:
        resource: Kind of resource that could not be found
    """

    def __init__(self, resource: str, message: str, operation: str = "lookup") -> None:
        """Create a not-found error for a resource kind."""
        self.resource = resource
        super().__init__(operation=operation, message=message)

