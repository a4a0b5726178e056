"""Custom exception hierarchy for holdfast configuration and deployments.

This module is bundled into generated deploy artifacts and must only depend
on the standard library.
"""


class HoldfastError(Exception):
    """Base exception for all holdfast errors.

    All holdfast-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI and the artifact entrypoint.
    """

    pass


class ConfigError(HoldfastError):
    """Exception raised for configuration errors.

    Raised when a required setting is missing or empty, when a compose
    fragment cannot be parsed, or when variable interpolation fails.

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


class ValidationError(HoldfastError):
    """Exception raised when a deploy request fails validation.

    Provides detailed information about what was expected versus what was
    received, e.g. an unknown probe target or a path-unsafe version.

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
            field: Field that failed validation
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


class FileNotFoundError(HoldfastError):
    """Exception raised when a compose fragment is not found.

    Attributes:
        path: Path to the file that was not found
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize FileNotFoundError with path and message.

        Args:
            path: Path to the file that was not found
            message: Descriptive error message, optionally with suggestions
        """
        self.path = path
        self.message = message
        super().__init__(f"File not found: {path}\n{message}")


class DeploymentError(HoldfastError):
    """Exception raised when a deployment operation fails.

    Attributes:
        operation: Name of the operation that failed (e.g. "pin", "create")
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Create a deployment error for a named operation."""
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment {operation} failed: {message}")


class DockerNotAvailableError(DeploymentError):
    """Exception raised when the Docker daemon cannot be reached."""

    def __init__(self, operation: str = "connect") -> None:
        """Create an error explaining how to make Docker available."""
        super().__init__(
            operation=operation,
            message=(
                "Docker daemon is not available. "
                "Ensure Docker is installed and running: docker info"
            ),
        )


class EngineError(DeploymentError):
    """Exception raised when a container engine command fails.

    Attributes:
        command: The command line that was executed
        returncode: Process exit status
        stderr: Captured standard error output
    """

    def __init__(
        self,
        operation: str,
        command: list[str],
        returncode: int,
        stderr: str = "",
    ) -> None:
        """Create an engine error from a failed command."""
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or "no error output"
        super().__init__(
            operation=operation,
            message=(
                f"'{' '.join(command)}' exited with status {returncode}: {detail}"
            ),
        )


class ReleaseExistsError(DeploymentError):
    """Exception raised when a release directory for a version already exists."""

    def __init__(self, version: str) -> None:
        """Create an error for a duplicate release version."""
        self.version = version
        super().__init__(
            operation="create_release",
            message=(
                f"Release '{version}' already exists. "
                "Release versions must be unique; deploy a new version."
            ),
        )


class RollbackError(DeploymentError):
    """Exception raised when the previous release cannot be restarted."""

    def __init__(self, version: str, message: str) -> None:
        """Create a rollback error for the release that failed to restart."""
        self.version = version
        super().__init__(operation="rollback", message=message)


class LockError(HoldfastError):
    """Exception raised when another deployment holds the working directory lock.

    Attributes:
        workdir: Working directory whose lock could not be acquired
    """

    def __init__(self, workdir: str) -> None:
        """Create a lock contention error."""
        self.workdir = workdir
        super().__init__(f"Another deployment is already in progress in {workdir}")


class HealthCheckTimeout(HoldfastError):
    """Exception raised when the probe target never reports healthy.

    Attributes:
        service: Probe target service name
        attempts: Number of status reads performed
        last_status: Last observed health status, if any
    """

    def __init__(self, service: str, attempts: int, last_status: str | None) -> None:
        """Create a health check timeout for a probe target."""
        self.service = service
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            f"Service '{service}' did not become healthy after {attempts} "
            f"attempts (last status: {last_status or 'unknown'})"
        )


class SupervisorError(HoldfastError):
    """Exception raised when a supervised daemon fails to become ready."""

    def __init__(self, message: str) -> None:
        """Create a supervisor error."""
        self.message = message
        super().__init__(message)
