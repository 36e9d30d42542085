"""
Error taxonomy for microservice lifecycle management
"""
from typing import Optional


class MicrodockError(Exception):
    """Base class for every error raised by microdock"""


class DockerUnavailableError(MicrodockError):
    """Docker CLI is not installed or the daemon cannot be reached"""

    def __init__(self, message: str = "Docker is not installed or the daemon is not running"):
        super().__init__(message)


class OperationError(MicrodockError):
    """A container or compose command failed"""


class ComposeCommandError(OperationError):
    """docker-compose exited with a non-zero status"""

    def __init__(self, command: list, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"{' '.join(command)} exited with code {returncode}: {stderr.strip()}"
        )


class ReadinessTimeoutError(MicrodockError):
    """Service never answered on its readiness endpoint"""

    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(f"Service at {url} did not become available within {timeout:g} seconds")


class OperationInProgressError(MicrodockError):
    """Another lifecycle operation is already running"""

    def __init__(self, current: Optional[str] = None):
        self.current = current
        message = "A microservice operation is already in progress. Please wait until it completes."
        if current:
            message = f"{message} (running: {current})"
        super().__init__(message)


class ProjectExistsError(MicrodockError):
    """Project directory already exists"""


class ProjectNotFoundError(MicrodockError):
    """No project with that name in the workspace"""


class MicroserviceNotFoundError(MicrodockError):
    """No microservice with that name in the project"""
