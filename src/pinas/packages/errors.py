from typing import Optional


class PackageError(Exception):
    """Base class for all package engine errors."""


# Resolution errors: raised before any record is created.


class ResolutionError(PackageError):
    pass


class FetchError(ResolutionError):
    pass


class ParseError(ResolutionError):
    pass


class UnknownPackage(ResolutionError):
    def __init__(self, package_id: str):
        super().__init__(f"Unknown package: {package_id}. Catalog unavailable.")
        self.package_id = package_id


# Precondition errors: raised before any record or task is created.


class PreconditionError(PackageError):
    pass


class AlreadyInstalled(PreconditionError):
    def __init__(self, package_id: str):
        super().__init__(f"Package {package_id} is already installed")
        self.package_id = package_id


class MissingDependency(PreconditionError):
    def __init__(self, package_id: str, dependency: str):
        super().__init__(f"Missing dependency for {package_id}: {dependency}")
        self.package_id = package_id
        self.dependency = dependency


class PackageNotFound(PackageError):
    def __init__(self, package_id: str):
        super().__init__(f"Package not found: {package_id}")
        self.package_id = package_id


# Step errors: raised by the step interpreter.


class StepError(PackageError):
    pass


class DownloadError(StepError):
    pass


class HashMismatch(DownloadError):
    def __init__(self, expected: str, actual: str):
        super().__init__(f"SHA256 mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class MissingTemplateFile(StepError):
    def __init__(self, key: str):
        super().__init__(f"Template file not found in manifest: {key}")
        self.key = key


class ExecError(StepError):
    def __init__(
        self,
        command: str,
        exit_code: Optional[int],
        output: str = "",
        timed_out: bool = False,
    ):
        if timed_out:
            message = f"Command timed out: {command}"
        else:
            message = f"Command failed with exit code {exit_code}: {command}"
        tail = output.strip()[-500:]
        if tail:
            message = f"{message}\n{tail}"
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.output = output
        self.timed_out = timed_out


class ContainerRuntimeError(StepError):
    pass


class ContainerRuntimeUnavailable(ContainerRuntimeError):
    def __init__(self, reason: str = ""):
        message = "Docker is not available"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InstallFailed(PackageError):
    """An install step failed; the failure is recorded on the package and task."""

    def __init__(self, package_id: str, task_id: str, message: str):
        super().__init__(message)
        self.package_id = package_id
        self.task_id = task_id
