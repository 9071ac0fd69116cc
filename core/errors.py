# core/errors.py
"""Error taxonomy for the deploy pipeline.

Every stage failure raises a subclass of DeployError. The HTTP layer maps all
of them to a generic 500; ``output`` carries the external tool's diagnostics
so they can be logged server-side.
"""
from typing import Optional


class ConfigError(Exception):
    """Startup configuration could not be read or is invalid."""


class DeployError(Exception):
    stage = "unknown"

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output

    def __str__(self) -> str:
        msg = super().__str__()
        if self.output:
            return f"{msg}: {self.output.strip()}"
        return msg


class WorkspaceError(DeployError):
    stage = "fetch"


class FetchError(DeployError):
    stage = "fetch"


class NotDeployableError(DeployError):
    stage = "validate"


class ImageBuildError(DeployError):
    stage = "build"


class RuntimeQueryError(DeployError):
    stage = "reconcile"


class PortsExhaustedError(DeployError):
    stage = "reconcile"


class LaunchError(DeployError):
    stage = "launch"
