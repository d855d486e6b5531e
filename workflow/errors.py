"""Exception types shared by the workflow engine and the browser runtime."""

from __future__ import annotations

from typing import Any, Dict, Optional


class WorkflowConfigError(Exception):
    """Raised for malformed stage definitions or missing run inputs."""


class SessionClosedError(Exception):
    """The browser session behind a workflow is gone (closed or crashed)."""


class ActionError(Exception):
    def __init__(self, message: str, *, code: str = "ACTION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class TargetNotFoundError(ActionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="target-not-found", details=details)


class TargetNotInteractableError(ActionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="target-not-interactable", details=details)


class TransportError(ActionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="transport-failure", details=details)
