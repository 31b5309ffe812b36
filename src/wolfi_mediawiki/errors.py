"""Exceptions raised by the wolfi-mediawiki pipeline."""

from __future__ import annotations

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for every fatal pipeline error."""


class ConfigError(PipelineError):
    """Raised when the pipeline configuration is invalid."""


class RuntimeUnavailableError(PipelineError):
    """Raised when the container runtime CLI cannot be executed."""


class BuildError(PipelineError):
    """Raised when the image build tool exits non-zero."""

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output or ""


class SmokeTestError(PipelineError):
    """Raised when one or more smoke tests fail."""

    def __init__(self, message: str, outcome: Any = None):
        super().__init__(message)
        self.outcome = outcome


class PublishError(PipelineError):
    """Raised when registry login, tagging or push fails."""

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output or ""
