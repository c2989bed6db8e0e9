"""
Job-related type definitions for handlers.
"""

from typing import Any

from pydantic import BaseModel


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def ok(cls, output: dict[str, Any] | None = None) -> "JobResult":
        """Create a successful result."""
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str) -> "JobResult":
        """Create a failed result."""
        return cls(success=False, error=error)
