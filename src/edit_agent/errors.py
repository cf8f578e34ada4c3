"""
Exception types used across the edit pipeline.

Degradations that a stage recovers from locally are still modelled as
exceptions so the stage can raise and catch them at one seam and log a
uniform message. Terminal failures propagate to the orchestrator.
"""

from __future__ import annotations


class EditAgentError(Exception):
    """Base class for all edit pipeline errors."""


class ClassificationDegraded(EditAgentError):
    """Remote classifier was unavailable or returned unusable output."""


class RetrievalEmpty(EditAgentError):
    """No chunk scored above the relevance threshold."""


class CompressionSkipped(EditAgentError):
    """Source below the size threshold or full-code mode requested."""


class PatchParseError(EditAgentError):
    """Model output does not follow the patch sentinel grammar."""

    def __init__(self, line_number: int, reason: str) -> None:
        super().__init__(f"line {line_number}: {reason}")
        self.line_number = line_number
        self.reason = reason


class PatchError(EditAgentError):
    """A well-formed op that cannot be applied to the current document."""

    code = "patch_error"

    def __init__(self, op_index: int, reason: str) -> None:
        super().__init__(f"op {op_index}: {reason}")
        self.op_index = op_index
        self.reason = reason


class PatchAnchorAmbiguous(PatchError):
    code = "anchor_ambiguous"


class PatchAnchorNotFound(PatchError):
    code = "anchor_not_found"


class PatchTargetReadOnly(PatchError):
    code = "target_read_only"


class PatchTargetNotFound(PatchError):
    code = "target_not_found"


class PatchTargetUnbalanced(PatchError):
    code = "target_unbalanced"


class UpstreamError(EditAgentError):
    """A remote collaborator failed; terminal for the request."""


class UpstreamTimeout(UpstreamError):
    """A remote call exceeded its explicit deadline."""


class UpstreamUnavailable(UpstreamError):
    """A remote call failed or is not configured."""


class RequestCancelled(EditAgentError):
    """The client went away; terminal but not a failure."""
