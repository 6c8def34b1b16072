"""Core engine: proposal lifecycle, generation pipeline and model invocation.

Services are imported from their submodules; only the error taxonomy is
re-exported here.
"""
from .error_handling import (
    CodexError,
    NotFoundError,
    PreconditionError,
    ProposalValidationError,
    UpstreamError,
)

__all__ = [
    "CodexError",
    "NotFoundError",
    "PreconditionError",
    "ProposalValidationError",
    "UpstreamError",
]
