"""
Fatal and recoverable pipeline errors.

Every error carries the name of the build invariant it protects so the CLIs
can print a single diagnostic line instead of a traceback.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for errors that stop (or skip part of) a build."""

    invariant = "pipeline"

    def __init__(self, message: str, invariant: str | None = None) -> None:
        super().__init__(message)
        if invariant:
            self.invariant = invariant


class InputError(PipelineError):
    """A raw city file could not be read; the city is skipped."""

    invariant = "input-file"


class SitemapError(PipelineError):
    """The rendered tree cannot produce a valid sitemap."""

    invariant = "non-empty-sitemap"


class PublishError(PipelineError):
    """A publish gate failed; nothing was cut over."""

    invariant = "publish"
