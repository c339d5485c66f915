"""Exceptions that abort a run.

Per-file problems never raise; they are reported as ``ItemResult`` entries.
Only startup failures and explicit stop-on-error aborts use these.
"""


class FolderizeError(Exception):
    """Base class for run-aborting errors."""


class MissingDependencyError(FolderizeError):
    """A required external binary (ffmpeg, ffprobe, exiftool) is not installed."""


class InvalidPathError(FolderizeError):
    """A required root path is missing or not a directory."""


class DiscoveryError(FolderizeError):
    """Enumerating the scan root itself failed."""


class ConversionAborted(FolderizeError):
    """A conversion failed while stop-on-error is active."""


class DuplicateProbeError(FolderizeError):
    """Duration probe failed during duplicate detection while stop-on-error is active."""
