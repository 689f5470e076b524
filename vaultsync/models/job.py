from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

"""Job registry seam.

The HTTP router and job queue live outside this package; the engine only needs
to turn a job id into the output directory holding the job's spreadsheets and
photos.
"""

__all__ = [
    "Job",
    "JobRegistry",
    "DirectoryJobRegistry",
]


@dataclass(frozen=True)
class Job:
    id: str
    output_directory: Path


class JobRegistry(Protocol):
    def get_job(self, job_id: str) -> Job: ...


class DirectoryJobRegistry:
    """Jobs laid out as ``<root>/<job_id>/`` (the upload server's convention)."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def get_job(self, job_id: str) -> Job:
        return Job(id=job_id, output_directory=self.root / job_id)
