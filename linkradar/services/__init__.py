"""Service layer: link lifecycle, archive job queue, job shell and worker."""

from linkradar.services.archive_job import ArchiveJob
from linkradar.services.links import LinkService
from linkradar.services.queue import QueueManager
from linkradar.services.worker import ArchiveWorker

__all__ = [
    "ArchiveJob",
    "ArchiveWorker",
    "LinkService",
    "QueueManager",
]
