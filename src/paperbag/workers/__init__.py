"""Background jobs and the in-process scheduler that runs them."""

from paperbag.workers.cartoon_generation_worker import (
    CARTOON_GENERATION_JOB,
    make_cartoon_generation_job,
    process_cartoon_generation,
    recover_orphaned_images,
)
from paperbag.workers.scheduler import AsyncioJobScheduler, JobSchedulingError

__all__ = [
    "CARTOON_GENERATION_JOB",
    "AsyncioJobScheduler",
    "JobSchedulingError",
    "make_cartoon_generation_job",
    "process_cartoon_generation",
    "recover_orphaned_images",
]
