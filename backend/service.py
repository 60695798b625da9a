import asyncio
import logging
import math
from typing import Dict, Optional, Tuple

from backend.errors import GenerationError, NotFoundError, StoreError, ValidationError
from backend.generator import ContentGenerator
from backend.database import JobApplicationStore
from backend.schemas import (
    GeneratedContent,
    JobApplicationOut,
    JobApplicationPage,
    Pagination,
    Status,
    StatusOut,
    can_transition,
    check_length,
    clean_text,
)

logger = logging.getLogger(__name__)

STATUS_FIELDS = ["status", "tailored_summary", "cover_letter", "updated_at"]


def validate_inputs(resume_content: Optional[str], job_description: Optional[str]) -> Tuple[str, str]:
    resume = clean_text(resume_content)
    description = clean_text(job_description)
    if not resume or not description:
        raise ValidationError()
    check_length("resume_content", resume)
    check_length("job_description", description)
    return resume, description


class JobApplicationService:
    """Creates job applications and fills them in the background.

    A record starts ``pending``. Creation spawns one task per record that moves
    it to ``processing`` and then to ``completed`` (with both texts) or
    ``failed`` (with neither). Clients follow progress with ``get_status``.
    """

    def __init__(
        self,
        store: JobApplicationStore,
        generator: ContentGenerator,
        generation_timeout: Optional[float] = None,
    ):
        self.store = store
        self.generator = generator
        self.generation_timeout = generation_timeout
        self._tasks: Dict[str, asyncio.Task] = {}

    # -------- Create & background processing --------
    async def create(
        self,
        resume_content: Optional[str],
        job_description: Optional[str],
        original_file_name: Optional[str] = None,
    ) -> JobApplicationOut:
        resume, description = validate_inputs(resume_content, job_description)
        file_name = clean_text(original_file_name) or None
        check_length("original_file_name", file_name)

        doc = await self.store.create(
            {
                "resume_content": resume,
                "job_description": description,
                "original_file_name": file_name,
            }
        )
        logger.info(f"Created job application {doc['id']}")
        self._spawn(doc["id"], resume, description)
        return JobApplicationOut.model_validate(doc)

    def _spawn(self, record_id: str, resume: str, description: str) -> asyncio.Task:
        task = asyncio.create_task(self.process(record_id, resume, description))
        self._tasks[record_id] = task
        task.add_done_callback(lambda t: self._on_task_done(record_id, t))
        return task

    def _on_task_done(self, record_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(record_id) is task:
            del self._tasks[record_id]
        if task.cancelled():
            logger.info(f"Processing of job application {record_id} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Unhandled error processing job application {record_id}", exc_info=exc)

    def get_task(self, record_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(record_id)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def _advance(self, record_id: str, current: Status, target: Status, **fields) -> bool:
        if not can_transition(current, target):
            raise ValueError(f"Illegal status transition {current.value} -> {target.value}")
        try:
            doc = await self.store.update_by_id(
                record_id, {**fields, "status": target.value}, expected_status=current
            )
        except StoreError as e:
            logger.error(f"Failed to mark job application {record_id} as {target.value}: {e}")
            return False
        if doc is None:
            logger.warning(
                f"Job application {record_id} is gone or no longer {current.value}; "
                f"skipping {target.value} update"
            )
            return False
        return True

    async def process(self, record_id: str, resume: str, description: str) -> Status:
        """Background workflow for one record. Returns the status it left the record in."""
        if not await self._advance(record_id, Status.PENDING, Status.PROCESSING):
            return Status.PENDING

        try:
            if self.generation_timeout:
                content = await asyncio.wait_for(
                    self.generator.generate_both(resume, description), self.generation_timeout
                )
            else:
                content = await self.generator.generate_both(resume, description)
        except asyncio.TimeoutError:
            logger.error(f"Generation for job application {record_id} timed out after {self.generation_timeout}s")
            await self._advance(record_id, Status.PROCESSING, Status.FAILED)
            return Status.FAILED
        except GenerationError as e:
            logger.error(f"Error processing job application {record_id}: {e}")
            await self._advance(record_id, Status.PROCESSING, Status.FAILED)
            return Status.FAILED

        done = await self._advance(
            record_id,
            Status.PROCESSING,
            Status.COMPLETED,
            tailored_summary=content.tailored_summary,
            cover_letter=content.cover_letter,
        )
        if not done:
            return Status.PROCESSING
        logger.info(f"Successfully processed job application {record_id}")
        return Status.COMPLETED

    async def drain(self) -> None:
        """Wait for every in-flight background task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Cancelled {len(tasks)} in-flight job application task(s)")
            await asyncio.gather(*tasks, return_exceptions=True)

    # -------- Synchronous generation --------
    async def generate(self, resume_content: Optional[str], job_description: Optional[str]) -> GeneratedContent:
        resume, description = validate_inputs(resume_content, job_description)
        return await self.generator.generate_both(resume, description)

    # -------- Reads & delete --------
    async def get_status(self, record_id: str) -> StatusOut:
        doc = await self.store.find_by_id(record_id, fields=STATUS_FIELDS)
        if not doc:
            raise NotFoundError()
        return StatusOut.model_validate(doc)

    async def get(self, record_id: str) -> JobApplicationOut:
        doc = await self.store.find_by_id(record_id)
        if not doc:
            raise NotFoundError()
        return JobApplicationOut.model_validate(doc)

    async def list(self, page: int = 1, limit: int = 10) -> JobApplicationPage:
        if page < 1 or limit < 1:
            raise ValidationError(
                error=f"page={page}, limit={limit}",
                message="page and limit must be positive integers",
            )
        skip = (page - 1) * limit
        docs = await self.store.find_many(skip=skip, limit=limit)
        total = await self.store.count()
        return JobApplicationPage(
            items=[JobApplicationOut.model_validate(d) for d in docs],
            pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
        )

    async def delete(self, record_id: str) -> None:
        doc = await self.store.delete_by_id(record_id)
        if not doc:
            raise NotFoundError()
        task = self._tasks.get(record_id)
        if task is not None and not task.done():
            task.cancel()
        logger.info(f"Deleted job application {record_id}")
