"""Bounded-concurrency execution of one batch of image synthesis tasks.

A :class:`GenerationRun` owns everything mutable about a batch: the task list,
a fixed-size slot array with explicit presence markers, and the completion
counter.  Nothing here is shared between runs, so a superseded run can finish
in the background without touching a newer run's results.

Workers pull indices from a pre-filled :class:`asyncio.Queue`; each index is
claimed exactly once and a worker exits as soon as the queue is drained.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from adgen.models import UploadedFile
from adgen.schemas import GeneratedImage
from adgen.services.backend import GenerationBackend

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 3


class TaskState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskOutcome:
    """Success payload or failure reason for one task."""

    image: Optional[GeneratedImage] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.image is not None


@dataclass
class GenerationTask:
    index: int
    prompt: str
    state: TaskState = TaskState.PENDING
    outcome: Optional[TaskOutcome] = None


@dataclass(frozen=True)
class ProgressUpdate:
    run_id: str
    completed: int
    total: int
    concurrency: int
    images: tuple[GeneratedImage, ...]

    @property
    def fraction(self) -> str:
        return f"{self.completed}/{self.total}"

    @property
    def message(self) -> str:
        return (
            f"Generating {self.fraction} (up to {self.concurrency} at a time)..."
        )


PublishCallback = Callable[[ProgressUpdate], None]


@dataclass
class GenerationRun:
    model_image: UploadedFile
    product_image: UploadedFile
    tasks: List[GenerationTask]
    concurrency: int
    logo_image: Optional[UploadedFile] = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    completed: int = 0
    _slots: List[Optional[GeneratedImage]] = field(default_factory=list, repr=False)
    _present: List[bool] = field(default_factory=list, repr=False)
    _started: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        total = len(self.tasks)
        self._slots = [None] * total
        self._present = [False] * total

    @classmethod
    def create(
        cls,
        prompts: Sequence[str],
        *,
        model_image: UploadedFile,
        product_image: UploadedFile,
        logo_image: Optional[UploadedFile] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> "GenerationRun":
        tasks = [GenerationTask(index=i, prompt=p) for i, p in enumerate(prompts)]
        concurrency = min(max(int(max_concurrency), 1), len(tasks))
        return cls(
            model_image=model_image,
            product_image=product_image,
            logo_image=logo_image,
            tasks=tasks,
            concurrency=concurrency,
        )

    @property
    def total(self) -> int:
        return len(self.tasks)

    @property
    def is_finished(self) -> bool:
        return self.completed >= self.total

    def results(self) -> List[GeneratedImage]:
        """Present slots projected into index order."""

        return [
            image
            for image, present in zip(self._slots, self._present)
            if present and image is not None
        ]

    def failures(self) -> List[tuple[int, str]]:
        return [
            (task.index, task.outcome.error or "")
            for task in self.tasks
            if task.outcome is not None and not task.outcome.ok
        ]

    def snapshot(self) -> ProgressUpdate:
        return ProgressUpdate(
            run_id=self.run_id,
            completed=self.completed,
            total=self.total,
            concurrency=self.concurrency,
            images=tuple(self.results()),
        )

    async def execute(
        self,
        backend: GenerationBackend,
        on_publish: Optional[PublishCallback] = None,
    ) -> List[GeneratedImage]:
        """Run every task to a terminal state and return the ordered successes.

        Individual task failures are recorded on the task and never raised.
        """

        if self._started:
            raise RuntimeError(f"run {self.run_id} already executed")
        self._started = True

        queue: asyncio.Queue[int] = asyncio.Queue()
        for task in self.tasks:
            queue.put_nowait(task.index)

        logger.info(
            "[run.start] run=%s total=%s concurrency=%s",
            self.run_id,
            self.total,
            self.concurrency,
        )
        if self.concurrency:
            await asyncio.gather(
                *(
                    self._worker(worker_id, queue, backend, on_publish)
                    for worker_id in range(self.concurrency)
                )
            )

        failures = self.failures()
        logger.info(
            "[run.done] run=%s succeeded=%s failed=%s",
            self.run_id,
            self.total - len(failures),
            len(failures),
        )
        return self.results()

    async def _worker(
        self,
        worker_id: int,
        queue: "asyncio.Queue[int]",
        backend: GenerationBackend,
        on_publish: Optional[PublishCallback],
    ) -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            task = self.tasks[index]
            task.state = TaskState.IN_FLIGHT
            try:
                src = await backend.synthesize_image(
                    self.model_image,
                    self.product_image,
                    task.prompt,
                    self.logo_image,
                )
            except Exception as exc:
                reason = str(exc) or exc.__class__.__name__
                task.state = TaskState.FAILED
                task.outcome = TaskOutcome(error=reason)
                logger.warning(
                    "[run.task] run=%s index=%s worker=%s failed: %s",
                    self.run_id,
                    index,
                    worker_id,
                    reason,
                )
            else:
                image = GeneratedImage(
                    id=f"img-{index}-{uuid.uuid4().hex[:12]}",
                    src=src,
                    prompt=task.prompt,
                )
                self._slots[index] = image
                self._present[index] = True
                task.state = TaskState.SUCCEEDED
                task.outcome = TaskOutcome(image=image)

            self.completed += 1
            if on_publish is not None:
                on_publish(self.snapshot())


__all__ = [
    "DEFAULT_MAX_CONCURRENCY",
    "GenerationRun",
    "GenerationTask",
    "ProgressUpdate",
    "TaskOutcome",
    "TaskState",
]
