"""Generation task collaborator.

The pipeline only creates a task and echoes its id; running the generation
model and moving the task through its lifecycle is owned elsewhere.
"""

from __future__ import annotations

import uuid
from typing import Protocol

from edit_agent.types import GenerationTask

TASK_STATUSES = ("pending", "streaming", "done", "failed")


class TaskStore(Protocol):
    async def create(self, prompt: str, *, model: str | None = None) -> GenerationTask:
        ...

    def get(self, task_id: str) -> GenerationTask:
        ...


class InMemoryTaskStore:
    """Process-local task store used by the API and tests."""

    def __init__(self, *, prompt_preview_chars: int = 200) -> None:
        self.prompt_preview_chars = prompt_preview_chars
        self._tasks: dict[str, GenerationTask] = {}

    async def create(self, prompt: str, *, model: str | None = None) -> GenerationTask:
        task = GenerationTask(
            id=str(uuid.uuid4()),
            prompt_truncated=prompt[: self.prompt_preview_chars],
            model=model,
        )
        self._tasks[task.id] = task
        return task

    def get(self, task_id: str) -> GenerationTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise KeyError(f"Task not found: {task_id}")
        return task

    def set_status(self, task_id: str, status: str) -> GenerationTask:
        if status not in TASK_STATUSES:
            raise ValueError(f"Unknown task status: {status}")
        task = self.get(task_id)
        task.status = status
        return task

    def __len__(self) -> int:
        return len(self._tasks)
