"""
Background Task Dispatch
========================

Fire-and-forget execution of automation work triggered by ticket
mutations.

Every task runs as its own asyncio task so the request that triggered it
never waits on it. Failures are retried with exponential backoff; once
the attempts are exhausted the task is recorded as a dead letter (kept in
a bounded in-memory log and written to the dead-letter logger). Nothing
raised by a task ever propagates to the submitter.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, List, Optional, Set, Tuple, Type

from ticket_automation.core.exceptions import (
    DomainException,
    ValidationException,
    ResourceNotFoundException,
)
from ticket_automation.shared.infrastructure.logging import (
    DEAD_LETTER_LOGGER,
    automation_task,
    get_logger,
)

logger = get_logger(__name__)
dead_letter_logger = get_logger(DEAD_LETTER_LOGGER)

# Deterministic failures: retrying cannot change the outcome
NON_RETRYABLE: Tuple[Type[BaseException], ...] = (
    DomainException,
    ValidationException,
    ResourceNotFoundException,
)


@dataclass
class DeadLetter:
    """An automation task that failed on every attempt."""

    task_name: str
    error: str
    error_type: str
    attempts: int
    arguments: dict = field(default_factory=dict)
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "task_name": self.task_name,
            "error": self.error,
            "error_type": self.error_type,
            "attempts": self.attempts,
            "arguments": self.arguments,
            "failed_at": self.failed_at.isoformat(),
        }


class TaskDispatcher:
    """
    Runs automation coroutines in the background with bounded retry.

    Usage:
        dispatcher = TaskDispatcher(max_attempts=3, backoff_seconds=0.5)
        dispatcher.submit("create_sla", tracker.create_sla, ticket_id)
        ...
        await dispatcher.drain()  # on shutdown
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        dead_letter_capacity: int = 500
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._tasks: Set[asyncio.Task] = set()
        self._dead_letters: Deque[DeadLetter] = deque(maxlen=dead_letter_capacity)

    def submit(
        self,
        name: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any
    ) -> asyncio.Task:
        """Schedule func(*args, **kwargs) without waiting for it."""
        loop = asyncio.get_running_loop()
        task = loop.create_task(self.run(name, func, *args, **kwargs), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(
        self,
        name: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any
    ) -> Optional[Any]:
        """
        Await func with retries.

        Returns:
            The coroutine's result, or None if every attempt failed
        """
        with automation_task(name):
            return await self._run_with_retry(name, func, *args, **kwargs)

    async def _run_with_retry(
        self,
        name: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any
    ) -> Optional[Any]:
        last_error: Optional[BaseException] = None
        attempts = 0

        for attempt in range(1, self.max_attempts + 1):
            attempts = attempt
            try:
                return await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except NON_RETRYABLE as e:
                last_error = e
                logger.warning(
                    "Automation task failed permanently",
                    extra={"task": name, "attempt": attempt, "error": str(e)}
                )
                break
            except Exception as e:
                last_error = e
                logger.warning(
                    "Automation task failed",
                    extra={
                        "task": name,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

            if attempt < self.max_attempts and self.backoff_seconds > 0:
                await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        self._record_dead_letter(name, last_error, attempts, args, kwargs)
        return None

    def _record_dead_letter(
        self,
        name: str,
        error: Optional[BaseException],
        attempts: int,
        args: tuple,
        kwargs: dict
    ) -> None:
        letter = DeadLetter(
            task_name=name,
            error=str(error),
            error_type=type(error).__name__,
            attempts=attempts,
            arguments={"args": [repr(a) for a in args], **{k: repr(v) for k, v in kwargs.items()}},
        )
        self._dead_letters.append(letter)
        dead_letter_logger.error(
            "Automation task dead-lettered",
            extra=letter.to_dict(),
            exc_info=error,
        )

    async def drain(self) -> None:
        """Wait for every in-flight task, including tasks they submit."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def dead_letters(self) -> List[DeadLetter]:
        return list(self._dead_letters)
