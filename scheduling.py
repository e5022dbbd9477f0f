from typing import Callable, Optional


class ScheduledTask:
    """Handle for one pending callback. ``cancel()`` is safe to call repeatedly."""

    def cancel(self) -> None:
        raise NotImplementedError

    @property
    def active(self) -> bool:
        raise NotImplementedError


class Scheduler:
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledTask:
        raise NotImplementedError


class TaskSlot:
    """Owns at most one scheduled task; arming it again cancels the previous one."""

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._task: Optional[ScheduledTask] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and self._task.active

    def arm(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self.cancel()
        task: Optional[ScheduledTask] = None

        def _fire() -> None:
            if self._task is not task:
                return
            self._task = None
            callback()

        task = self._scheduler.schedule(max(0, int(delay_ms)), _fire)
        self._task = task

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()


__all__ = ["ScheduledTask", "Scheduler", "TaskSlot"]
