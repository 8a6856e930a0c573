"""
Stagger Scheduler - paced admission of devices into the readiness set.

Opening many USB video streams at once saturates a shared bus, so devices
are released one at a time, `delay` seconds apart, in discovery order.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence


class ReadinessSet:
    """Add-only set of admitted device ids."""

    def __init__(self):
        self._ids = set()
        self._order: List[str] = []
        self._times: Dict[str, float] = {}

    def add(self, device_id: str, at: float) -> bool:
        if device_id in self._ids:
            return False
        self._ids.add(device_id)
        self._order.append(device_id)
        self._times[device_id] = at
        return True

    def reset(self):
        self._ids = set()
        self._order = []
        self._times = {}

    def __contains__(self, device_id) -> bool:
        return device_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def order(self) -> List[str]:
        return list(self._order)

    def admitted_at(self, device_id: str) -> Optional[float]:
        return self._times.get(device_id)


class StaggerScheduler:
    """
    Admits device ids at index * delay after schedule().

    Each pending admission is an asyncio task keyed by device id. Admission i
    waits for admission i-1 and then keeps at least `delay` after it, so a
    late timer delays the rest of the queue instead of compressing it.
    """

    def __init__(self, delay: float = 1.0, on_admit: Optional[Callable[[str], None]] = None):
        self.logger = logging.getLogger("scheduler")
        self.delay = delay
        self.readiness = ReadinessSet()

        self._on_admit = on_admit
        self._tasks: Dict[str, asyncio.Task] = {}
        self._closed = False

    def schedule(self, device_ids: Sequence[str]):
        """Replace the device list and start admitting from offset 0."""
        if self._closed:
            raise RuntimeError("Scheduler is closed")

        self.cancel_all()
        self.readiness.reset()

        loop = asyncio.get_running_loop()
        start = loop.time()
        previous: Optional[str] = None
        admitted: Dict[str, asyncio.Event] = {}

        for index, device_id in enumerate(dict.fromkeys(device_ids)):
            admitted[device_id] = asyncio.Event()
            self._tasks[device_id] = asyncio.create_task(
                self._admit_later(device_id, start + index * self.delay, previous, admitted),
                name=f"admit:{device_id}",
            )
            previous = device_id

        self.logger.info(f"Scheduled {len(self._tasks)} device(s), {self.delay:.2f}s apart")

    async def _admit_later(
        self,
        device_id: str,
        due: float,
        previous: Optional[str],
        admitted: Dict[str, asyncio.Event],
    ):
        loop = asyncio.get_running_loop()

        if previous is not None:
            await admitted[previous].wait()
            due = max(due, self.readiness.admitted_at(previous) + self.delay)

        remaining = due - loop.time()
        if remaining > 0:
            await asyncio.sleep(remaining)

        if self._closed:
            return

        self._tasks.pop(device_id, None)
        if self.readiness.add(device_id, loop.time()):
            self.logger.debug(f"Admitted {device_id}")
            admitted[device_id].set()
            if self._on_admit:
                self._on_admit(device_id)

    def cancel_all(self):
        """Cancel every pending admission."""
        for task in self._tasks.values():
            task.cancel()
        if self._tasks:
            self.logger.debug(f"Cancelled {len(self._tasks)} pending admission(s)")
        self._tasks = {}

    def close(self):
        self._closed = True
        self.cancel_all()

    @property
    def pending(self) -> List[str]:
        return list(self._tasks.keys())

    def is_ready(self, device_id: str) -> bool:
        return device_id in self.readiness
