import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class TimerRunner:
    """Calls ``on_tick`` every ``interval`` seconds until stopped.

    ``stop()`` cancels the loop and waits for it to unwind, so no tick runs
    after it returns. Errors raised by a tick are logged and the loop goes on.
    """

    def __init__(
        self,
        on_tick: Callable[[], Awaitable[None]],
        interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._on_tick = on_tick
        self._interval = interval
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        while True:
            try:
                await self._on_tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Timer tick failed", exc_info=True)
            await self._sleep(self._interval)

    async def __aenter__(self) -> "TimerRunner":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
