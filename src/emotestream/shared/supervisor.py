"""Restart supervision for the EmoteStream services.

Each service is a connect-subscribe-run sequence. When that sequence fails
(broker unreachable, consumer loop died, publish failed) the supervisor tears the
service down, waits, and runs the whole sequence again.
"""

import asyncio
import signal
import time
from abc import ABC, abstractmethod
from enum import Enum

from .logger import get_logger

logger = get_logger(__name__)


class RestartStrategy(Enum):
    NONE = "none"
    ON_FAILURE = "on_failure"


class ServiceState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"
    RESTARTING = "restarting"


class SupervisedService(ABC):
    """A service the supervisor can start, stop and restart."""

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin the service's main task."""

    @abstractmethod
    async def stop(self) -> None:
        """Release everything ``start`` acquired. Must tolerate a partial start."""

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def wait(self) -> None:
        """Block until the main task ends; raise if it failed.

        The default never returns, leaving failure detection to health checks.
        """
        await asyncio.Event().wait()


class ServiceConfig:
    """Restart policy for one supervised service.

    A ``backoff_multiplier`` of 1.0 gives a fixed delay between attempts; larger
    values back off exponentially up to ``restart_delay_max``. ``max_restarts``
    counts restarts inside ``restart_window_seconds``; None retries forever.
    """

    def __init__(
        self,
        name: str,
        restart_strategy: RestartStrategy = RestartStrategy.ON_FAILURE,
        max_restarts: int | None = None,
        restart_window_seconds: float = 300.0,
        restart_delay_seconds: float = 5.0,
        restart_delay_max: float = 60.0,
        backoff_multiplier: float = 1.0,
        health_check_interval: float = 30.0,
        shutdown_timeout: float = 15.0,
    ):
        self.name = name
        self.restart_strategy = restart_strategy
        self.max_restarts = max_restarts
        self.restart_window_seconds = restart_window_seconds
        self.restart_delay_seconds = restart_delay_seconds
        self.restart_delay_max = restart_delay_max
        self.backoff_multiplier = backoff_multiplier
        self.health_check_interval = health_check_interval
        self.shutdown_timeout = shutdown_timeout


class ServiceSupervisor:
    """Runs one service and reruns it after failures according to its ``ServiceConfig``."""

    unhealthy_limit = 3

    def __init__(self, service: SupervisedService, config: ServiceConfig):
        self.service = service
        self.config = config

        self.state = ServiceState.STOPPED
        self.restart_count = 0
        self.restart_history: list[float] = []
        self.last_error: str | None = None

        self.health_task: asyncio.Task | None = None
        self.supervisor_task: asyncio.Task | None = None

    def _set_state(self, state: ServiceState) -> None:
        if state is self.state:
            return
        logger.info(
            "Service state changed",
            service_name=self.config.name,
            old_state=self.state.value,
            new_state=state.value,
        )
        self.state = state

    async def start_supervised(self) -> None:
        if self.supervisor_task and not self.supervisor_task.done():
            logger.warning("Service already being supervised", service_name=self.config.name)
            return
        self.supervisor_task = asyncio.create_task(self._run(), name=f"supervise-{self.config.name}")

    async def stop_supervised(self) -> None:
        if self.supervisor_task and not self.supervisor_task.done():
            self.supervisor_task.cancel()
            try:
                await self.supervisor_task
            except asyncio.CancelledError:
                pass
        await self._stop_service()

    async def _run(self) -> None:
        try:
            while True:
                try:
                    await self._start_service()
                    await self._watch_service()
                except asyncio.CancelledError:
                    logger.info("Supervision cancelled", service_name=self.config.name)
                    raise
                except Exception as e:
                    self.last_error = f"{type(e).__name__}: {e}"
                    logger.error("Service failed", service_name=self.config.name, error=self.last_error, exc_info=True)

                    await self._stop_service()
                    if not self._should_restart():
                        logger.error("Giving up on service", service_name=self.config.name)
                        return

                    delay = self._calculate_restart_delay()
                    self._set_state(ServiceState.RESTARTING)
                    logger.info(
                        "Restarting service after delay",
                        service_name=self.config.name,
                        delay_seconds=delay,
                        attempt=self.restart_count,
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.info("Service exited cleanly", service_name=self.config.name)
                    return
        finally:
            await self._stop_service()

    async def _start_service(self) -> None:
        self._set_state(ServiceState.STARTING)
        try:
            await self.service.start()
        except Exception:
            self._set_state(ServiceState.FAILED)
            raise

        self._set_state(ServiceState.RUNNING)
        self.health_task = asyncio.create_task(self._health_loop(), name=f"health-{self.config.name}")

    async def _stop_service(self) -> None:
        if self.state in (ServiceState.STOPPED, ServiceState.STOPPING):
            return
        self._set_state(ServiceState.STOPPING)

        if self.health_task and not self.health_task.done():
            self.health_task.cancel()
            try:
                await self.health_task
            except asyncio.CancelledError:
                pass
        self.health_task = None

        try:
            await asyncio.wait_for(self.service.stop(), timeout=self.config.shutdown_timeout)
        except TimeoutError:
            logger.warning("Service did not stop within timeout", service_name=self.config.name)
        except Exception as e:
            logger.error("Error stopping service", service_name=self.config.name, error=str(e))

        self._set_state(ServiceState.STOPPED)

    async def _watch_service(self) -> None:
        """Return when the service's main task ends; raise if it or the health loop failed."""
        wait_task = asyncio.create_task(self.service.wait())
        watched = {wait_task}
        if self.health_task:
            watched.add(self.health_task)

        try:
            done, _ = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not wait_task.done():
                wait_task.cancel()
                try:
                    await wait_task
                except asyncio.CancelledError:
                    pass

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _health_loop(self) -> None:
        failures = 0
        while self.state is ServiceState.RUNNING:
            await asyncio.sleep(self.config.health_check_interval)
            if self.state is not ServiceState.RUNNING:
                return

            if await self.service.health_check():
                failures = 0
                continue

            failures += 1
            logger.warning(
                "Health check failed", service_name=self.config.name, failures=failures, limit=self.unhealthy_limit
            )
            if failures >= self.unhealthy_limit:
                raise RuntimeError(f"Service {self.config.name} failed {failures} health checks in a row")

    def _should_restart(self) -> bool:
        if self.config.restart_strategy is RestartStrategy.NONE:
            return False

        now = time.time()
        self.restart_history = [t for t in self.restart_history if now - t < self.config.restart_window_seconds]
        if self.config.max_restarts is not None and len(self.restart_history) >= self.config.max_restarts:
            logger.error(
                "Restart limit reached",
                service_name=self.config.name,
                max_restarts=self.config.max_restarts,
                window_seconds=self.config.restart_window_seconds,
            )
            return False

        self.restart_history.append(now)
        self.restart_count += 1
        return True

    def _calculate_restart_delay(self) -> float:
        recent = max(len(self.restart_history) - 1, 0)
        delay = self.config.restart_delay_seconds * self.config.backoff_multiplier ** min(recent, 6)
        return min(delay, self.config.restart_delay_max)


class ProcessSupervisor:
    """Owns the supervisors of one process and its SIGTERM/SIGINT handling."""

    def __init__(self):
        self.service_supervisors: dict[str, ServiceSupervisor] = {}
        self.shutdown_event = asyncio.Event()
        self.signal_handlers_registered = False

    def add_service(self, service: SupervisedService, config: ServiceConfig) -> ServiceSupervisor:
        if config.name in self.service_supervisors:
            raise ValueError(f"Service {config.name} already exists")
        supervisor = ServiceSupervisor(service, config)
        self.service_supervisors[config.name] = supervisor
        return supervisor

    def register_signal_handlers(self) -> None:
        if self.signal_handlers_registered:
            return

        def request_shutdown() -> None:
            logger.info("Received shutdown signal")
            self.shutdown_event.set()

        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            logger.warning("Signal handlers not supported on this platform")
            return
        self.signal_handlers_registered = True

    async def start_all(self) -> None:
        logger.info("Starting services", services=list(self.service_supervisors))
        for supervisor in self.service_supervisors.values():
            await supervisor.start_supervised()
            supervisor.supervisor_task.add_done_callback(self._on_supervisor_done)

    def _on_supervisor_done(self, _task: asyncio.Task) -> None:
        # Nothing left to wait for once every supervisor has finished
        if all(s.supervisor_task is not None and s.supervisor_task.done() for s in self.service_supervisors.values()):
            self.shutdown_event.set()

    async def stop_all(self) -> None:
        await asyncio.gather(
            *(supervisor.stop_supervised() for supervisor in self.service_supervisors.values()),
            return_exceptions=True,
        )
        logger.info("All services stopped")

    async def wait_for_shutdown(self) -> None:
        await self.shutdown_event.wait()


async def run_with_supervisor(
    services: list[tuple[SupervisedService, ServiceConfig]], register_signals: bool = True
) -> None:
    """Run ``services`` under supervision until a shutdown signal or until all of them finish."""
    supervisor = ProcessSupervisor()
    for service, config in services:
        supervisor.add_service(service, config)

    if register_signals:
        supervisor.register_signal_handlers()

    try:
        await supervisor.start_all()
        await supervisor.wait_for_shutdown()
    finally:
        await supervisor.stop_all()
