"""
Docker status probing and monitoring

StatusProber derives the status of microservices from Docker state.
StatusMonitor keeps it fresh: it polls daemon reachability on a fixed
interval and, while the daemon is up, follows the Docker event stream.
Both sources publish through the event bus as status_changed.
"""
import asyncio
import logging
import threading
from typing import List, Optional

from microdock.config import settings
from microdock.exceptions import DockerUnavailableError
from microdock.presentation import describe, describe_project
from microdock.schemas import (
    ContainerInfo, DockerStatus, MicroserviceInfo, MicroserviceStatus, ProjectInfo, StatusSnapshot,
)
from microdock.services.docker import DockerManager, STATUS_EVENTS
from microdock.services.events import EventBus, EventType
from microdock.services.scanner import WorkspaceScanner
from microdock.utils import compose_service_name

logger = logging.getLogger(__name__)

# Seconds to wait for the event listener thread after closing its stream
LISTENER_JOIN_TIMEOUT = 2.0


def status_from_containers(microservice_name: str, containers: List[ContainerInfo]) -> MicroserviceStatus:
    """Status of a microservice given the full container list

    The first container (list order) whose name contains
    microservice-<normalized-name> decides.
    """
    service = compose_service_name(microservice_name)
    for container in containers:
        if service in container.name:
            if container.status == "running":
                return MicroserviceStatus.RUNNING
            return MicroserviceStatus.STOPPED
    return MicroserviceStatus.NOT_DEPLOYED


class StatusProber:
    """Computes microservice statuses from the Docker daemon"""

    def __init__(self, docker: DockerManager, scanner: WorkspaceScanner):
        self.docker = docker
        self.scanner = scanner

    def docker_status(self) -> DockerStatus:
        cli_installed = self.docker.is_cli_installed()
        daemon_running = cli_installed and self.docker.is_daemon_running()
        return DockerStatus(
            cli_installed=cli_installed,
            daemon_running=daemon_running,
            install_url=None if daemon_running else settings.DOCKER_WEBSITE,
        )

    def _containers(self) -> Optional[List[ContainerInfo]]:
        """All containers, or None when Docker cannot be used"""
        if not self.docker.is_cli_installed():
            logger.warning("Docker CLI is not installed")
            return None
        if not self.docker.is_daemon_running():
            logger.warning("Docker daemon is not running")
            return None
        try:
            return self.docker.list_containers(all=True)
        except DockerUnavailableError as e:
            logger.error(f"Error fetching Docker containers: {e}")
            return None

    def probe(self, microservice_name: str) -> MicroserviceStatus:
        """Status of one microservice"""
        try:
            containers = self._containers()
        except Exception as e:
            logger.error(f"Unexpected error probing {microservice_name}: {e}", exc_info=True)
            return MicroserviceStatus.ERROR
        if containers is None:
            return MicroserviceStatus.NEEDS_DOCKER
        return status_from_containers(microservice_name, containers)

    def snapshot(self) -> StatusSnapshot:
        """Statuses of every microservice of every project

        Docker is queried once for the whole workspace.
        """
        error = False
        try:
            containers = self._containers()
        except Exception as e:
            logger.error(f"Unexpected error reading Docker state: {e}", exc_info=True)
            containers, error = None, True

        projects = []
        for project in self.scanner.list_projects():
            services = []
            for microservice in self.scanner.list_microservices(project):
                if error:
                    status = MicroserviceStatus.ERROR
                elif containers is None:
                    status = MicroserviceStatus.NEEDS_DOCKER
                else:
                    status = status_from_containers(microservice.name, containers)
                services.append(MicroserviceInfo(
                    name=microservice.name,
                    path=microservice.path,
                    status=status,
                    presentation=describe(status),
                ))

            running = sum(1 for s in services if s.status == MicroserviceStatus.RUNNING)
            projects.append(ProjectInfo(
                name=project.name,
                path=project.path,
                compose_file=project.compose_path,
                running=running,
                total=len(services),
                description=describe_project(running, len(services)),
                microservices=services,
            ))

        return StatusSnapshot(docker_available=containers is not None, projects=projects)


def _log_refresh_failure(future):
    """Done-callback for refreshes scheduled from the event listener thread"""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Status refresh after Docker event failed: {error}", exc_info=error)


class StatusMonitor:
    """Keeps statuses fresh and publishes status_changed on the bus"""

    def __init__(self, prober: StatusProber, bus: EventBus, interval: Optional[float] = None):
        self.prober = prober
        self.bus = bus
        self.interval = settings.POLL_INTERVAL_SECONDS if interval is None else interval
        self.daemon_running = False
        self.last_snapshot: Optional[StatusSnapshot] = None
        self._is_running = False
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stream = None
        self._listener: Optional[threading.Thread] = None

    async def start(self):
        """Initial check, event subscription and background polling"""
        if self._is_running:
            logger.warning("Status monitor already running")
            return

        self._loop = asyncio.get_running_loop()
        self.daemon_running = await asyncio.to_thread(self.prober.docker.is_daemon_running)
        if self.daemon_running:
            await asyncio.to_thread(self._start_event_listener)
        await self.refresh()

        self._is_running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Status monitor started (every {self.interval:g}s)")

    async def stop(self):
        if not self._is_running:
            return

        logger.info("Stopping status monitor...")
        self._is_running = False
        await asyncio.to_thread(self._stop_event_listener)

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Status monitor stopped")

    async def refresh(self) -> StatusSnapshot:
        """Recompute every status and publish the snapshot"""
        snapshot = await asyncio.to_thread(self.prober.snapshot)
        self.last_snapshot = snapshot
        self.bus.publish(EventType.STATUS_CHANGED, snapshot=snapshot.model_dump(mode="json"))
        return snapshot

    async def check_once(self) -> bool:
        """Poll daemon reachability; act only on a transition

        Returns:
            True if the daemon state changed
        """
        running = await asyncio.to_thread(self.prober.docker.is_daemon_running)
        if running == self.daemon_running:
            return False

        self.daemon_running = running
        self.bus.publish(EventType.DOCKER_STATE, daemon_running=running)
        if running:
            logger.info("Docker daemon started")
            await asyncio.to_thread(self._start_event_listener)
        else:
            logger.error("Docker daemon stopped.")
            await asyncio.to_thread(self._stop_event_listener)
        await self.refresh()
        return True

    async def _poll_loop(self):
        while self._is_running:
            try:
                await asyncio.sleep(self.interval)
                if not self._is_running:
                    break
                await self.check_once()
            except asyncio.CancelledError:
                logger.info("Status poll loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error in status poll loop: {e}", exc_info=True)

    def _start_event_listener(self):
        self._stop_event_listener()
        try:
            self._stream = self.prober.docker.events()
        except DockerUnavailableError as e:
            logger.error(f"Error connecting to Docker events: {e}")
            return

        self._listener = threading.Thread(
            target=self._consume_events, args=(self._stream,), name="docker-events", daemon=True
        )
        self._listener.start()

    def _stop_event_listener(self):
        stream, self._stream = self._stream, None
        if stream is not None and hasattr(stream, "close"):
            try:
                stream.close()
            except Exception as e:
                logger.debug(f"Closing Docker event stream: {e}")
        listener, self._listener = self._listener, None
        if listener is not None and listener is not threading.current_thread():
            listener.join(timeout=LISTENER_JOIN_TIMEOUT)
            if listener.is_alive():
                logger.warning("Docker event listener did not stop in time")

    def _consume_events(self, stream):
        """Worker thread: one refresh per status-changing container event"""
        try:
            for event in stream:
                action = event.get("status") or event.get("Action")
                if action in STATUS_EVENTS:
                    logger.debug(f"Docker event: {action} {event.get('id', '')[:12]}")
                    self._schedule_refresh()
        except Exception as e:
            # Stream ends with an error when the daemon stops or close() is called
            logger.debug(f"Docker event stream ended: {e}")

    def _schedule_refresh(self):
        if self._loop is None or self._loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(self.refresh(), self._loop)
        future.add_done_callback(_log_refresh_failure)
