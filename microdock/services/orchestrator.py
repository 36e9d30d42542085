"""
Lifecycle orchestration of Docker microservices

The orchestrator owns the only cross-operation state: the "operation in
flight" flag and the set of ports whose docs page was already opened.
Operations never overlap; one issued while another runs is rejected
with OperationInProgressError and touches nothing.
"""
import asyncio
import logging
import webbrowser
from contextlib import contextmanager
from typing import Callable, Dict, Optional, Set

from microdock.config import settings
from microdock.exceptions import (
    MicrodockError, DockerUnavailableError, OperationError, ComposeCommandError,
    ReadinessTimeoutError, OperationInProgressError,
)
from microdock.schemas import (
    Project, Microservice, OperationOutcome, OperationResult, BulkResult, Notification, NotificationLevel,
)
from microdock.services.docker import DockerManager, ComposeRunner, first_host_port
from microdock.services.events import EventBus, EventType
from microdock.services.progress import ProgressManager, ProgressTracker
from microdock.services.readiness import ReadinessChecker
from microdock.services.scanner import WorkspaceScanner
from microdock.utils import compose_service_name

logger = logging.getLogger(__name__)

# docker-compose writes progress to stderr; these lines are not errors
NON_CRITICAL_COMPOSE_MESSAGES = [
    "Creating",
    "Created",
    "Starting",
    "Started",
    "Found orphan containers",
]

STOPPED_STATES = ("exited", "created")


def critical_compose_errors(stderr: str) -> str:
    """stderr lines of a successful compose run that look like real problems"""
    return "\n".join(
        line for line in stderr.split("\n")
        if line.strip() and not any(msg in line for msg in NON_CRITICAL_COMPOSE_MESSAGES)
    )


def _default_opener(url: str) -> None:
    if settings.OPEN_BROWSER:
        webbrowser.open(url)


class LifecycleOrchestrator:
    """Start, stop, deploy and restart microservices through Docker"""

    def __init__(
        self,
        docker: DockerManager,
        compose: ComposeRunner,
        scanner: WorkspaceScanner,
        bus: EventBus,
        readiness: Optional[ReadinessChecker] = None,
        log_viewer=None,
        opener: Optional[Callable[[str], None]] = _default_opener,
        readiness_timeout: Optional[float] = None,
        deploy_readiness_timeout: Optional[float] = None,
    ):
        self.docker = docker
        self.compose = compose
        self.scanner = scanner
        self.bus = bus
        self.readiness = readiness or ReadinessChecker()
        self.log_viewer = log_viewer
        self.opener = opener
        self.readiness_timeout = settings.READINESS_TIMEOUT if readiness_timeout is None else readiness_timeout
        self.deploy_readiness_timeout = (
            settings.DEPLOY_READINESS_TIMEOUT if deploy_readiness_timeout is None else deploy_readiness_timeout
        )
        self.progress = ProgressManager()
        self.opened_ports: Set[int] = set()
        self.last_tracker: Optional[ProgressTracker] = None
        self._current: Optional[str] = None

    # Mutual exclusion

    @property
    def is_busy(self) -> bool:
        return self._current is not None

    @property
    def current_operation(self) -> Optional[str]:
        return self._current

    @contextmanager
    def exclusive(self, title: str, total_steps: int = 5):
        """Hold the operation flag for the duration of the block

        Every lifecycle change goes through here, local mode included.

        Raises:
            OperationInProgressError: another operation holds the flag
        """
        if self._current is not None:
            raise OperationInProgressError(self._current)

        self._current = title
        tracker = self.progress.create_tracker(title, total_steps)
        self.last_tracker = tracker
        try:
            yield tracker
        except Exception as e:
            tracker.fail(str(e))
            raise
        finally:
            self._current = None
            if not tracker.finished:
                tracker.complete()
            self.bus.publish(EventType.PROGRESS, **tracker.to_dict())

    def _step(self, tracker: Optional[ProgressTracker], step: int, name: str, percent: int, message: str):
        if tracker is None:
            logger.info(message)
            return
        tracker.update(step, name, percent, message)
        self.bus.publish(EventType.PROGRESS, **tracker.to_dict())

    @staticmethod
    def finish(tracker: ProgressTracker, outcome: OperationOutcome) -> OperationOutcome:
        if outcome == OperationOutcome.FAILED:
            tracker.fail(f"{tracker.title} failed")
        else:
            tracker.complete(outcome)
        return outcome

    # Side effects

    def _say(self, level: str, message: str, notify: bool = True):
        if notify:
            self.bus.notify(level, message)
        elif level == "error":
            logger.error(message)
        else:
            logger.info(message)

    def open_url(self, url: str):
        logger.info(f"Opening {url}")
        self.bus.publish(EventType.OPEN_URL, url=url)
        if self.opener is not None:
            self.opener(url)

    async def show_logs(self, project: Project):
        """Point the operator at the project's compose logs"""
        self.bus.publish(EventType.SHOW_LOGS, project=project.name, deployment_path=project.deployment_path)
        if self.log_viewer is not None:
            try:
                await asyncio.to_thread(self.log_viewer.follow, project.path)
            except MicrodockError as e:
                logger.error(f"Cannot follow logs of {project.name}: {e}")

    async def _open_when_ready(self, name: str, port: int, timeout: float, notify: bool = True) -> bool:
        """Wait for the docs page and open it, at most once per port"""
        if port in self.opened_ports:
            return True
        try:
            url = await self.readiness.wait(port, timeout)
        except ReadinessTimeoutError as e:
            self._say("warning", f"Microservice {name} was started but is not ready yet: {e}", notify)
            return False
        self.opened_ports.add(port)
        self.open_url(url)
        return True

    # Single operations (unguarded)

    async def _deploy(self, microservice: Microservice, notify: bool = True) -> OperationOutcome:
        project = microservice.project
        service = compose_service_name(microservice.name)

        try:
            result = await asyncio.to_thread(self.compose.up, project.compose_path, service)
        except (ComposeCommandError, DockerUnavailableError) as e:
            self._say("error", f"Failed to deploy microservice {microservice.name}: {e}", notify)
            return OperationOutcome.FAILED

        critical = critical_compose_errors(result.stderr or "")
        if critical:
            self._say("warning", f"Docker Compose reported warnings or errors: {critical}", notify)
            return OperationOutcome.DEPLOYED

        self._say("info", f"Microservice {microservice.name} deployed successfully.", notify)
        try:
            container = await asyncio.to_thread(self.docker.find_container, service)
            if container is None:
                logger.error(f"Container for microservice {microservice.name} not found")
                return OperationOutcome.DEPLOYED
            port = await asyncio.to_thread(self.docker.get_host_port, container.id)
        except (DockerUnavailableError, OperationError) as e:
            logger.error(f"Cannot inspect {microservice.name} after deploy: {e}")
            return OperationOutcome.DEPLOYED

        if port is None:
            logger.error(f"No public port found for microservice {microservice.name} after starting")
        else:
            await self._open_when_ready(microservice.name, port, self.deploy_readiness_timeout, notify)
        return OperationOutcome.DEPLOYED

    async def _start(self, microservice: Microservice, notify: bool = True) -> OperationOutcome:
        service = compose_service_name(microservice.name)
        try:
            container = await asyncio.to_thread(self.docker.find_container, service)

            if container is None:
                logger.info(f"Deploying microservice {microservice.name}...")
                outcome = await self._deploy(microservice, notify)
                return OperationOutcome.DEPLOYED if outcome == OperationOutcome.DEPLOYED else OperationOutcome.FAILED

            if container.status == "running":
                logger.info(f"Microservice {microservice.name} is already running.")
                port = first_host_port(container.ports)
                if port is not None:
                    await self._open_when_ready(microservice.name, port, self.readiness_timeout, notify)
                return OperationOutcome.ALREADY_RUNNING

            await asyncio.to_thread(self.docker.start_container, container.id)
            logger.info(f"Microservice {microservice.name} started successfully.")

            port = await asyncio.to_thread(self.docker.get_host_port, container.id)
            if port is not None:
                await self._open_when_ready(microservice.name, port, self.readiness_timeout, notify)
            return OperationOutcome.STARTED

        except (DockerUnavailableError, OperationError) as e:
            logger.error(f"Failed to start microservice {microservice.name}: {e}")
            self._say(
                "error",
                f"Failed to start microservice {microservice.name}. Check the logs to debug the issue.",
                notify,
            )
            if notify:
                await self.show_logs(microservice.project)
            return OperationOutcome.FAILED

    async def _stop(self, microservice: Microservice, notify: bool = True) -> OperationOutcome:
        service = compose_service_name(microservice.name)
        try:
            container = await asyncio.to_thread(self.docker.find_container, service)
            if container is None or container.status in STOPPED_STATES:
                logger.info(f"Microservice {microservice.name} is already stopped.")
                return OperationOutcome.ALREADY_STOPPED

            await asyncio.to_thread(self.docker.stop_container, container.id)
            logger.info(f"Microservice {microservice.name} stopped successfully.")
            return OperationOutcome.STOPPED

        except (DockerUnavailableError, OperationError) as e:
            self._say("error", f"Failed to stop microservice {microservice.name}: {e}", notify)
            return OperationOutcome.FAILED

    async def _restart(self, microservice: Microservice, tracker: Optional[ProgressTracker] = None,
                       notify: bool = True) -> OperationOutcome:
        """Stop, rebuild the image, replace the container and wait for it"""
        project = microservice.project
        service = compose_service_name(microservice.name)
        failure = (f"Failed to restart microservice {microservice.name}. "
                   f"Check the logs to debug the issue and restart project.")

        try:
            self._step(tracker, 1, "stop", 20, "Stopping container...")
            container = await asyncio.to_thread(self.docker.find_container, service)

            if container is None:
                self._say(
                    "info",
                    f"Container for microservice {microservice.name} not found. Deploying microservice.",
                    notify,
                )
                outcome = await self._deploy(microservice, notify)
                return OperationOutcome.DEPLOYED if outcome == OperationOutcome.DEPLOYED else OperationOutcome.FAILED

            if container.status == "running":
                await asyncio.to_thread(self.docker.stop_container, container.id)

            self._step(tracker, 2, "build", 40, "Rebuilding Docker image...")
            try:
                await asyncio.to_thread(self.compose.build, project.compose_path, service)
            except ComposeCommandError as e:
                logger.error(f"Failed to rebuild image for microservice {microservice.name}: {e}")
                self._say("error", f"Failed to rebuild image for microservice {microservice.name}", notify)
                return OperationOutcome.FAILED

            if container.status != "created":
                self._step(tracker, 3, "remove", 60, "Removing old container...")
                await asyncio.to_thread(self.docker.remove_container, container.id)

            self._step(tracker, 4, "up", 80, "Starting container with new image...")
            await asyncio.to_thread(self.compose.up, project.compose_path, service)

            updated = await asyncio.to_thread(self.docker.find_container, service)
            if updated is None or updated.status != "running":
                self._say(
                    "error",
                    f"Microservice {microservice.name} failed to start. "
                    f"Check the logs to debug the issue and restart project.",
                    notify,
                )
                if notify:
                    await self.show_logs(project)
                return OperationOutcome.FAILED

            port = first_host_port(updated.ports)
            if port is not None:
                await self._open_when_ready(microservice.name, port, self.readiness_timeout, notify)

            self._say("info", f"Microservice {microservice.name} restarted successfully.", notify)
            return OperationOutcome.RESTARTED

        except (DockerUnavailableError, OperationError) as e:
            logger.error(f"Failed to restart microservice {microservice.name}: {e}")
            self._say("error", failure, notify)
            if notify:
                await self.show_logs(project)
            return OperationOutcome.FAILED

    # Public single operations

    async def deploy(self, microservice: Microservice) -> OperationOutcome:
        with self.exclusive(f"deploy {microservice.name}") as tracker:
            self._step(tracker, 1, "up", 20, f"Deploying microservice: {microservice.name}")
            return self.finish(tracker, await self._deploy(microservice))

    async def start(self, microservice: Microservice) -> OperationOutcome:
        with self.exclusive(f"start {microservice.name}") as tracker:
            self._step(tracker, 1, "start", 20, f"Starting microservice: {microservice.name}")
            return self.finish(tracker, await self._start(microservice))

    async def stop(self, microservice: Microservice) -> OperationOutcome:
        with self.exclusive(f"stop {microservice.name}") as tracker:
            self._step(tracker, 1, "stop", 20, f"Stopping microservice: {microservice.name}")
            outcome = await self._stop(microservice)
            if outcome == OperationOutcome.STOPPED:
                self.bus.info(f"Microservice {microservice.name} stopped.")
            elif outcome == OperationOutcome.ALREADY_STOPPED:
                self.bus.info(f"Microservice {microservice.name} is already stopped.")
            return self.finish(tracker, outcome)

    async def restart(self, microservice: Microservice) -> OperationOutcome:
        with self.exclusive(f"restart {microservice.name}") as tracker:
            return self.finish(tracker, await self._restart(microservice, tracker))

    # Bulk operations

    def _summarize(self, project: Project, counts: Dict[OperationOutcome, int],
                   messages: Dict[OperationOutcome, tuple], quiet: bool) -> BulkResult:
        result = BulkResult(project=project.name, counts=counts)
        for outcome, (level, template) in messages.items():
            count = counts.get(outcome, 0)
            if count > 0:
                notification = Notification(level=NotificationLevel(level), message=template.format(n=count))
                result.notifications.append(notification)
                if not quiet:
                    self.bus.notify(level, notification.message)
        return result

    async def _each(self, project: Project, operation) -> Dict[OperationOutcome, int]:
        counts: Dict[OperationOutcome, int] = {}
        for microservice in self.scanner.list_microservices(project):
            outcome = await operation(microservice)
            if outcome == OperationOutcome.FAILED:
                logger.error(f"Operation failed for microservice {microservice.name}")
            counts[outcome] = counts.get(outcome, 0) + 1
        return counts

    async def start_all(self, project: Project) -> BulkResult:
        """Start every microservice of a project, one after the other"""
        with self.exclusive(f"start all in {project.name}") as tracker:
            counts = await self._each(project, lambda ms: self._start(ms, notify=False))
            if counts.get(OperationOutcome.FAILED):
                await self.show_logs(project)
            self.finish(tracker, OperationOutcome.STARTED)
            return self._summarize(project, counts, {
                OperationOutcome.STARTED: ("info", "Started {n} microservice(s) successfully."),
                OperationOutcome.ALREADY_RUNNING: ("info", "{n} microservice(s) were already running."),
                OperationOutcome.DEPLOYED: ("info", "Deployed and started {n} microservice(s) successfully."),
                OperationOutcome.FAILED: (
                    "error", "Failed to start {n} microservice(s). Check the logs to debug the issue."
                ),
            }, quiet=False)

    async def stop_all(self, project: Project, quiet: bool = False) -> BulkResult:
        """Stop every microservice of a project, one after the other"""
        with self.exclusive(f"stop all in {project.name}") as tracker:
            counts = await self._each(project, lambda ms: self._stop(ms, notify=False))
            self.finish(tracker, OperationOutcome.STOPPED)
            return self._summarize(project, counts, {
                OperationOutcome.STOPPED: ("info", "Stopped {n} microservice(s) successfully."),
                OperationOutcome.ALREADY_STOPPED: ("info", "{n} microservice(s) were already stopped."),
                OperationOutcome.FAILED: ("error", "Failed to stop {n} microservice(s)."),
            }, quiet=quiet)

    async def restart_all(self, project: Project) -> BulkResult:
        """Restart every microservice of a project, one after the other"""
        with self.exclusive(f"restart all in {project.name}") as tracker:
            counts = await self._each(project, lambda ms: self._restart(ms, tracker, notify=False))
            if counts.get(OperationOutcome.FAILED):
                await self.show_logs(project)
            self.finish(tracker, OperationOutcome.RESTARTED)

            # a missing container is deployed instead, which counts as a restart
            restarted = counts.get(OperationOutcome.RESTARTED, 0) + counts.get(OperationOutcome.DEPLOYED, 0)
            summary_counts = {OperationOutcome.RESTARTED: restarted,
                              OperationOutcome.FAILED: counts.get(OperationOutcome.FAILED, 0)}
            result = self._summarize(project, summary_counts, {
                OperationOutcome.RESTARTED: ("info", "Restarted {n} microservice(s) successfully."),
                OperationOutcome.FAILED: (
                    "error",
                    "Failed to restart {n} microservice(s). Check the logs to debug the issue and restart project.",
                ),
            }, quiet=False)
            result.counts = counts
            return result

    async def remove_project_containers(self, project: Project) -> int:
        """Stop and remove the container of every microservice of a project"""
        with self.exclusive(f"remove containers of {project.name}"):
            removed = 0
            for microservice in self.scanner.list_microservices(project):
                service = compose_service_name(microservice.name)
                try:
                    container = await asyncio.to_thread(self.docker.find_container, service)
                    if container is None:
                        continue
                    if container.status == "running":
                        await asyncio.to_thread(self.docker.stop_container, container.id)
                    await asyncio.to_thread(self.docker.remove_container, container.id)
                    removed += 1
                    logger.info(f"Stopped and removed Docker container for microservice: {microservice.name}")
                except (DockerUnavailableError, OperationError) as e:
                    logger.error(f"Failed to stop/remove Docker container for microservice {microservice.name}: {e}")
            return removed

    # Command handlers

    async def run_command(self, action: str, target) -> OperationResult:
        """Outermost handler for a single-microservice command

        Never raises: conflicts become warnings, everything else an error
        notification.
        """
        operations = {
            "start": self.start,
            "stop": self.stop,
            "restart": self.restart,
            "deploy": self.deploy,
        }
        if action not in operations:
            message = f"Unknown action: {action}"
            self.bus.error(message)
            return OperationResult(outcome=OperationOutcome.FAILED, message=message)

        try:
            outcome = await operations[action](target)
        except OperationInProgressError as e:
            self.bus.warning(str(e))
            return OperationResult(outcome=OperationOutcome.BUSY, message=str(e))
        except MicrodockError as e:
            self.bus.error(f"Failed to {action} {getattr(target, 'name', target)}: {e}")
            return OperationResult(outcome=OperationOutcome.FAILED, message=str(e))
        except Exception as e:
            logger.error(f"Unexpected error during {action}: {e}", exc_info=True)
            self.bus.error(f"Failed to {action} {getattr(target, 'name', target)}: {e}")
            return OperationResult(outcome=OperationOutcome.FAILED, message=str(e))

        tracker = self.last_tracker
        return OperationResult(
            outcome=outcome,
            message=f"{action} {target.name}: {outcome.value}",
            operation_id=tracker.operation_id if tracker else None,
        )

    async def run_bulk_command(self, action: str, project: Project) -> BulkResult:
        """Outermost handler for a project-wide command

        Never raises: a rejected command is counted as busy, anything else
        as a failure.
        """
        operations = {
            "start": self.start_all,
            "stop": self.stop_all,
            "restart": self.restart_all,
        }

        def rejected(outcome: OperationOutcome, level: str, message: str) -> BulkResult:
            self.bus.notify(level, message)
            return BulkResult(
                project=project.name,
                counts={outcome: 1},
                notifications=[Notification(level=NotificationLevel(level), message=message)],
            )

        if action not in operations:
            return rejected(OperationOutcome.FAILED, "error", f"Unknown action: {action}")

        try:
            return await operations[action](project)
        except OperationInProgressError as e:
            return rejected(OperationOutcome.BUSY, "warning", str(e))
        except Exception as e:
            logger.error(f"Unexpected error during {action} of {project.name}: {e}", exc_info=True)
            return rejected(OperationOutcome.FAILED, "error", f"Failed to {action} microservices of {project.name}: {e}")
