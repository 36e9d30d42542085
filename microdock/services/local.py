"""
Local execution mode: microservices run as uvicorn processes on the host
"""
import asyncio
import logging
import os
import subprocess
from typing import Callable, Dict, List, Optional

from microdock.config import settings
from microdock.exceptions import OperationError, ReadinessTimeoutError
from microdock.presentation import describe, describe_project
from microdock.schemas import (
    Microservice, MicroserviceInfo, MicroserviceStatus, OperationOutcome, Project, ProjectInfo, StatusSnapshot,
)
from microdock.services.compose import service_port
from microdock.services.events import EventBus, EventType
from microdock.services.readiness import ReadinessChecker
from microdock.services.scanner import WorkspaceScanner

logger = logging.getLogger(__name__)


class LocalRunner:
    """Starts and stops `uvicorn app.main:app --reload` per microservice"""

    def __init__(
        self,
        scanner: WorkspaceScanner,
        bus: EventBus,
        readiness: Optional[ReadinessChecker] = None,
        opener: Optional[Callable[[str], None]] = None,
        uvicorn_command: Optional[str] = None,
        stop_timeout: float = 5.0,
    ):
        self.scanner = scanner
        self.bus = bus
        self.readiness = readiness or ReadinessChecker()
        self.opener = opener
        self.uvicorn_command = (uvicorn_command or settings.UVICORN_COMMAND).split()
        self.stop_timeout = stop_timeout
        self._processes: Dict[str, subprocess.Popen] = {}

    def is_running(self, microservice: Microservice) -> bool:
        proc = self._processes.get(microservice.path)
        if proc is None:
            return False
        if proc.poll() is not None:
            # exited on its own (crash, port in use...)
            del self._processes[microservice.path]
            return False
        return True

    def status(self, microservice: Microservice) -> MicroserviceStatus:
        return MicroserviceStatus.RUNNING if self.is_running(microservice) else MicroserviceStatus.STOPPED

    def _command(self, port: int) -> List[str]:
        return self.uvicorn_command + ["app.main:app", "--reload", "--port", str(port)]

    def _spawn(self, microservice: Microservice) -> int:
        """Launch the process and return its port"""
        app_path = os.path.join(microservice.path, "app", "main.py")
        if not os.path.isfile(app_path):
            raise OperationError(f"main.py not found in {os.path.dirname(app_path)}")

        compose_file = microservice.project.compose_path
        if not os.path.isfile(compose_file):
            raise OperationError(f"docker-compose.yml not found in {os.path.dirname(compose_file)}")

        port = service_port(compose_file, microservice.name)
        if port is None:
            raise OperationError(
                f'Could not find port for microservice "{microservice.name}" in docker-compose.yml'
            )

        command = self._command(port)
        logger.info(f"Launching {microservice.name}: {' '.join(command)} (cwd={microservice.path})")
        try:
            proc = subprocess.Popen(
                command,
                cwd=microservice.path,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise OperationError(f"Failed to launch {command[0]}: {e}") from e

        self._processes[microservice.path] = proc
        return port

    async def start(self, microservice: Microservice, notify: bool = True) -> OperationOutcome:
        if self.is_running(microservice):
            if notify:
                self.bus.warning(f'Microservice "{microservice.name}" is already running.')
            return OperationOutcome.ALREADY_RUNNING

        try:
            port = self._spawn(microservice)
        except OperationError as e:
            if notify:
                self.bus.error(str(e))
            else:
                logger.error(str(e))
            return OperationOutcome.FAILED

        if notify:
            self.bus.info(f"Starting local microservice: {microservice.name}")
        self.bus.publish(EventType.STATUS_CHANGED, snapshot=self.snapshot().model_dump(mode="json"))

        try:
            url = await self.readiness.wait(port)
        except ReadinessTimeoutError as e:
            logger.warning(str(e))
            return OperationOutcome.STARTED

        self.bus.publish(EventType.OPEN_URL, url=url)
        if self.opener is not None:
            self.opener(url)
        return OperationOutcome.STARTED

    def _terminate(self, proc: subprocess.Popen):
        """SIGTERM, then SIGKILL once stop_timeout runs out (blocking)"""
        proc.terminate()
        try:
            proc.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait(timeout=2)

    async def stop(self, microservice: Microservice, notify: bool = True) -> OperationOutcome:
        proc = self._processes.pop(microservice.path, None)
        if proc is None or proc.poll() is not None:
            if notify:
                self.bus.warning(f'Microservice "{microservice.name}" is not running.')
            return OperationOutcome.ALREADY_STOPPED

        try:
            await asyncio.to_thread(self._terminate, proc)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error(f'Failed to stop local microservice "{microservice.name}": {e}')
            if notify:
                self.bus.error(f'Failed to stop microservice "{microservice.name}".')
            return OperationOutcome.FAILED

        if notify:
            self.bus.info(f"Stopped local microservice: {microservice.name}")
        self.bus.publish(EventType.STATUS_CHANGED, snapshot=self.snapshot().model_dump(mode="json"))
        return OperationOutcome.STOPPED

    async def start_all(self, project: Project) -> Dict[OperationOutcome, int]:
        counts: Dict[OperationOutcome, int] = {}
        for microservice in self.scanner.list_microservices(project):
            outcome = await self.start(microservice, notify=False)
            counts[outcome] = counts.get(outcome, 0) + 1

        messages = {
            OperationOutcome.STARTED: ("info", "Started {n} microservice(s) successfully."),
            OperationOutcome.ALREADY_RUNNING: ("info", "{n} microservice(s) were already running."),
            OperationOutcome.FAILED: ("error", "Failed to start {n} microservice(s)."),
        }
        for outcome, (level, template) in messages.items():
            if counts.get(outcome):
                self.bus.notify(level, template.format(n=counts[outcome]))
        return counts

    async def stop_all(self, project: Optional[Project] = None, quiet: bool = False) -> Dict[OperationOutcome, int]:
        """Stop the microservices of one project, or of every project"""
        projects = [project] if project is not None else self.scanner.list_projects()
        counts: Dict[OperationOutcome, int] = {}
        for p in projects:
            for microservice in self.scanner.list_microservices(p):
                outcome = await self.stop(microservice, notify=False)
                counts[outcome] = counts.get(outcome, 0) + 1

        if not quiet:
            messages = {
                OperationOutcome.STOPPED: ("info", "Stopped {n} microservice(s) successfully."),
                OperationOutcome.ALREADY_STOPPED: ("info", "{n} microservice(s) were already stopped."),
                OperationOutcome.FAILED: ("error", "Failed to stop {n} microservice(s)."),
            }
            for outcome, (level, template) in messages.items():
                if counts.get(outcome):
                    self.bus.notify(level, template.format(n=counts[outcome]))
        return counts

    def terminate_all(self):
        """Kill every tracked process (application shutdown)"""
        for proc in list(self._processes.values()):
            if proc.poll() is None:
                proc.terminate()
        self._processes.clear()

    def snapshot(self) -> StatusSnapshot:
        projects = []
        for project in self.scanner.list_projects():
            services = []
            for microservice in self.scanner.list_microservices(project):
                status = self.status(microservice)
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
        return StatusSnapshot(docker_available=True, projects=projects)
