"""
Application state: one workspace root and the services operating on it
"""
import asyncio
import logging
from typing import Optional

from microdock.config import settings
from microdock.exceptions import OperationInProgressError
from microdock.schemas import Project, StatusSnapshot
from microdock.services.docker import DockerManager, ComposeRunner
from microdock.services.events import EventBus, EventType
from microdock.services.local import LocalRunner
from microdock.services.logs import LogViewer
from microdock.services.orchestrator import LifecycleOrchestrator
from microdock.services.readiness import ReadinessChecker
from microdock.services.scanner import WorkspaceScanner
from microdock.services.status import StatusProber, StatusMonitor

logger = logging.getLogger(__name__)


class Workspace:
    """Holds the service instances of one workspace root"""

    def __init__(
        self,
        root: Optional[str] = None,
        docker: Optional[DockerManager] = None,
        compose: Optional[ComposeRunner] = None,
        readiness: Optional[ReadinessChecker] = None,
        bus: Optional[EventBus] = None,
        mode: Optional[str] = None,
        opener=None,
    ):
        self.root = root or settings.WORKSPACE_ROOT
        self.mode = mode or settings.VIEW_MODE
        self.bus = bus or EventBus()
        self.scanner = WorkspaceScanner(self.root)
        self.docker = docker or DockerManager()
        self.compose = compose or ComposeRunner()
        self.readiness = readiness or ReadinessChecker()
        self.logs = LogViewer(self.compose)

        orchestrator_kwargs = {} if opener is None else {"opener": opener}
        self.orchestrator = LifecycleOrchestrator(
            docker=self.docker,
            compose=self.compose,
            scanner=self.scanner,
            bus=self.bus,
            readiness=self.readiness,
            log_viewer=self.logs,
            **orchestrator_kwargs,
        )
        self.local = LocalRunner(self.scanner, self.bus, readiness=self.readiness, opener=opener)
        self.prober = StatusProber(self.docker, self.scanner)
        self.monitor = StatusMonitor(self.prober, self.bus)

    async def startup(self):
        logger.info(f"Workspace root: {self.root} (mode: {self.mode})")
        await self.monitor.start()

    async def shutdown(self):
        await self.monitor.stop()
        await asyncio.to_thread(self.logs.stop_all)
        self.local.terminate_all()

    async def snapshot(self) -> StatusSnapshot:
        """Current tree for the active execution mode"""
        if self.mode == "local":
            return self.local.snapshot()
        return await asyncio.to_thread(self.prober.snapshot)

    async def set_mode(self, mode: str) -> bool:
        """Switch execution mode, quietly stopping everything of the old one

        Returns:
            False if the workspace already was in that mode
        """
        if mode == self.mode:
            return False
        if self.orchestrator.is_busy:
            raise OperationInProgressError(self.orchestrator.current_operation)

        logger.info(f"Switching from {self.mode} to {mode} mode")
        if self.mode == "docker":
            for project in self.scanner.list_projects():
                await self.orchestrator.stop_all(project, quiet=True)
        else:
            with self.orchestrator.exclusive("stop local microservices"):
                await self.local.stop_all(quiet=True)

        self.mode = mode
        snapshot = await self.snapshot()
        self.bus.publish(EventType.STATUS_CHANGED, snapshot=snapshot.model_dump(mode="json"), mode=mode)
        return True

    async def remove_project(self, project: Project) -> int:
        """Stop and remove the containers of a project that is going away"""
        await asyncio.to_thread(self.logs.stop, project.path)
        if self.mode == "local":
            with self.orchestrator.exclusive(f"stop {project.name} (local)"):
                await self.local.stop_all(project, quiet=True)
            return 0
        removed = await self.orchestrator.remove_project_containers(project)
        await self.monitor.refresh()
        return removed
