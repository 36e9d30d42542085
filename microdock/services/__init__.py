"""
Service modules
"""
from microdock.services.docker import DockerManager, ComposeRunner
from microdock.services.events import EventBus, EventType
from microdock.services.local import LocalRunner
from microdock.services.logs import LogViewer
from microdock.services.orchestrator import LifecycleOrchestrator
from microdock.services.readiness import ReadinessChecker
from microdock.services.scanner import WorkspaceScanner
from microdock.services.status import StatusProber, StatusMonitor

__all__ = [
    "DockerManager", "ComposeRunner", "EventBus", "EventType", "LocalRunner", "LogViewer",
    "LifecycleOrchestrator", "ReadinessChecker", "WorkspaceScanner", "StatusProber", "StatusMonitor",
]
