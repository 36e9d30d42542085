"""
docker-compose log viewing for a project
"""
import asyncio
import logging
import os
import subprocess
import threading
from typing import AsyncGenerator, Dict, List, Optional

from microdock.exceptions import DockerUnavailableError, ProjectNotFoundError
from microdock.services.docker import ComposeRunner
from microdock.utils import DEPLOYMENT_DIR

logger = logging.getLogger(__name__)


class LogViewer:
    """Follows `docker-compose logs -f` in a project's deployment folder

    At most one follower process per project; asking again replaces it.
    follow() and stop() wait for the old process to exit, so async code
    calls them through a worker thread.
    """

    def __init__(self, compose: Optional[ComposeRunner] = None, stop_timeout: float = 5.0):
        self.compose = compose or ComposeRunner()
        self.stop_timeout = stop_timeout
        self._followers: Dict[str, subprocess.Popen] = {}
        self._lock = threading.Lock()

    @staticmethod
    def deployment_path(project_path: str) -> str:
        deployment_path = os.path.join(project_path, DEPLOYMENT_DIR)
        if not os.path.isdir(deployment_path):
            raise ProjectNotFoundError(f"No deployment folder in {project_path}")
        return deployment_path

    def follow(self, project_path: str) -> subprocess.Popen:
        """Start following the logs of every service of a project"""
        deployment_path = self.deployment_path(project_path)
        command = self.compose.follow_command()
        self.stop(project_path)

        try:
            proc = subprocess.Popen(
                command,
                cwd=deployment_path,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise DockerUnavailableError(f"{command[0]} is not available: {e}") from e

        with self._lock:
            self._followers[project_path] = proc

        name = os.path.basename(os.path.normpath(project_path))
        threading.Thread(
            target=self._pump, args=(proc, name), name=f"logs-{name}", daemon=True
        ).start()
        logger.info(f"Following Docker logs of {name} (pid {proc.pid})")
        return proc

    @staticmethod
    def _pump(proc: subprocess.Popen, name: str):
        for line in proc.stdout:
            logger.info(f"[{name}] {line.rstrip()}")

    def is_following(self, project_path: str) -> bool:
        with self._lock:
            proc = self._followers.get(project_path)
        return proc is not None and proc.poll() is None

    def stop(self, project_path: str) -> bool:
        """Stop following a project; False if nothing was followed"""
        with self._lock:
            proc = self._followers.pop(project_path, None)
        if proc is None:
            return False

        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=2)
        return True

    def stop_all(self):
        with self._lock:
            project_paths = list(self._followers.keys())
        for project_path in project_paths:
            self.stop(project_path)

    def tail(self, project_path: str, lines: int = 100) -> List[str]:
        """Recent log lines of the project"""
        return self.compose.logs(self.deployment_path(project_path), lines)

    async def stream(self, project_path: str) -> AsyncGenerator[str, None]:
        """Yield log lines as docker-compose prints them"""
        deployment_path = self.deployment_path(project_path)
        command = self.compose.follow_command()

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=deployment_path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise DockerUnavailableError(f"{command[0]} is not available: {e}") from e

        try:
            while True:
                line = await proc.stdout.readline()
                if not line:
                    break
                yield line.decode(errors="replace").rstrip()
        finally:
            if proc.returncode is None:
                proc.terminate()
                await proc.wait()
