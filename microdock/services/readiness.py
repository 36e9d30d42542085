"""
HTTP readiness poll against a microservice's /docs endpoint
"""
import asyncio
import logging
import time
import requests
from typing import Optional

from microdock.config import settings
from microdock.exceptions import ReadinessTimeoutError
from microdock.utils import docs_url

logger = logging.getLogger(__name__)


class ReadinessChecker:
    """Polls http://localhost:<port>/docs until it answers 2xx"""

    def __init__(self, session: Optional[requests.Session] = None,
                 interval: Optional[float] = None, request_timeout: float = 2.0):
        self.session = session or requests.Session()
        self.interval = settings.READINESS_INTERVAL if interval is None else interval
        self.request_timeout = request_timeout

    def is_ready(self, url: str) -> bool:
        try:
            response = self.session.get(url, timeout=self.request_timeout)
            return 200 <= response.status_code < 300
        except requests.RequestException:
            return False

    async def wait(self, port: int, timeout: Optional[float] = None) -> str:
        """Wait until the service on port is ready

        Returns:
            The URL that answered

        Raises:
            ReadinessTimeoutError: if no 2xx answer arrived within timeout
        """
        timeout = settings.READINESS_TIMEOUT if timeout is None else timeout
        url = docs_url(port)
        logger.info(f"Waiting for server to be ready on port {port}...")

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if await asyncio.to_thread(self.is_ready, url):
                logger.info(f"Service at {url} is available")
                return url
            await asyncio.sleep(self.interval)

        raise ReadinessTimeoutError(url, timeout)
