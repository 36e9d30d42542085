"""
microdock utilities
Name normalization and logging helpers
"""

import logging
import re
import unicodedata

logger = logging.getLogger("microdock")

SERVICE_PREFIX = "microservice-"

# Filesystem layout convention
PROJECT_CONFIG = "project-config.json"
MICROSERVICES_DIR = "microservices"
DEPLOYMENT_DIR = "deployment"
COMPOSE_FILE = "docker-compose.yml"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_EDGE_HYPHENS = re.compile(r"^-+|-+$")


def normalize_name(name: str) -> str:
    """Normalize a project or microservice name

    Lowercases, strips diacritics, drops every non-alphanumeric character
    and trims leading/trailing hyphens. Idempotent.
    """
    decomposed = unicodedata.normalize("NFD", name.lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _EDGE_HYPHENS.sub("", _NON_ALNUM.sub("", stripped))


def compose_service_name(name: str) -> str:
    """Compose service (and container name fragment) for a microservice"""
    return f"{SERVICE_PREFIX}{normalize_name(name)}"


def docs_url(port: int) -> str:
    return f"http://localhost:{port}/docs"


def format_elapsed_time(seconds):
    """Format elapsed time showing only non-zero hours and minutes"""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    elif minutes > 0:
        return f"{minutes}m {secs:02d}s"
    else:
        return f"{secs}s"


def setup_logging(level: str = "INFO"):
    """Configure logging for microdock"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s: %(message)s',
    )
    return logger
