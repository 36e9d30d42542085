"""
Configuration settings for microdock
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Union
import os


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "microdock"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_PORT: int = 7800

    # CORS - Allow all origins for development
    CORS_ORIGINS: Union[List[str], str] = ["*"]

    # Workspace holding the projects (one directory per project)
    WORKSPACE_ROOT: str = os.getcwd()

    # Execution mode: "docker" or "local"
    VIEW_MODE: str = "docker"

    # Docker status polling
    POLL_INTERVAL_SECONDS: float = 10.0

    # Port allocation
    BASE_HOST_PORT: int = 8000
    CONTAINER_PORT: int = 8000

    # Readiness poll against http://localhost:<port>/docs
    READINESS_INTERVAL: float = 1.0
    READINESS_TIMEOUT: float = 10.0
    DEPLOY_READINESS_TIMEOUT: float = 30.0

    # External tools
    COMPOSE_COMMAND: str = "docker-compose"
    DOCKER_COMMAND: str = "docker"
    UVICORN_COMMAND: str = "uvicorn"
    OPEN_BROWSER: bool = True
    DOCKER_WEBSITE: str = "https://www.docker.com/get-started"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Handle comma-separated string from .env
            if v.strip() == '':
                return ["*"]
            return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('VIEW_MODE')
    @classmethod
    def check_view_mode(cls, v):
        if v not in ("docker", "local"):
            raise ValueError("VIEW_MODE must be 'docker' or 'local'")
        return v

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
