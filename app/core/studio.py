"""
Studio collaborators reached over HTTP: the project file store and the
deployment hook. Both live behind PUBLIC_BASE_URL.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

FILES_PATH = "/api/studio/files"
DEPLOY_HOOK_PATH = "/api/deploy/hooks"


class FileWriter(ABC):
    """File-write capability used by execute and fix."""

    @abstractmethod
    async def write_file(self, project_id: str, path: str, content: str) -> tuple[bool, Optional[str]]:
        """Return (True, None) on success or (False, error)."""


class StudioClient(FileWriter):
    """httpx client for the studio file API and deploy hook."""

    def __init__(self, base_url: str, timeout_s: float = 20):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    async def write_file(self, project_id: str, path: str, content: str) -> tuple[bool, Optional[str]]:
        payload = {"projectId": project_id, "path": path, "content": content}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                response = await client.put(f"{self.base_url}{FILES_PATH}", json=payload)
        except httpx.TimeoutException:
            logger.warning(f"studio_write_timeout project_id={project_id}")
            return False, f"Timed out writing {path}"
        except httpx.RequestError as e:
            logger.warning(f"studio_write_network_error project_id={project_id} error_type={type(e).__name__}")
            return False, f"Network error writing {path}: {type(e).__name__}"

        if not response.is_success:
            logger.warning(f"studio_write_failed project_id={project_id} status={response.status_code}")
            return False, f"Failed to update file: {path} (status {response.status_code})"

        logger.info(f"studio_file_written project_id={project_id} bytes={len(content)}")
        return True, None

    async def trigger_deploy(self, project_id: str) -> bool:
        """Fire the deploy hook. Never raises."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                response = await client.post(
                    f"{self.base_url}{DEPLOY_HOOK_PATH}",
                    json={"projectId": project_id},
                )
        except httpx.HTTPError as e:
            logger.warning(f"deploy_trigger_failed project_id={project_id} error_type={type(e).__name__}")
            return False

        if not response.is_success:
            logger.warning(f"deploy_trigger_failed project_id={project_id} status={response.status_code}")
            return False
        logger.info(f"deploy_triggered project_id={project_id}")
        return True
