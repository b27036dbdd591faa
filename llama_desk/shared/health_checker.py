import asyncio
import subprocess
from typing import Optional

import requests

from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)


class HealthChecker:
    """
    Liveness probes for the local inference server: the HTTP health endpoint
    and the state of the owning subprocess.
    """

    @staticmethod
    async def check_http_endpoint(base_url: str, endpoint: str = "/health", timeout: float = 3.0) -> bool:
        """
        Check if an HTTP endpoint is responding with a successful status code.

        Args:
            base_url: Scheme, host and port, e.g. "http://127.0.0.1:8080"
            endpoint: The health endpoint path (default: "/health")
            timeout: Request timeout in seconds

        Returns:
            True if the endpoint responds with 200 status, False otherwise
        """
        url = f"{base_url}{endpoint}"
        try:
            response = await asyncio.to_thread(
                requests.get, url, timeout=timeout,
            )
            if response.status_code == 200:
                logger.debug(f"Health check passed for {url}")
                return True
            logger.debug(f"Health check failed for {url}: status {response.status_code}")
            return False
        except requests.RequestException as e:
            logger.debug(f"Health check failed for {url}: {e}")
            return False

    @staticmethod
    def check_process_running(process: Optional[subprocess.Popen]) -> bool:
        """
        Check if a subprocess is still running.

        Args:
            process: The subprocess to check

        Returns:
            True if the process is running, False otherwise
        """
        if process is None:
            return False

        return_code = process.poll()
        if return_code is not None:
            logger.debug(f"Process has terminated with return code {return_code}")
            return False

        return True
