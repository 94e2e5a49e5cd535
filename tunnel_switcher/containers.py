"""
Container supervisor.
Restarts the containers that consume the active tunnel configuration
(e.g. gluetun and anything sharing its network namespace).
"""
import asyncio
import logging
from typing import List, Tuple

from .exceptions import ContainerRestartError

logger = logging.getLogger(__name__)


async def run_command(cmd: list) -> Tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )
    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        # Timed out or cancelled by the caller: do not leave the child behind
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    return proc.returncode, stdout.decode().strip(), stderr.decode().strip()


def parse_container_list(raw: str) -> List[str]:
    """Split a comma-separated CONTAINERS_TO_RESTART value, dropping blanks."""
    if not raw:
        return []
    return [name.strip() for name in raw.split(",") if name.strip()]


class DockerSupervisor:
    """Restarts containers through the docker CLI (needs the docker socket mounted)."""

    def __init__(self, docker_bin: str = "docker"):
        self.docker_bin = docker_bin

    async def restart(self, name: str) -> None:
        logger.info("Restarting container %s", name)
        try:
            code, _, err = await run_command([self.docker_bin, "restart", name])
        except OSError as e:
            raise ContainerRestartError(f"Could not run {self.docker_bin}: {e}") from e
        if code != 0:
            raise ContainerRestartError(err or f"docker restart exited with status {code}")
        logger.info("Container %s restarted", name)
