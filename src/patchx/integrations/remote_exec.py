"""Client for the SSH command-execution service.

Remote hosts are never contacted directly. Each command is posted to
``{service_url}/execute`` together with the host's connection details, and the
service runs it over SSH. ``execute`` reports failures in its result instead
of raising.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from patchx.core.models import CommandResult, RemoteNode

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 300.0


@dataclass(frozen=True, slots=True)
class CommandRequest:
    """One command to run on a remote node.

    Attributes:
        node: Target host and the service that reaches it.
        command: Shell command line.
        working_dir: Directory to ``cd`` into first, if any.
        timeout: Seconds the service may spend on the command.
    """

    node: RemoteNode
    command: str
    working_dir: str | None = None
    timeout: float = DEFAULT_COMMAND_TIMEOUT

    @property
    def full_command(self) -> str:
        if self.working_dir:
            return f"cd {self.working_dir} && {self.command}"
        return self.command


@runtime_checkable
class CommandExecutor(Protocol):
    async def execute(self, request: CommandRequest) -> CommandResult: ...


class SSHServiceClient:
    """Posts commands to a node's SSH command-execution service.

    Args:
        client: Optional pre-built ``httpx.AsyncClient``; owned one otherwise.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def build_payload(request: CommandRequest) -> dict[str, Any]:
        node = request.node
        payload: dict[str, Any] = {
            "host": node.host,
            "port": node.port,
            "username": node.username,
            "authType": node.auth_type,
            "command": request.full_command,
            "timeout": int(request.timeout * 1000),
        }
        if node.auth_type == "key":
            payload["sshKey"] = node.ssh_key
        else:
            payload["password"] = node.password
        return payload

    async def execute(self, request: CommandRequest) -> CommandResult:
        """Run one command. Never raises; failures come back with ``success=False``."""
        node = request.node
        if not node.ssh_service_api_url:
            return CommandResult(
                success=False,
                error=f"Remote node {node.id} does not have an SSH service URL configured",
            )
        if not node.credential:
            return CommandResult(
                success=False,
                error=(
                    f"Remote node {node.id} has no credential for {node.auth_type} authentication"
                ),
            )

        url = f"{node.ssh_service_api_url.rstrip('/')}/execute"
        headers = {"Content-Type": "application/json"}
        if node.ssh_service_api_key:
            headers["Authorization"] = f"Bearer {node.ssh_service_api_key}"

        logger.debug(f"Executing on {node.host}: {request.command[:80]}")
        try:
            response = await self._client.post(
                url,
                json=self.build_payload(request),
                headers=headers,
                timeout=request.timeout + 5,
            )
        except httpx.TimeoutException:
            return CommandResult(
                success=False,
                error=f"SSH command execution timed out after {request.timeout:g}s",
            )
        except httpx.HTTPError as e:
            return CommandResult(
                success=False, error=f"Failed to execute SSH command via service: {e}"
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_error:
            return CommandResult(
                success=False,
                error=str(data.get("error") or f"SSH service returned HTTP {response.status_code}"),
                command_id=data.get("commandId"),
            )

        success = bool(data.get("success"))
        output = data.get("combined") or data.get("stdout") or data.get("output") or ""
        error_output = data.get("stderr") or data.get("error") or None
        return CommandResult(
            success=success,
            output=str(output),
            error=None if success else str(error_output or "Command failed"),
            command_id=data.get("commandId"),
        )
