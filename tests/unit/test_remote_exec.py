"""Tests for the SSH command-execution service client."""

import json
from dataclasses import replace

import httpx
import pytest

from patchx.core.models import RemoteNode
from patchx.integrations.remote_exec import CommandRequest, SSHServiceClient


def make_client(handler: object) -> SSHServiceClient:
    return SSHServiceClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestCommandRequest:
    """Test CommandRequest helpers."""

    def test_full_command_changes_directory(self, remote_node: RemoteNode) -> None:
        request = CommandRequest(remote_node, "git status", working_dir="/src")
        assert request.full_command == "cd /src && git status"

    def test_full_command_without_directory(self, remote_node: RemoteNode) -> None:
        assert CommandRequest(remote_node, "ls").full_command == "ls"


class TestExecute:
    """Test SSHServiceClient.execute."""

    @pytest.mark.asyncio
    async def test_posts_command_with_credentials(self, remote_node: RemoteNode) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"success": True, "stdout": "ok\n", "commandId": "c-1"}
            )

        result = await make_client(handler).execute(
            CommandRequest(remote_node, "git status", "/src", timeout=30)
        )

        assert result.success
        assert result.output == "ok\n"
        assert result.command_id == "c-1"
        request = seen[0]
        assert str(request.url) == "https://ssh.example.com/execute"
        assert request.headers["Authorization"] == "Bearer service-key"
        body = json.loads(request.content)
        assert body["command"] == "cd /src && git status"
        assert body["timeout"] == 30000
        assert body["sshKey"] == remote_node.ssh_key
        assert "password" not in body

    @pytest.mark.asyncio
    async def test_command_failure_reports_stderr(self, remote_node: RemoteNode) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "stderr": "fatal: bad ref"})

        result = await make_client(handler).execute(CommandRequest(remote_node, "git fetch"))
        assert not result.success
        assert result.error == "fatal: bad ref"

    @pytest.mark.asyncio
    async def test_service_error_status(self, remote_node: RemoteNode) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="bad gateway")

        result = await make_client(handler).execute(CommandRequest(remote_node, "ls"))
        assert not result.success
        assert result.error == "SSH service returned HTTP 502"

    @pytest.mark.asyncio
    async def test_transport_error_never_raises(self, remote_node: RemoteNode) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await make_client(handler).execute(CommandRequest(remote_node, "ls"))
        assert not result.success
        assert result.error is not None
        assert result.error.startswith("Failed to execute SSH command via service")

    @pytest.mark.asyncio
    async def test_timeout(self, remote_node: RemoteNode) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        result = await make_client(handler).execute(CommandRequest(remote_node, "ls", timeout=5))
        assert result.error == "SSH command execution timed out after 5s"

    @pytest.mark.asyncio
    async def test_node_without_service_url(self, remote_node: RemoteNode) -> None:
        node = replace(remote_node, ssh_service_api_url=None)
        client = make_client(lambda r: httpx.Response(200))
        result = await client.execute(CommandRequest(node, "ls"))
        assert not result.success
        assert "does not have an SSH service URL" in (result.error or "")

    @pytest.mark.asyncio
    async def test_password_auth_without_password(self, remote_node: RemoteNode) -> None:
        node = replace(remote_node, auth_type="password", password=None)
        client = make_client(lambda r: httpx.Response(200))
        result = await client.execute(CommandRequest(node, "ls"))
        assert result.error == "Remote node node-1 has no credential for password authentication"
