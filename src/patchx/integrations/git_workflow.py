"""Remote git workflow: clone, checkout, apply, status.

Every step runs through a CommandExecutor against a RemoteNode. Output lines
are streamed to an optional ``on_log`` callback with a step prefix
(``[Git Clone]``, ``[Git Checkout]``, ``[Patch Apply]``, ``[Git Status]``).

Clone and apply failures raise UpstreamUnavailableError. A checkout failure is
only a warning, since ``git clone -b`` has already checked out the branch.
"""

import asyncio
import logging
import re
import shlex
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from patchx.core.models import CommandResult, RemoteNode
from patchx.exceptions import UpstreamUnavailableError
from patchx.integrations.remote_exec import CommandExecutor, CommandRequest
from patchx.storage.repositories import RemoteNodeRepository

logger = logging.getLogger(__name__)

LogCallback = Callable[[str], Awaitable[Any]]

DEFAULT_WORKING_HOME = "~/git-work"
ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")
TARGET_DIR_PATTERN = re.compile(r"^TARGET_DIR=(.+)$", re.MULTILINE)


@dataclass(slots=True)
class GitWorkflowResult:
    """Outcome of a completed workflow run."""

    target_dir: str
    steps: dict[str, CommandResult] = field(default_factory=dict)

    @property
    def changed_files(self) -> list[str]:
        status = self.steps.get("status")
        if status is None:
            return []
        return [line[3:] for line in status.output.splitlines() if len(line) > 3]


def shell_path(path: str) -> str:
    """Quote a path for the shell, expanding a leading ``~/`` to ``$HOME``."""
    if path == "~":
        return '"$HOME"'
    if path.startswith("~/"):
        return '"$HOME"/' + shlex.quote(path[2:])
    return shlex.quote(path)


def output_lines(text: str) -> list[str]:
    cleaned = ANSI_ESCAPE.sub("", text)
    return [line.strip() for line in re.split(r"\r?\n", cleaned) if line.strip()]


class RemoteGitWorkflow:
    """Stages a patch on a remote build host before it is pushed for review.

    Args:
        executor: Command-execution client.
        nodes: Remote node repository.
        gerrit_base_url: Used to build clone URLs from bare project paths.
        command_timeout: Per-command timeout in seconds.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        nodes: RemoteNodeRepository,
        gerrit_base_url: str | None = None,
        command_timeout: float = 300.0,
    ) -> None:
        self.executor = executor
        self.nodes = nodes
        self.gerrit_base_url = (gerrit_base_url or "").rstrip("/")
        self.command_timeout = command_timeout

    async def lookup_working_home(self, node_id: str) -> str | None:
        """Return the node's configured working home, or None if unset."""
        node = await asyncio.to_thread(self.nodes.get, node_id)
        return node.working_home if node else None

    def clone_url(self, repository: str) -> str:
        """Return ``repository`` if it is a URL, else ``{gerrit base}/{repository}``."""
        if "://" in repository or repository.startswith("git@"):
            return repository
        if not self.gerrit_base_url:
            raise UpstreamUnavailableError(
                f"Cannot build a clone URL for {repository}: Gerrit base URL is not configured"
            )
        return f"{self.gerrit_base_url}/{repository.strip('/')}"

    @staticmethod
    def target_dir_name(repository: str, branch: str) -> str:
        repo_name = repository.rstrip("/").split("/")[-1].removesuffix(".git") or "repository"
        sanitized_branch = re.sub(r"[^a-zA-Z0-9_-]", "_", branch)
        return f"{repo_name}_{sanitized_branch}_{int(time.time() * 1000)}"

    async def _run(
        self, node: RemoteNode, command: str, working_dir: str | None = None
    ) -> CommandResult:
        return await self.executor.execute(
            CommandRequest(node, command, working_dir, self.command_timeout)
        )

    @staticmethod
    async def _emit(on_log: LogCallback | None, message: str) -> None:
        if on_log is not None:
            await on_log(message)

    async def _emit_lines(self, on_log: LogCallback | None, prefix: str, text: str) -> None:
        for line in output_lines(text):
            if not line.startswith("TARGET_DIR="):
                await self._emit(on_log, f"{prefix} {line}")

    async def _load_node(self, node_id: str) -> RemoteNode:
        node = await asyncio.to_thread(self.nodes.get, node_id)
        if node is None:
            raise UpstreamUnavailableError(
                f"Remote node {node_id} not found", details={"node_id": node_id}
            )
        if not node.ssh_service_api_url:
            raise UpstreamUnavailableError(
                f"Remote node {node_id} does not have an SSH service URL configured",
                details={"node_id": node_id},
            )
        return node

    async def run(
        self,
        node_id: str,
        repository: str,
        branch: str,
        patch: str,
        working_home: str = DEFAULT_WORKING_HOME,
        on_log: LogCallback | None = None,
    ) -> GitWorkflowResult:
        """Clone ``repository`` at ``branch`` on the node and apply ``patch``.

        Args:
            node_id: Remote node id.
            repository: Clone URL or project path.
            branch: Branch to clone and check out.
            patch: Unified-diff text.
            working_home: Parent directory for the clone (``~/`` allowed).
            on_log: Async callback receiving progress lines.

        Returns:
            GitWorkflowResult with the clone directory and per-step results.

        Raises:
            UpstreamUnavailableError: If the node is missing or misconfigured,
                or if the clone or apply step fails.
        """
        node = await self._load_node(node_id)
        await self._emit(
            on_log, f"[Info] Remote node: {node.name or node.id} ({node.host}:{node.port})"
        )
        await self._emit(on_log, f"[Info] Working home: {working_home}")
        result_steps: dict[str, CommandResult] = {}

        # Clone
        url = self.clone_url(repository)
        working_home = working_home.rstrip("/") or "/"
        home = shell_path(working_home)
        target = self.target_dir_name(repository, branch)
        clone_command = (
            f"mkdir -p {home} && cd {home} && "
            f"git clone -b {shlex.quote(branch)} --depth 1 {shlex.quote(url)} "
            f"{shlex.quote(target)} 2>&1 && "
            f'echo "TARGET_DIR=$(cd {shlex.quote(target)} && pwd)"'
        )
        await self._emit(on_log, f"[Info] Cloning {url} (branch {branch})...")
        started = time.perf_counter()
        clone = await self._run(node, clone_command)
        result_steps["clone"] = clone
        await self._emit_lines(on_log, "[Git Clone]", clone.output)
        if not clone.success:
            await self._emit(on_log, f"[Error] Git clone failed: {clone.error or 'Unknown error'}")
            raise UpstreamUnavailableError(
                f"Failed to clone repository: {clone.error or 'Unknown error'}",
                details={"node_id": node_id, "repository": url},
            )
        await self._emit(
            on_log, f"[Success] Git clone completed in {time.perf_counter() - started:.0f}s"
        )

        match = TARGET_DIR_PATTERN.search(ANSI_ESCAPE.sub("", clone.output))
        if match:
            target_dir = match.group(1).strip()
            work_dir = shlex.quote(target_dir)
        else:
            target_dir = f"{working_home.rstrip('/')}/{target}"
            work_dir = f"{home}/{shlex.quote(target)}"
        logger.info(f"Cloned {url} on {node.host} into {target_dir}")

        # Checkout
        checkout = await self._run(node, f"git checkout {shlex.quote(branch)} 2>&1", work_dir)
        result_steps["checkout"] = checkout
        await self._emit_lines(on_log, "[Git Checkout]", checkout.output)
        if checkout.success:
            await self._emit(on_log, "[Success] Branch checkout completed")
        else:
            logger.warning(f"Checkout of {branch} on {node.host} failed: {checkout.error}")
            await self._emit(
                on_log, f"[Warning] Branch checkout: {checkout.error or 'Unknown warning'}"
            )

        # Apply
        apply = await self._apply_patch(node, patch, work_dir)
        result_steps["apply"] = apply
        await self._emit_lines(on_log, "[Patch Apply]", apply.output)
        if not apply.success:
            if apply.error:
                await self._emit_lines(on_log, "[Patch Apply Error]", apply.error)
            raise UpstreamUnavailableError(
                f"Failed to apply patch: {apply.error or 'Unknown error'}",
                details={"node_id": node_id, "target_dir": target_dir},
            )
        await self._emit(on_log, "[Success] Patch applied successfully")

        # Status
        status = await self._run(node, "git status --porcelain", work_dir)
        result_steps["status"] = status
        await self._emit_lines(on_log, "[Git Status]", status.output)

        return GitWorkflowResult(target_dir=target_dir, steps=result_steps)

    async def _apply_patch(self, node: RemoteNode, patch: str, work_dir: str) -> CommandResult:
        patch_file = f"/tmp/patch_{int(time.time() * 1000)}.patch"
        delimiter = f"PATCHX_EOF_{uuid.uuid4().hex}"
        write = await self._run(
            node, f"cat > {patch_file} << '{delimiter}'\n{patch}\n{delimiter}", work_dir
        )
        if not write.success:
            return write
        try:
            return await self._run(node, f"git apply --verbose {patch_file} 2>&1", work_dir)
        finally:
            cleanup = await self._run(node, f"rm -f {patch_file}", work_dir)
            if not cleanup.success:
                logger.warning(f"Failed to remove {patch_file} on {node.host}: {cleanup.error}")
