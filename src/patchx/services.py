"""Service wiring.

``build_services`` assembles every component from a RuntimeConfig. Each
collaborator that talks to the outside world can be injected, which is how the
tests and the CLI swap in fakes or a pre-populated store.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from patchx.analysis.conflict_detector import ConflictDetector
from patchx.config.runtime_config import RuntimeConfig, StoreBackend
from patchx.integrations.gerrit import CodeReviewClient, GerritClient
from patchx.integrations.git_workflow import RemoteGitWorkflow
from patchx.integrations.notifications import EmailNotifier, Notifier
from patchx.integrations.remote_exec import CommandExecutor, SSHServiceClient
from patchx.llm.config import load_provider_settings_from_env
from patchx.llm.factory import create_providers_from_settings
from patchx.llm.providers.base import LLMProvider
from patchx.orchestration.orchestrator import OrchestratorTimeouts, SubmissionOrchestrator
from patchx.orchestration.status import StatusReporter
from patchx.patch.upload_service import UploadService
from patchx.patch.validator import PatchValidator
from patchx.resolution.engine import ConflictResolutionEngine
from patchx.storage.kv import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from patchx.storage.repositories import (
    RemoteNodeRepository,
    SubmissionRepository,
    UploadRepository,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    """Every long-lived component of one process."""

    config: RuntimeConfig
    store: KeyValueStore
    uploads: UploadRepository
    submissions: SubmissionRepository
    nodes: RemoteNodeRepository
    validator: PatchValidator
    upload_service: UploadService
    detector: ConflictDetector
    engine: ConflictResolutionEngine
    code_review: CodeReviewClient
    executor: CommandExecutor
    workflow: RemoteGitWorkflow
    notifier: Notifier
    orchestrator: SubmissionOrchestrator
    status_reporter: StatusReporter
    _closeables: list[Any] = field(default_factory=list)

    async def aclose(self) -> None:
        """Wait for in-flight submissions, then close owned HTTP clients."""
        await self.orchestrator.drain()
        for resource in self._closeables:
            await resource.aclose()
        self._closeables.clear()


def build_store(config: RuntimeConfig) -> KeyValueStore:
    if config.store_backend is StoreBackend.FILE:
        return FileKeyValueStore(config.store_path)
    return InMemoryKeyValueStore()


def build_services(
    config: RuntimeConfig | None = None,
    *,
    store: KeyValueStore | None = None,
    providers: Mapping[str, LLMProvider] | None = None,
    code_review: CodeReviewClient | None = None,
    executor: CommandExecutor | None = None,
    notifier: Notifier | None = None,
) -> ServiceContainer:
    """Assemble the service graph.

    Args:
        config: Runtime configuration. Defaults to ``RuntimeConfig.from_env()``.
        store: Key-value store. Built from ``config.store_backend`` when omitted.
        providers: AI providers. Read from the environment when omitted.
        code_review: Gerrit client. A GerritClient from config when omitted.
        executor: Remote command executor. An SSHServiceClient when omitted.
        notifier: Status notifier. An EmailNotifier from config when omitted.

    Raises:
        ConfigError: If the configuration or provider settings are invalid.
    """
    config = config or RuntimeConfig.from_env()
    closeables: list[Any] = []

    store = store if store is not None else build_store(config)
    uploads = UploadRepository(store)
    submissions = SubmissionRepository(store)
    nodes = RemoteNodeRepository(store)

    if providers is None:
        settings = load_provider_settings_from_env()
        providers = create_providers_from_settings(settings, timeout=int(config.provider_timeout))
    detector = ConflictDetector()
    engine = ConflictResolutionEngine(
        providers,
        detector=detector,
        provider_timeout=config.provider_timeout,
        max_tokens=config.ai_max_tokens,
    )

    if code_review is None:
        gerrit = GerritClient(
            config.gerrit_base_url,
            config.gerrit_username,
            config.gerrit_password,
            topic=config.gerrit_topic,
            request_timeout=config.gerrit_timeout,
        )
        closeables.append(gerrit)
        code_review = gerrit
    if executor is None:
        ssh_client = SSHServiceClient()
        closeables.append(ssh_client)
        executor = ssh_client
    if notifier is None:
        email = EmailNotifier(
            from_email=config.mail_from_email,
            from_name=config.mail_from_name,
            endpoint=config.mail_endpoint,
            api_key=config.mail_api_key,
            reply_to=config.mail_reply_to,
            public_site_url=config.public_site_url,
        )
        closeables.append(email)
        notifier = email

    workflow = RemoteGitWorkflow(
        executor,
        nodes,
        gerrit_base_url=config.gerrit_base_url,
        command_timeout=config.remote_command_timeout,
    )
    orchestrator = SubmissionOrchestrator(
        submissions,
        uploads,
        code_review,
        workflow=workflow,
        notifier=notifier,
        engine=engine,
        timeouts=OrchestratorTimeouts(
            node_lookup=config.node_lookup_timeout,
            workflow=config.workflow_timeout,
            gerrit=config.gerrit_timeout,
        ),
        default_working_home=config.default_working_home,
    )
    validator = PatchValidator()
    logger.info(
        f"Services ready: store={config.store_backend}, "
        f"ai_providers={engine.available_providers() or 'none'}"
    )
    return ServiceContainer(
        config=config,
        store=store,
        uploads=uploads,
        submissions=submissions,
        nodes=nodes,
        validator=validator,
        upload_service=UploadService(validator, uploads, max_file_size=config.max_file_size),
        detector=detector,
        engine=engine,
        code_review=code_review,
        executor=executor,
        workflow=workflow,
        notifier=notifier,
        orchestrator=orchestrator,
        status_reporter=StatusReporter(submissions, code_review, log_tail=config.status_log_tail),
        _closeables=closeables,
    )
