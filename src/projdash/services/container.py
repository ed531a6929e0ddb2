"""Service container with DI wiring."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from projdash.data.db import Database
from projdash.data.local_auth import LocalAuthProvider
from projdash.data.local_store import LocalProjectStore
from projdash.data.remote_auth import RemoteAuthProvider
from projdash.data.remote_store import RemoteProjectStore
from projdash.data.rest_client import RestClient
from projdash.services.auth_service import AuthService
from projdash.services.list_sync import ListSyncController
from projdash.services.project_editor import ProjectEditor
from projdash.services.project_service import ProjectService
from projdash.services.webhook import WebhookNotifier

if TYPE_CHECKING:
    from collections.abc import Callable

    from projdash.config import Config
    from projdash.data.protocols import ProjectStoreProtocol

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Holds all application services. Built once at startup."""

    config: Config
    store: ProjectStoreProtocol
    project_service: ProjectService
    auth_service: AuthService
    notifier: WebhookNotifier
    db: Database | None = None
    rest_client: RestClient | None = None
    _unsubscribers: list[Callable[[], None]] = field(default_factory=list)

    @classmethod
    async def create(cls, config: Config) -> ServiceContainer:
        """Async factory that wires the remote backend when configured, else the local one."""
        notifier = WebhookNotifier(config.webhook_url, timeout=config.webhook_timeout)
        if config.use_remote:
            logger.info("Using Supabase backend at %s", config.supabase_url)
            client = RestClient(
                config.supabase_url, config.supabase_key, timeout=config.fetch_timeout
            )
            store = RemoteProjectStore(
                client,
                bucket=config.storage_bucket,
                poll_interval=config.realtime_poll_interval,
            )
            auth_service = AuthService(RemoteAuthProvider(client))
            return cls(
                config=config,
                store=store,
                project_service=ProjectService(store),
                auth_service=auth_service,
                notifier=notifier,
                rest_client=client,
            )

        logger.info("Using local backend at %s", config.db_path)
        db = Database(config.db_path)
        await db.__aenter__()
        local_store = LocalProjectStore(db, config.storage_dir)
        auth_service = AuthService(LocalAuthProvider(db))
        container = cls(
            config=config,
            store=local_store,
            project_service=ProjectService(local_store),
            auth_service=auth_service,
            notifier=notifier,
            db=db,
        )

        def _track_actor(event: str, session: object) -> None:
            local_store.actor = auth_service.current_user

        container._unsubscribers.append(auth_service.on_auth_state_change(_track_actor))
        return container

    def list_controller(self) -> ListSyncController:
        """A fresh controller for one mounted project list."""
        return ListSyncController(
            self.project_service,
            notifier=self.notifier if self.notifier.enabled else None,
            per_page=self.config.per_page,
            fetch_timeout=self.config.fetch_timeout or None,
            realtime_debounce=self.config.realtime_debounce,
        )

    def editor(self, project_id: str) -> ProjectEditor:
        user = self.auth_service.current_user
        return ProjectEditor(
            self.project_service,
            project_id,
            notifier=self.notifier if self.notifier.enabled else None,
            user_id=user.id if user is not None else None,
        )

    async def close(self) -> None:
        """Shut down all services."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.store.close()
        self.notifier.close()
        if self.db is not None:
            await self.db.__aexit__(None, None, None)
