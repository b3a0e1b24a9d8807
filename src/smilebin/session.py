"""Wiring of store, runner cache and resolver for one running session."""

from dataclasses import dataclass

from .anchor import AnchorResolver
from .config import Config
from .cooldown import NetworkCooldown
from .runner import RunnerCache
from .store import AnnotationStore, GraphQLStore, MemoryStore


@dataclass
class Session:
    """Everything a surface (CLI, TUI, web) needs to work with annotations."""

    config: Config
    store: AnnotationStore
    runners: RunnerCache
    cooldown: NetworkCooldown
    resolver: AnchorResolver

    async def fetch(self, path: str):
        """Fetch annotations for a file unless the store is cooling down."""
        return await self.resolver.fetch_annotations(path, skip=self.cooldown.active())

    async def close(self) -> None:
        await self.store.aclose()


def open_session(config: Config, store: AnnotationStore | None = None) -> Session:
    cooldown = NetworkCooldown(retry_interval=config.retry_interval)
    if store is None:
        if config.offline:
            store = MemoryStore()
        else:
            store = GraphQLStore(config.backend_url, token=config.token, cooldown=cooldown)
    runners = RunnerCache(timeout=config.git_timeout)
    resolver = AnchorResolver(
        store, runners, user_id=config.user_id, max_concurrency=config.max_concurrency
    )
    return Session(
        config=config, store=store, runners=runners, cooldown=cooldown, resolver=resolver
    )
