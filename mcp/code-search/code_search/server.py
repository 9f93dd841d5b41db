"""Code Search MCP Server.

Indexes codebases under {base}/{project}/{branch} into Qdrant and answers
natural-language queries against them.

Tools:
- index_codebase: Start background indexing of the default codebase
- index_project: Start indexing for every component of the default project
- search_code: Semantic search over an indexed codebase
- clear_index: Drop the index of the default codebase
- get_indexing_status: Indexed, indexing and failed codebases
- list_projects / list_branches / list_components: Project discovery
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
import typing
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field

import mcp.server.fastmcp
import mcp.types

from code_search.clients import BatchEmbeddingClient, QdrantClient, create_embedding_provider
from code_search.exceptions import CodeSearchError
from code_search.paths import snapshot_path
from code_search.repositories.snapshot_store import SnapshotStore
from code_search.schemas.config import (
    EmbeddingConfig,
    ServerConfig,
    VectorStoreConfig,
    environ_with_headers,
    load_config,
)
from code_search.schemas.tools import ToolResult
from code_search.schemas.tuning import TuningProfile, load_tuning
from code_search.services.engine import CodeIndexingEngine
from code_search.services.indexing import IndexingOrchestrator
from code_search.services.reconciliation import CloudReconciler
from code_search.services.tool_handlers import Backend, ToolHandlers
from code_search.utils import DualLogger

__all__ = [
    'ServerState',
]

logger = logging.getLogger(__name__)

type ToolContext = mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any]


@dataclass
class ServerState:
    """Container for all server state - initialized once per process.

    The snapshot store, orchestrator and reconciler are shared. Embedding and
    Qdrant clients are created on demand and cached by connection config, so
    requests carrying override headers get their own clients.
    """

    environ: Mapping[str, str]
    config: ServerConfig
    tuning: TuningProfile
    store: SnapshotStore
    orchestrator: IndexingOrchestrator
    reconciler: CloudReconciler
    handlers: ToolHandlers = field(init=False)

    _embedding_clients: dict[EmbeddingConfig, BatchEmbeddingClient] = field(default_factory=dict)
    _qdrant_clients: dict[VectorStoreConfig, QdrantClient] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.handlers = ToolHandlers(self.store, self.orchestrator, self.reconciler, self.get_backend)

    @classmethod
    async def create(cls, environ: Mapping[str, str]) -> typing.Self:
        """Load configuration and the snapshot, then recover interrupted jobs."""
        config = load_config(environ)
        tuning = load_tuning(environ)

        store = SnapshotStore(snapshot_path())
        store.load()
        orchestrator = IndexingOrchestrator(
            store,
            progress_save_interval=tuning.snapshot.progress_save_interval_ms / 1000,
        )
        orchestrator.recover_interrupted()

        return cls(
            environ=dict(environ),
            config=config,
            tuning=tuning,
            store=store,
            orchestrator=orchestrator,
            reconciler=CloudReconciler(store),
        )

    def config_for(self, ctx: ToolContext | None) -> ServerConfig:
        """Config for one request: the startup config plus any header overrides."""
        headers = _request_headers(ctx)
        if not headers:
            return self.config
        environ = environ_with_headers(self.environ, headers)
        if environ is self.environ:
            return self.config
        return load_config(environ)

    def get_qdrant(self, config: VectorStoreConfig) -> QdrantClient:
        if config not in self._qdrant_clients:
            self._qdrant_clients[config] = QdrantClient(config)
        return self._qdrant_clients[config]

    def get_embedding_client(self, config: EmbeddingConfig) -> BatchEmbeddingClient:
        """Get or create the embedding client for a provider config.

        Raises:
            InvalidRequestError: If the provider needs an API key and none is set.
        """
        if config not in self._embedding_clients:
            self._embedding_clients[config] = create_embedding_provider(config, self.tuning)
            logger.info(f'[EMBED] Created {config.provider} client for model {config.model}')
        return self._embedding_clients[config]

    def get_backend(self, config: ServerConfig) -> Backend:
        qdrant = self.get_qdrant(config.vector_store)
        engine = CodeIndexingEngine(qdrant, self.get_embedding_client(config.embedding))
        return Backend(engine=engine, vector_store=qdrant)

    async def close(self) -> None:
        """Cancel running jobs, save state and close cached clients."""
        await self.orchestrator.shutdown()
        for client in self._embedding_clients.values():
            await client.close()
        for qdrant in self._qdrant_clients.values():
            await qdrant.close()


def register_tools(state: ServerState) -> None:
    """Register MCP tools with closure over server state."""

    async def run(
        ctx: ToolContext | None,
        tool_name: str,
        handler: Callable[[ServerConfig], Awaitable[ToolResult]],
    ) -> mcp.types.CallToolResult:
        log = DualLogger(ctx, logger)
        try:
            config = state.config_for(ctx)
        except CodeSearchError as e:
            result = ToolResult.error(str(e))
        else:
            result = await handler(config)
        if result.is_error:
            await log.warning(f'[TOOLS] {tool_name}: {result.text.splitlines()[0]}')
        else:
            await log.debug(f'[TOOLS] {tool_name} ok')
        return _to_call_tool_result(result)

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Index Codebase',
            destructiveHint=False,
            idempotentHint=False,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def index_codebase(
        force: bool = False,
        splitter: str = 'ast',
        custom_extensions: list[str] | None = None,
        ignore_patterns: list[str] | None = None,
        ctx: ToolContext | None = None,
    ) -> mcp.types.CallToolResult:
        """Index the default codebase ({base}/{project}/{branch}) for semantic search.

        Indexing runs in the background; use get_indexing_status to follow it.

        Args:
            force: Re-index even if the codebase is already indexed.
            splitter: 'ast' (language-aware separators) or 'langchain' (generic).
            custom_extensions: Extra file extensions to include, e.g. ['.vue', '.svelte'].
            ignore_patterns: Extra ignore patterns, e.g. ['static/**', '*.tmp'].
        """
        return await run(
            ctx,
            'index_codebase',
            lambda config: state.handlers.index_codebase(
                config,
                force=force,
                splitter=splitter,
                custom_extensions=custom_extensions or (),
                ignore_patterns=ignore_patterns or (),
            ),
        )

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Index Project',
            destructiveHint=False,
            idempotentHint=False,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def index_project(
        force: bool = False,
        splitter: str = 'ast',
        ctx: ToolContext | None = None,
    ) -> mcp.types.CallToolResult:
        """Start indexing for every component under {base}/{project}/{branch}.

        Args:
            force: Re-index components that are already indexed.
            splitter: 'ast' or 'langchain'.
        """
        return await run(
            ctx,
            'index_project',
            lambda config: state.handlers.index_project(config, force=force, splitter=splitter),
        )

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Search Code',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=True,
        ),
    )
    async def search_code(
        query: str,
        limit: int = 10,
        extension_filter: list[str] | None = None,
        ctx: ToolContext | None = None,
    ) -> mcp.types.CallToolResult:
        """Search the default codebase with a natural-language query.

        Args:
            query: What to look for, e.g. 'where is the retry policy configured'.
            limit: Maximum results (1-50, default 10).
            extension_filter: Only return files with these extensions, e.g. ['.py', '.ts'].
        """
        return await run(
            ctx,
            'search_code',
            lambda config: state.handlers.search_code(
                config,
                query,
                limit=limit,
                extension_filter=extension_filter or (),
            ),
        )

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Clear Index',
            destructiveHint=True,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def clear_index(ctx: ToolContext | None = None) -> mcp.types.CallToolResult:
        """Remove the index and the recorded state of the default codebase."""
        return await run(ctx, 'clear_index', state.handlers.clear_index)

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Indexing Status',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def get_indexing_status(ctx: ToolContext | None = None) -> mcp.types.CallToolResult:
        """Show indexed, indexing (with progress) and failed codebases."""
        return await run(ctx, 'get_indexing_status', _sync(lambda config: state.handlers.get_indexing_status()))

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='List Projects',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def list_projects(ctx: ToolContext | None = None) -> mcp.types.CallToolResult:
        """List projects under the repositories base path."""
        return await run(ctx, 'list_projects', _sync(state.handlers.list_projects))

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='List Branches',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def list_branches(ctx: ToolContext | None = None) -> mcp.types.CallToolResult:
        """List branches of the default project."""
        return await run(ctx, 'list_branches', _sync(state.handlers.list_branches))

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='List Components',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def list_components(ctx: ToolContext | None = None) -> mcp.types.CallToolResult:
        """List components of the default project and branch."""
        return await run(ctx, 'list_components', _sync(state.handlers.list_components))


class _SharedState:
    """One ServerState per process.

    HTTP transports enter the lifespan once per session; the snapshot store
    must still have a single owner, so the first session creates the state
    and the last one to leave shuts it down.
    """

    def __init__(self) -> None:
        self.state: ServerState | None = None
        self._sessions = 0
        self._flush_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> ServerState:
        async with self._lock:
            if self.state is None:
                self.state = await ServerState.create(os.environ)
                register_tools(self.state)
                interval = self.state.tuning.snapshot.save_interval_ms / 1000
                self._flush_task = asyncio.create_task(_flush_periodically(self.state.store, interval))
                _print_startup_banner(self.state)
            self._sessions += 1
            return self.state

    async def release(self) -> None:
        async with self._lock:
            self._sessions -= 1
            if self._sessions > 0 or self.state is None:
                return
            if self._flush_task is not None:
                self._flush_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._flush_task
                self._flush_task = None
            await self.state.close()
            print('✓ Code Search MCP server shutdown', file=sys.stderr)


_shared = _SharedState()


@contextlib.asynccontextmanager
async def lifespan(mcp_server: mcp.server.fastmcp.FastMCP) -> AsyncIterator[None]:
    """Manage server lifecycle - initialization before requests, cleanup after shutdown."""
    tuning = load_tuning()
    logging.basicConfig(
        level=logging.DEBUG if tuning.debug_logging else logging.INFO,
        format='%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )
    # Silence noisy third-party loggers
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('google').setLevel(logging.WARNING)

    await _shared.acquire()
    try:
        yield
    finally:
        await _shared.release()


server = mcp.server.fastmcp.FastMCP(os.environ.get('MCP_SERVER_NAME') or 'code-search', lifespan=lifespan)


def main() -> None:
    """Entry point for the MCP server."""
    config = load_config()
    server.settings.host = config.http_host
    server.settings.port = config.http_port
    server.run(transport=config.transport)


async def _flush_periodically(store: SnapshotStore, interval: float) -> None:
    """Persist pending snapshot mutations every interval seconds."""
    while True:
        await asyncio.sleep(interval)
        store.flush()


def _sync(
    handler: Callable[[ServerConfig], ToolResult],
) -> Callable[[ServerConfig], Awaitable[ToolResult]]:
    async def wrapper(config: ServerConfig) -> ToolResult:
        return handler(config)

    return wrapper


def _request_headers(ctx: ToolContext | None) -> Mapping[str, str]:
    """HTTP headers of the current request; empty for stdio."""
    if ctx is None:
        return {}
    try:
        request = ctx.request_context.request
    except ValueError:
        return {}
    headers = getattr(request, 'headers', None)
    return dict(headers) if headers is not None else {}


def _to_call_tool_result(result: ToolResult) -> mcp.types.CallToolResult:
    return mcp.types.CallToolResult(
        content=[mcp.types.TextContent(type='text', text=result.text)],
        isError=result.is_error,
    )


def _print_startup_banner(state: ServerState) -> None:
    config = state.config
    print('✓ Code Search MCP server initialized', file=sys.stderr)
    print(f'  Embedding: {config.embedding.provider} ({config.embedding.model})', file=sys.stderr)
    print(f'  Qdrant: {config.vector_store.url}', file=sys.stderr)
    print(f'  Repositories: {config.repos_base_path}', file=sys.stderr)
    print(f'  Default codebase: {config.default_codebase_path or "(none)"}', file=sys.stderr)
    print(f'  Snapshot: {state.store.path} ({len(state.store.codebases())} codebases)', file=sys.stderr)


if __name__ == '__main__':
    main()
