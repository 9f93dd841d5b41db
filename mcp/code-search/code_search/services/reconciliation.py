"""Cloud reconciliation - trims local state toward the remote collection listing.

Runs before index, search and clear when the vector store is a managed
instance shared by several writers. Policy is one-way: local records whose
codebase has no remote collection are removed; remote collections with no
local record are never added, since only the writer that indexed a codebase
should vouch for it. Records of jobs still indexing are left alone.

Reconciliation is advisory. A collection that cannot be inspected is skipped;
if the listing itself fails, local state is left as is.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from code_search.clients.protocols import VectorStore
from code_search.repositories.snapshot_store import SnapshotStore
from code_search.services.engine import COLLECTION_PREFIX, HYBRID_COLLECTION_PREFIX

__all__ = [
    'CloudReconciler',
]

logger = logging.getLogger(__name__)

CODEBASE_PATH_KEY = 'codebase_path'


class CloudReconciler:
    """One-way sync of the SnapshotStore against a VectorStore listing."""

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store

    async def reconcile(self, vector_store: VectorStore) -> Sequence[str]:
        """Remove local records absent from the remote listing.

        Returns:
            Paths removed locally (empty when skipped or on failure).
        """
        if not vector_store.is_remote:
            logger.debug('[SYNC] Local vector store, skipping cloud reconciliation')
            return []

        try:
            remote_paths = await self._remote_codebase_paths(vector_store)
        except Exception as e:
            logger.warning(f'[SYNC] Cloud reconciliation skipped: {e}', exc_info=True)
            return []

        # Indexing records belong to a job that may not have written its first point yet
        removed = [
            path
            for path, record in self._store.codebases().items()
            if path not in remote_paths and record.status != 'indexing'
        ]
        for path in removed:
            self._store.remove(path)
            logger.info(f'[SYNC] Removed {path}: no collection in the vector store')
        if removed:
            self._store.save()
        return removed

    async def _remote_codebase_paths(self, vector_store: VectorStore) -> set[str]:
        """Codebase paths confirmed by the remote listing.

        A collection that cannot be inspected is logged and skipped.
        """
        collections = [
            name
            for name in await vector_store.list_collections()
            if name.startswith((COLLECTION_PREFIX, HYBRID_COLLECTION_PREFIX))
        ]
        logger.debug(f'[SYNC] {len(collections)} code collections in the vector store')

        paths: set[str] = set()
        for name in collections:
            try:
                payload = await vector_store.first_payload(name)
            except Exception as e:
                logger.warning(f'[SYNC] Cannot inspect collection {name}, skipping: {e}')
                continue
            codebase_path = payload.get(CODEBASE_PATH_KEY) if payload else None
            if isinstance(codebase_path, str) and codebase_path:
                paths.add(codebase_path)
            else:
                logger.debug(f'[SYNC] Collection {name} has no {CODEBASE_PATH_KEY} payload')
        return paths
