"""
Poll checkpoint and processed-event ledger.

The checkpoint is the per-repository timestamp below which every comment has
been fully processed. The ledger records the ids of comments at or above the
checkpoint that were already handled, so that comments sharing a timestamp
with the checkpoint, or re-delivered after a crash, are not processed twice.

State File Structure:
    ``poll/<owner>__<name>.json``::

        {"repo": "octo/widgets", "last_poll_at": "2024-05-01T10:00:00+00:00"}

    ``ledger/<owner>__<name>.json``::

        {"repo": "octo/widgets", "processed": {"1001": "2024-05-01T10:00:00+00:00"}}
"""

from datetime import datetime
from pathlib import Path

import structlog

from repo_pilot.engine.json_store import JsonFileStore, repo_slug

log = structlog.get_logger(__name__)


class PollStateStore:
    """Durable cursor and dedup ledger for incremental comment polling."""

    def __init__(self, state_dir: str | Path) -> None:
        self._checkpoints = JsonFileStore(Path(state_dir) / "poll")
        self._ledgers = JsonFileStore(Path(state_dir) / "ledger")

    def _checkpoint_path(self, repo: str) -> Path:
        return self._checkpoints.root / f"{repo_slug(repo)}.json"

    def _ledger_path(self, repo: str) -> Path:
        return self._ledgers.root / f"{repo_slug(repo)}.json"

    async def get_checkpoint(self, repo: str) -> datetime | None:
        """Return the checkpoint, or None if the repository was never polled."""
        async with self._checkpoints.locked(repo):
            document = await self._checkpoints.read_document(self._checkpoint_path(repo))
        if not document or not document.get("last_poll_at"):
            return None
        return datetime.fromisoformat(document["last_poll_at"])

    async def advance_checkpoint(self, repo: str, timestamp: datetime) -> datetime:
        """Move the checkpoint forward to ``timestamp``.

        The checkpoint never moves backwards: an older timestamp leaves it
        unchanged. Ledger entries older than the new checkpoint are pruned,
        since comments below the checkpoint are never considered again.

        Returns:
            The checkpoint after the call
        """
        async with self._checkpoints.locked(repo):
            path = self._checkpoint_path(repo)
            document = await self._checkpoints.read_document(path)
            current = None
            if document and document.get("last_poll_at"):
                current = datetime.fromisoformat(document["last_poll_at"])
            if current is not None and timestamp <= current:
                return current
            await self._checkpoints.write_document(path, {"repo": repo, "last_poll_at": timestamp.isoformat()})

        log.info("checkpoint_advanced", repo=repo, checkpoint=timestamp.isoformat())
        await self._prune_ledger(repo, timestamp)
        return timestamp

    async def reset_checkpoint(self, repo: str, timestamp: datetime | None = None) -> None:
        """Set the checkpoint explicitly, rewinding it if needed.

        Only used by operators (``repo-pilot reset-checkpoint``). Passing
        None clears the checkpoint so the next cycle fetches every comment;
        the ledger still prevents reprocessing of handled comment ids.
        """
        async with self._checkpoints.locked(repo):
            path = self._checkpoint_path(repo)
            value = timestamp.isoformat() if timestamp else None
            await self._checkpoints.write_document(path, {"repo": repo, "last_poll_at": value})
        log.warning("checkpoint_reset", repo=repo, checkpoint=value)

    async def is_processed(self, repo: str, comment_id: int) -> bool:
        async with self._ledgers.locked(repo):
            document = await self._ledgers.read_document(self._ledger_path(repo))
        return bool(document) and str(comment_id) in document.get("processed", {})

    async def mark_processed(self, repo: str, comment_id: int, created_at: datetime) -> None:
        """Record a comment id as handled. Idempotent."""
        async with self._ledgers.locked(repo):
            path = self._ledger_path(repo)
            document = await self._ledgers.read_document(path) or {"repo": repo, "processed": {}}
            processed = document.setdefault("processed", {})
            if str(comment_id) in processed:
                return
            processed[str(comment_id)] = created_at.isoformat()
            await self._ledgers.write_document(path, document)

    async def _prune_ledger(self, repo: str, checkpoint: datetime) -> None:
        async with self._ledgers.locked(repo):
            path = self._ledger_path(repo)
            document = await self._ledgers.read_document(path)
            if not document:
                return
            processed = document.get("processed", {})
            kept = {
                comment_id: created_at
                for comment_id, created_at in processed.items()
                if datetime.fromisoformat(created_at) >= checkpoint
            }
            if len(kept) != len(processed):
                document["processed"] = kept
                await self._ledgers.write_document(path, document)
                log.debug("ledger_pruned", repo=repo, removed=len(processed) - len(kept))
