"""Checkpoint persistence: durable, immutable session snapshots for resume.

On-disk layout, one directory per session::

    <root>/<session_id>/<session_id>_000001.json.gz
    <root>/<session_id>/<session_id>_000002.json.gz
    <root>/<session_id>/session.json

Checkpoint files are gzip-compressed UTF-8 JSON and are never rewritten; each
save takes the next sequence number. ``session.json`` is a small index with
the latest sequence and the session status. Every file is written to a
temporary name in the same directory and moved into place with
``os.replace``, so a crash mid-write leaves the previous files intact.
"""
from __future__ import annotations

import asyncio
import gzip
import json
import logging
import os
import re
import tempfile
import zlib
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any, Sequence

from trustee.errors import (
    CheckpointCorruptError,
    CheckpointNotFoundError,
    CheckpointWriteError,
)
from trustee.state import WorkflowState
from trustee_llm.types.messages import Message

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
INDEX_FILE = "session.json"
CHECKPOINT_SUFFIX = ".json.gz"

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class SessionStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Checkpoint:
    """Snapshot of a session at a given iteration."""

    session_id: str
    timestamp: str
    iteration: int
    conversation: tuple[Message, ...]
    state: WorkflowState
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)
    sequence: int = 0

    @classmethod
    def create_now(
        cls,
        session_id: str,
        conversation: Sequence[Message],
        state: WorkflowState,
        metadata: dict[str, Any] | None = None,
    ) -> Checkpoint:
        """Create a checkpoint stamped with the current UTC time."""
        return cls(
            session_id=session_id,
            timestamp=_now(),
            iteration=state.iteration,
            conversation=tuple(conversation),
            state=state,
            metadata=dict(metadata or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": FORMAT_VERSION,
            "session_id": self.session_id,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "iteration": self.iteration,
            "conversation": [m.to_dict() for m in self.conversation],
            "state": self.state.to_dict(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        version = data.get("version")
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported checkpoint format version: {version!r}")
        return cls(
            session_id=data["session_id"],
            timestamp=data["timestamp"],
            iteration=int(data["iteration"]),
            conversation=tuple(Message.from_dict(m) for m in data["conversation"]),
            state=WorkflowState.from_dict(data["state"]),
            metadata=dict(data.get("metadata") or {}),
            sequence=int(data.get("sequence", 0)),
        )


@dataclass(frozen=True)
class SessionIndex:
    """Contents of a session's ``session.json``."""

    session_id: str
    latest_sequence: int
    status: SessionStatus = SessionStatus.ACTIVE
    task_description: str = ""
    task_type: str | None = None
    iteration: int = 0
    outcome: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "latest_sequence": self.latest_sequence,
            "status": self.status.value,
            "task_description": self.task_description,
            "task_type": self.task_type,
            "iteration": self.iteration,
            "outcome": self.outcome,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionIndex:
        return cls(
            session_id=data["session_id"],
            latest_sequence=int(data["latest_sequence"]),
            status=SessionStatus(data.get("status", SessionStatus.ACTIVE.value)),
            task_description=data.get("task_description", ""),
            task_type=data.get("task_type"),
            iteration=int(data.get("iteration", 0)),
            outcome=data.get("outcome"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


def _atomic_write(path: Path, payload: bytes) -> None:
    """Write *payload* to *path* via a temporary file and ``os.replace``."""
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=path.suffix, dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class CheckpointManager:
    """Saves and restores session checkpoints under a root directory.

    Sessions never share files, so concurrent sessions need no lock. Within
    one session the coordinator never issues two calls at once.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        compresslevel: int = 6,
        keep: int | None = None,
    ) -> None:
        if keep is not None and keep < 1:
            raise ValueError("keep must be at least 1")
        self.root = Path(root)
        self.compresslevel = compresslevel
        self.keep = keep

    # --- paths ------------------------------------------------------------

    def session_dir(self, session_id: str) -> Path:
        if not _SESSION_ID_RE.match(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.root / session_id

    def checkpoint_path(self, session_id: str, sequence: int) -> Path:
        return self.session_dir(session_id) / f"{session_id}_{sequence:06d}{CHECKPOINT_SUFFIX}"

    def index_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / INDEX_FILE

    def list_sequences(self, session_id: str) -> list[int]:
        """Sequence numbers present on disk, ascending."""
        directory = self.session_dir(session_id)
        if not directory.is_dir():
            return []
        pattern = re.compile(rf"^{re.escape(session_id)}_(\d+){re.escape(CHECKPOINT_SUFFIX)}$")
        found = []
        for entry in directory.iterdir():
            match = pattern.match(entry.name)
            if match:
                found.append(int(match.group(1)))
        return sorted(found)

    def latest_sequence(self, session_id: str) -> int | None:
        sequences = self.list_sequences(session_id)
        return sequences[-1] if sequences else None

    # --- save -------------------------------------------------------------

    def save(
        self,
        checkpoint: Checkpoint,
        status: SessionStatus = SessionStatus.ACTIVE,
    ) -> Checkpoint:
        """Write *checkpoint* under the next sequence number and update the index.

        Returns the checkpoint with its assigned sequence. Raises
        CheckpointWriteError on any I/O failure.
        """
        session_id = checkpoint.session_id
        try:
            directory = self.session_dir(session_id)
            directory.mkdir(parents=True, exist_ok=True)

            sequence = (self.latest_sequence(session_id) or 0) + 1
            saved = replace(checkpoint, sequence=sequence)
            path = self.checkpoint_path(session_id, sequence)
            if path.exists():
                raise CheckpointWriteError(
                    f"Checkpoint {path.name} already exists",
                    session_id=session_id, sequence=sequence,
                )

            raw = json.dumps(saved.to_dict(), ensure_ascii=False).encode("utf-8")
            _atomic_write(path, gzip.compress(raw, compresslevel=self.compresslevel, mtime=0))

            previous = self._read_index_or_none(session_id)
            now = _now()
            self._write_index(SessionIndex(
                session_id=session_id,
                latest_sequence=sequence,
                status=status,
                task_description=saved.state.task_description,
                task_type=saved.state.task_type,
                iteration=saved.iteration,
                outcome=saved.metadata.get("outcome"),
                created_at=previous.created_at if previous else now,
                updated_at=now,
            ))
        except CheckpointWriteError:
            raise
        except (OSError, ValueError, TypeError) as exc:
            raise CheckpointWriteError(
                f"Failed to write checkpoint for session {session_id}: {exc}",
                session_id=session_id,
            ) from exc

        logger.debug("Saved checkpoint %s #%d (iteration %d)", session_id, sequence, saved.iteration)
        if self.keep:
            try:
                self.prune(session_id, self.keep)
            except OSError as exc:
                # The new checkpoint is durable; stale files are retried next save
                logger.warning("Pruning checkpoints of session %s failed: %s", session_id, exc)
        return saved

    # --- load -------------------------------------------------------------

    def load(self, session_id: str, sequence: int | None = None) -> Checkpoint:
        """Load a checkpoint; *sequence* defaults to the latest.

        Raises CheckpointNotFoundError or CheckpointCorruptError.
        """
        if sequence is None:
            sequence = self._resolve_latest(session_id)

        path = self.checkpoint_path(session_id, sequence)
        try:
            compressed = path.read_bytes()
        except FileNotFoundError:
            raise CheckpointNotFoundError(
                f"No checkpoint {sequence} for session {session_id}",
                session_id=session_id, sequence=sequence,
            ) from None
        except OSError as exc:
            raise CheckpointCorruptError(
                f"Cannot read {path}: {exc}", session_id=session_id, sequence=sequence,
            ) from exc

        try:
            data = json.loads(gzip.decompress(compressed).decode("utf-8"))
            checkpoint = Checkpoint.from_dict(data)
        except (OSError, EOFError, zlib.error, UnicodeDecodeError,
                json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
            raise CheckpointCorruptError(
                f"Checkpoint {path.name} is corrupt: {exc}",
                session_id=session_id, sequence=sequence,
            ) from exc

        if checkpoint.session_id != session_id or checkpoint.sequence != sequence:
            raise CheckpointCorruptError(
                f"Checkpoint {path.name} belongs to {checkpoint.session_id}"
                f" #{checkpoint.sequence}",
                session_id=session_id, sequence=sequence,
            )
        return checkpoint

    def _resolve_latest(self, session_id: str) -> int:
        index = self._read_index_or_none(session_id)
        if index is not None:
            return index.latest_sequence
        latest = self.latest_sequence(session_id)
        if latest is None:
            raise CheckpointNotFoundError(
                f"No checkpoints for session {session_id}", session_id=session_id,
            )
        return latest

    # --- index ------------------------------------------------------------

    def read_index(self, session_id: str) -> SessionIndex:
        index = self._read_index_or_none(session_id)
        if index is None:
            raise CheckpointNotFoundError(f"Unknown session: {session_id}", session_id=session_id)
        return index

    def _read_index_or_none(self, session_id: str) -> SessionIndex | None:
        path = self.index_path(session_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CheckpointCorruptError(f"Cannot read {path}: {exc}", session_id=session_id) from exc
        try:
            return SessionIndex.from_dict(json.loads(text))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise CheckpointCorruptError(
                f"Session index for {session_id} is corrupt: {exc}", session_id=session_id,
            ) from exc

    def _write_index(self, index: SessionIndex) -> None:
        payload = json.dumps(index.to_dict(), indent=2).encode("utf-8")
        _atomic_write(self.index_path(index.session_id), payload)

    def mark_status(
        self,
        session_id: str,
        status: SessionStatus,
        outcome: str | None = None,
    ) -> SessionIndex:
        """Update the status recorded in the session index."""
        index = self.read_index(session_id)
        updated = replace(
            index,
            status=status,
            outcome=outcome if outcome is not None else index.outcome,
            updated_at=_now(),
        )
        try:
            self._write_index(updated)
        except OSError as exc:
            raise CheckpointWriteError(
                f"Failed to update index for session {session_id}: {exc}", session_id=session_id,
            ) from exc
        return updated

    def list_sessions(self) -> list[SessionIndex]:
        """All readable session indexes, most recently updated first."""
        if not self.root.is_dir():
            return []
        sessions = []
        for entry in self.root.iterdir():
            if not (entry / INDEX_FILE).is_file() or not _SESSION_ID_RE.match(entry.name):
                continue
            try:
                sessions.append(self.read_index(entry.name))
            except CheckpointCorruptError as exc:
                logger.warning("Skipping session %s: %s", entry.name, exc)
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    # --- retention --------------------------------------------------------

    def prune(self, session_id: str, keep: int) -> list[int]:
        """Delete all but the newest *keep* checkpoints. Returns removed sequences."""
        if keep < 1:
            raise ValueError("keep must be at least 1")
        removed = self.list_sequences(session_id)[:-keep]
        for sequence in removed:
            try:
                self.checkpoint_path(session_id, sequence).unlink()
            except FileNotFoundError:
                pass
        return removed

    # --- async wrappers ---------------------------------------------------

    async def asave(
        self, checkpoint: Checkpoint, status: SessionStatus = SessionStatus.ACTIVE,
    ) -> Checkpoint:
        return await asyncio.to_thread(self.save, checkpoint, status)

    async def aload(self, session_id: str, sequence: int | None = None) -> Checkpoint:
        return await asyncio.to_thread(self.load, session_id, sequence)
