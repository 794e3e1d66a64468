"""Versioned file store with optimistic-concurrency writes over a contents backend."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from autonomous_deployer.agent.errors import ConcurrencyConflict, FileNotFound, StoreError
from autonomous_deployer.agent.models import ProjectFile
from autonomous_deployer.agent.storage.github_contents import ContentsBackend
from autonomous_deployer.logging_utils import get_logger

LOGGER = get_logger()


@dataclass(frozen=True)
class VersionedFile:
    """File content together with its opaque version token."""

    path: str
    content: str
    version: str


class VersionedFileStore:
    """Content-addressed access to one repository with version-checked writes.

    Every write carries the version the caller read. A stale token surfaces
    ``ConcurrencyConflict``; callers that need read-modify-write semantics use
    :meth:`read_modify_write`, which restarts from a fresh read on conflicts.
    Reads go through an optional cache that is refreshed on successful writes
    and dropped whenever a conflict is detected.
    """

    def __init__(
        self,
        backend: ContentsBackend,
        owner: str,
        repo: str,
        *,
        namespace: str = ".prodev",
        cache: bool = True,
        max_conflict_retries: int = 3,
    ) -> None:
        """Bind the store to one repository and reserved state namespace."""
        if max_conflict_retries <= 0:
            raise ValueError("max_conflict_retries must be greater than zero.")
        self.backend = backend
        self.owner = owner
        self.repo = repo
        self.namespace = namespace.strip("/")
        self.max_conflict_retries = max_conflict_retries
        self._cache_enabled = cache
        self._cache: dict[str, VersionedFile] = {}

    def state_path(self, name: str) -> str:
        """Return the repository path for a reserved state file."""
        return f"{self.namespace}/{name.lstrip('/')}"

    def is_reserved(self, path: str) -> bool:
        """Return whether path lives inside the reserved namespace."""
        normalized = path.strip("/")
        return normalized == self.namespace or normalized.startswith(f"{self.namespace}/")

    def read(self, path: str) -> VersionedFile:
        """Return current content and version, raising FileNotFound when absent."""
        if self._cache_enabled and path in self._cache:
            return self._cache[path]
        remote = self.backend.get_file(self.owner, self.repo, path)
        current = VersionedFile(path=path, content=remote.content, version=remote.sha)
        self._remember(current)
        return current

    def read_optional(self, path: str) -> VersionedFile | None:
        """Return current file or None when no version exists."""
        try:
            return self.read(path)
        except FileNotFound:
            return None

    def write(
        self,
        path: str,
        content: str,
        message: str,
        expected_version: str | None = None,
    ) -> str:
        """Write content and return the new version token.

        Without ``expected_version`` the write is a create. With a token the
        write is an update; an update whose target vanished is retried as a
        create. A mismatching token raises ``ConcurrencyConflict``.
        """
        try:
            if expected_version is None:
                version = self.backend.create_file(self.owner, self.repo, path, content, message)
            else:
                try:
                    version = self.backend.update_file(
                        self.owner, self.repo, path, content, message, expected_version
                    )
                except FileNotFound:
                    LOGGER.debug("Update target missing, creating instead", extra={"path": path})
                    version = self.backend.create_file(
                        self.owner, self.repo, path, content, message
                    )
        except ConcurrencyConflict:
            self.invalidate(path)
            LOGGER.warning("Versioned write conflict", extra={"path": path})
            raise
        except StoreError:
            self.invalidate(path)
            raise
        self._remember(VersionedFile(path=path, content=content, version=version))
        return version

    def read_modify_write(
        self,
        path: str,
        transform: Callable[[str | None], str],
        message: str,
    ) -> str:
        """Apply transform to the freshest content and write it back.

        ``transform`` receives the current content (None when the file does
        not exist yet) and must be safe to call again after a conflict.
        """
        last_conflict: ConcurrencyConflict | None = None
        for attempt in range(1, self.max_conflict_retries + 1):
            # Conflicts must be resolved against the backend, never the cache.
            if attempt > 1:
                self.invalidate(path)
            current = self.read_optional(path)
            updated = transform(current.content if current is not None else None)
            try:
                return self.write(
                    path,
                    updated,
                    message,
                    expected_version=current.version if current is not None else None,
                )
            except ConcurrencyConflict as exc:
                last_conflict = exc
                LOGGER.info(
                    "Retrying read-modify-write after conflict",
                    extra={"path": path, "attempt": attempt},
                )
        if last_conflict is None:
            raise StoreError(f"Read-modify-write of {path} did not run.")
        raise last_conflict

    def upsert(self, path: str, content: str, message: str) -> str:
        """Create or replace a file with conflict-safe versioning."""
        return self.read_modify_write(path, lambda _current: content, message)

    def delete(self, path: str, message: str) -> bool:
        """Delete a file at its current version; return False when absent."""
        for _attempt in range(self.max_conflict_retries):
            self.invalidate(path)
            current = self.read_optional(path)
            if current is None:
                return False
            try:
                self.backend.delete_file(self.owner, self.repo, path, message, current.version)
            except FileNotFound:
                self.invalidate(path)
                return False
            except ConcurrencyConflict:
                self.invalidate(path)
                continue
            self.invalidate(path)
            return True
        raise ConcurrencyConflict(path, "delete retries exhausted")

    def list_paths(self) -> list[str]:
        """Return all file paths of the repository outside the reserved namespace."""
        try:
            entries = self.backend.list_files(self.owner, self.repo, "", recursive=True)
        except FileNotFound:
            return []
        return [
            entry.path
            for entry in entries
            if entry.type == "file" and not self.is_reserved(entry.path)
        ]

    def snapshot(self) -> list[ProjectFile]:
        """Read the full project file set at this point in time."""
        files: list[ProjectFile] = []
        for path in self.list_paths():
            self.invalidate(path)
            try:
                current = self.read(path)
            except StoreError as exc:
                LOGGER.warning(
                    "Skipping unreadable file in snapshot",
                    extra={"path": path, "error": str(exc)},
                )
                continue
            files.append(ProjectFile(path=path, content=current.content))
        LOGGER.info(
            "Snapshot captured",
            extra={"repository": f"{self.owner}/{self.repo}", "file_count": len(files)},
        )
        return files

    def invalidate(self, path: str | None = None) -> None:
        """Drop one cached path, or the whole cache when path is None."""
        if path is None:
            self._cache.clear()
            return
        self._cache.pop(path, None)

    def _remember(self, current: VersionedFile) -> None:
        if self._cache_enabled:
            self._cache[current.path] = current
