"""
Repository Service - Resolves where a dependency's source lives on disk.

Handles:
- Local checkouts: validated and returned as absolute paths
- Cloned dependencies: shallow-cloned once per remote URL, then reused
- Pinning a clone to a revision before a question is asked
"""

import asyncio
import hashlib
import logging
import os
import re
import shutil
import stat
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from depquery.api.middleware.error_handler import RepositoryNotFoundError

logger = logging.getLogger(__name__)

STORAGE_LOCAL = "local"
STORAGE_CLONED = "cloned"


def _remove_readonly(func, path, excinfo):
    """Error handler for shutil.rmtree on Windows (read-only .git files)."""
    os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
    func(path)


def _safe_rmtree(path: Path) -> None:
    """Remove a directory tree, retrying on transient permission errors."""
    if not path.exists():
        return
    for attempt in range(3):
        try:
            if sys.version_info >= (3, 12):
                shutil.rmtree(path, onexc=_remove_readonly)
            else:
                shutil.rmtree(path, onerror=_remove_readonly)
            return
        except (PermissionError, OSError) as e:
            if attempt == 2:
                logger.warning(f"Could not remove {path}: {e}")
                return
            time.sleep(0.5 * (attempt + 1))


@dataclass
class ClonedRepo:
    """A remote repository materialized on disk."""
    url: str
    local_path: str
    cloned_at: datetime


@dataclass
class RepoServiceConfig:
    """Configuration for repository service."""
    storage_path: str = "./data/repos"
    clone_timeout_seconds: int = 300
    shallow_clone: bool = True


_SCP_STYLE = re.compile(r"^git@([^:]+):(.+)$")


def normalize_git_url(url: str) -> str:
    """
    Normalize a remote URL so equivalent spellings share one clone.

    git@host:owner/repo.git, https://HOST/owner/repo/ and
    http://host/owner/repo all become host/owner/repo.
    """
    url = url.strip()
    match = _SCP_STYLE.match(url)
    if match:
        host, path = match.groups()
    else:
        stripped = re.sub(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", "", url)
        stripped = stripped.split("@", 1)[-1] if "@" in stripped.split("/", 1)[0] else stripped
        host, _, path = stripped.partition("/")
    path = path.rstrip("/")
    if path.endswith(".git"):
        path = path[:-4]
    return f"{host.lower()}/{path.rstrip('/')}"


class RepositoryResolver(ABC):
    """Finds the on-disk location of a repository the agent should read."""

    @abstractmethod
    async def resolve_repository_path(
        self,
        configured_path: str,
        storage_kind: str,
        git_url: Optional[str] = None,
        cache_root: Optional[str] = None,
    ) -> str:
        """
        Returns:
            Absolute local path to the repository

        Raises:
            RepositoryNotFoundError: If it can't be located or cloned
        """
        pass

    @abstractmethod
    async def checkout_revision(self, local_path: str, revision: str) -> bool:
        """Pin a checkout to a revision. Returns False (and logs) on failure."""
        pass


class RepoService(RepositoryResolver):
    """
    Resolves repository locations.

    For local paths: validates and returns as-is.
    For cloned dependencies: shallow clones once per normalized URL.
    """

    def __init__(self, config: Optional[RepoServiceConfig] = None):
        self.config = config or RepoServiceConfig()
        self.storage_path = Path(self.config.storage_path)
        self._cache: Dict[str, ClonedRepo] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def resolve_repository_path(
        self,
        configured_path: str,
        storage_kind: str,
        git_url: Optional[str] = None,
        cache_root: Optional[str] = None,
    ) -> str:
        if storage_kind == STORAGE_LOCAL:
            local = os.path.abspath(os.path.expanduser(configured_path))
            if not os.path.isdir(local):
                raise RepositoryNotFoundError(configured_path, reason=f"Directory not found: {local}")
            return local

        if storage_kind == STORAGE_CLONED:
            if not git_url:
                raise RepositoryNotFoundError(configured_path, reason="No git URL for cloned repository")
            root = Path(cache_root) if cache_root else self.storage_path
            repo = await self.clone(git_url, root)
            return repo.local_path

        raise RepositoryNotFoundError(configured_path, reason=f"Unknown storage kind: {storage_kind}")

    async def clone(self, url: str, root: Optional[Path] = None) -> ClonedRepo:
        """Shallow clone a repository, reusing an existing copy."""
        key = normalize_git_url(url)
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            cached = self._cache.get(key)
            if cached and Path(cached.local_path).is_dir():
                return cached

            local_path = self._get_local_path(key, root or self.storage_path)
            if (local_path / ".git").is_dir():
                logger.info(f"Reusing existing clone at {local_path}")
            else:
                await self._clone_with_retry(url, local_path)

            repo = ClonedRepo(url=url, local_path=str(local_path.resolve()), cloned_at=datetime.now())
            self._cache[key] = repo
            return repo

    async def _clone_with_retry(self, url: str, local_path: Path) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(3):
            try:
                await self._execute_clone(url, local_path)
                return
            except (TimeoutError, RuntimeError) as e:
                last_error = e
                logger.warning(f"Clone attempt {attempt + 1} failed for {url}: {e}")
                if local_path.exists():
                    _safe_rmtree(local_path)
                if attempt < 2:
                    await asyncio.sleep(2 ** attempt)
        raise RepositoryNotFoundError(url, reason=str(last_error))

    async def _execute_clone(self, url: str, target: Path) -> None:
        """Execute a shallow git clone."""
        if target.exists():
            _safe_rmtree(target)
        target.parent.mkdir(parents=True, exist_ok=True)

        cmd = ["git", "clone"]
        if self.config.shallow_clone:
            cmd.extend(["--depth", "1"])
        cmd.extend([url, str(target)])

        logger.info(f"Cloning {url} into {target}")
        await self._run_git(cmd)

    async def checkout_revision(self, local_path: str, revision: str) -> bool:
        """
        Pin a shallow clone to a tag or branch.

        A tag is fetched into a local ref of the same name. Anything else
        is fetched as a branch and checked out detached from FETCH_HEAD. If
        neither fetch works the revision may already exist locally.
        """
        target = revision
        try:
            await self._run_git(
                ["git", "fetch", "--depth", "1", "origin", f"+refs/tags/{revision}:refs/tags/{revision}"],
                cwd=local_path,
            )
        except (TimeoutError, RuntimeError, OSError) as tag_error:
            logger.debug(f"No tag {revision} on origin: {tag_error}")
            try:
                await self._run_git(["git", "fetch", "--depth", "1", "origin", revision], cwd=local_path)
                target = "FETCH_HEAD"
            except (TimeoutError, RuntimeError, OSError) as e:
                logger.debug(f"Could not fetch {revision} from origin: {e}")

        try:
            await self._run_git(["git", "checkout", "--detach", target], cwd=local_path)
        except (TimeoutError, RuntimeError, OSError) as e:
            logger.warning(f"Failed to check out {revision} in {local_path}: {e}")
            return False
        logger.info(f"Checked out {revision} in {local_path}")
        return True

    async def _run_git(self, cmd: List[str], cwd: Optional[str] = None) -> None:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"

        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )

        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.config.clone_timeout_seconds,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TimeoutError(f"{cmd[1]} timed out after {self.config.clone_timeout_seconds}s")

        if process.returncode != 0:
            raise RuntimeError(f"git {cmd[1]} failed: {stderr.decode().strip()}")

    def _get_local_path(self, key: str, root: Path) -> Path:
        url_hash = hashlib.md5(key.encode()).hexdigest()[:8]
        name = key.rsplit("/", 1)[-1] or "repo"
        return root / f"{name}_{url_hash}"
