# core/git_manager.py
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import git
from git.exc import GitCommandError
from loguru import logger as default_logger

from core.errors import FetchError, NotDeployableError, WorkspaceError


class Workspace:
    """A cloned working tree owned by a single pipeline run."""

    def __init__(self, path: str, revision: str):
        self.path = path
        self.revision = revision

    def __repr__(self):
        return f"<Workspace {self.path} @ {self.revision}>"


def _command_output(e: GitCommandError) -> str:
    parts = [str(p).strip() for p in (e.stdout, e.stderr) if p]
    return "\n".join(p for p in parts if p)


class GitManager:
    def __init__(
        self,
        scratch_dir: Optional[str] = None,
        prefix: str = "repo-",
        build_descriptor: str = "Dockerfile",
        logger=None,
    ):
        self.scratch_dir = scratch_dir
        self.prefix = prefix
        self.build_descriptor = build_descriptor
        self.logger = (logger or default_logger).bind(component="git")

    def clone_repository(self, repo_url: str, dest: str, branch: Optional[str] = None) -> str:
        kwargs = {"branch": branch} if branch else {}
        try:
            git.Repo.clone_from(repo_url, dest, **kwargs)
        except GitCommandError as e:
            raise FetchError("failed to clone repository", output=_command_output(e)) from e
        return dest

    def get_commit_hash(self, path: str) -> str:
        """Return the abbreviated hash of HEAD, as ``git rev-parse --short`` prints it."""
        try:
            repo = git.Repo(path)
            return repo.git.rev_parse("--short", "HEAD").strip()
        except GitCommandError as e:
            raise FetchError("failed to get last commit hash", output=_command_output(e)) from e
        except git.InvalidGitRepositoryError as e:
            raise FetchError(f"not a git repository: {path}") from e

    @contextmanager
    def workspace(self, repo_url: str, branch: Optional[str] = None) -> Iterator[Workspace]:
        """
        Clone ``repo_url`` into a fresh temporary directory and yield it.
        The directory is removed when the block exits, whatever the outcome.
        """
        try:
            path = tempfile.mkdtemp(prefix=self.prefix, dir=self.scratch_dir)
        except OSError as e:
            raise WorkspaceError(f"failed to create temp dir: {e}") from e

        log = self.logger.bind(repo_url=repo_url, temp_dir=path)
        try:
            log.info("Cloning repository")
            self.clone_repository(repo_url, path, branch=branch)
            log.info("Repository cloned")

            revision = self.get_commit_hash(path)
            log.info(f"Last commit hash {revision}")

            yield Workspace(path, revision)
        finally:
            shutil.rmtree(path, ignore_errors=True)
            log.debug("Workspace removed")

    def validate(self, workspace: Workspace) -> Path:
        descriptor = Path(workspace.path) / self.build_descriptor
        if not descriptor.is_file():
            raise NotDeployableError(f"{self.build_descriptor} not found in repository")
        self.logger.info(f"{self.build_descriptor} found at {descriptor}")
        return descriptor
