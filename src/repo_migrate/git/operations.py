"""Mirror clone and push of repositories through the git command line."""

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..config.config import GitConfig


class GitOperationError(Exception):
    """A git command failed."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr


class GitOperations:
    """Moves complete repository history between two SSH remotes."""

    def __init__(self, config: Optional[GitConfig] = None):
        """Initialize Git operations.

        Args:
            config: Git configuration options
        """
        self.config = config or GitConfig()
        self.logger = logger.bind(component='GitOperations')

    def mirror(self, source_url: str, destination_url: str, label: str) -> None:
        """Clone ``source_url`` with all refs and push them to ``destination_url``.

        Args:
            source_url: SSH URL of the source repository
            destination_url: SSH URL of the destination repository
            label: Name used for the temporary directory and log lines

        Raises:
            GitOperationError: If cloning or pushing fails
        """
        work_dir = self._create_temp_directory(label)
        try:
            keys_dir = work_dir / 'keys'
            keys_dir.mkdir(mode=0o700)
            pull_key = self._store_ssh_key('pull', self.config.resolve_key('pull'), keys_dir)
            push_key = self._store_ssh_key('push', self.config.resolve_key('push'), keys_dir)

            repo_dir = work_dir / 'repo.git'
            self.logger.info(f'[{label}] cloning mirror from {source_url}')
            self.clone_mirror(source_url, repo_dir, pull_key)

            self.logger.info(f'[{label}] pushing mirror to {destination_url}')
            self.push_mirror(repo_dir, destination_url, push_key)

            self.logger.info(f'[{label}] mirrored successfully')
        finally:
            if self.config.cleanup_temp:
                shutil.rmtree(work_dir, ignore_errors=True)
            else:
                self.logger.info(f'[{label}] keeping temporary directory {work_dir}')

    def clone_mirror(
        self, remote_url: str, target_path: Path, key_path: Optional[Path]
    ) -> None:
        self._run_git(
            ['clone', '--mirror', remote_url, str(target_path)],
            key_path=key_path,
            description=f'cloning {remote_url} into {target_path}',
        )

    def push_mirror(
        self, repo_path: Path, remote_url: str, key_path: Optional[Path]
    ) -> None:
        self._run_git(
            ['push', '--mirror', remote_url],
            key_path=key_path,
            cwd=repo_path,
            description=f'pushing {repo_path} to {remote_url}',
        )

    @staticmethod
    def ssh_command(key_path: Path) -> str:
        """SSH command that uses only the given key and no host configuration."""
        return (
            f"ssh -i '{key_path.resolve()}' -o IdentitiesOnly=yes "
            "-o StrictHostKeyChecking=no -o UserKnownHostsFile='/dev/null' -F '/dev/null'"
        )

    def _run_git(
        self,
        args: List[str],
        key_path: Optional[Path],
        description: str,
        cwd: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        command = ['git']
        if key_path is not None:
            command += ['-c', f'core.sshCommand={self.ssh_command(key_path)}']
        command += args

        env = dict(os.environ, GIT_TERMINAL_PROMPT='0')

        try:
            result = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitOperationError(
                f'Timed out after {self.config.timeout}s while {description}'
            ) from e
        except OSError as e:
            raise GitOperationError(f'Could not run git while {description}: {e}') from e

        if result.returncode != 0:
            stderr = (result.stderr or '').strip()
            raise GitOperationError(
                f'Error when {description} (exit code {result.returncode}): {stderr}',
                stderr=stderr,
            )

        return result

    def _create_temp_directory(self, label: str) -> Path:
        prefix = 'repo-migrate-' + label.replace('/', '_') + '-'
        base_dir = self.config.temp_dir
        if base_dir:
            Path(base_dir).mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))

    @staticmethod
    def _store_ssh_key(name: str, key: Optional[str], directory: Path) -> Optional[Path]:
        if not key:
            return None
        key_path = directory / name
        if not key.endswith('\n'):
            key += '\n'
        key_path.write_text(key, encoding='utf-8')
        key_path.chmod(0o400)
        return key_path
