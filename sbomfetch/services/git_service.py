import re
import shutil
from pathlib import Path
from urllib.parse import urlparse

import git
import structlog

from sbomfetch.core.config import get_config
from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.exceptions import VcsError
from sbomfetch.core.stats import ResolveStats
from sbomfetch.core.workarea import WorkArea
from sbomfetch.models.reference import Reference

logger = structlog.get_logger('git_service')

VCS_TRANSPORTS = ('git+https://', 'git+http://', 'git+ssh://', 'git+git://', 'git://')

_SCP_RE = re.compile(r'^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>[^/].*)$')


def is_vcs_url(value: str | None) -> bool:
    return bool(value) and value.startswith(VCS_TRANSPORTS)


def split_vcs_pin(url: str) -> tuple[str, str | None]:
    """
    Split `<transport>@<commit>#<fragment>` into (transport, commit).
    Only an '@' after the last '/' is a pin; 'git@host' stays intact.
    """
    url = url.split('#', 1)[0]
    # A user part such as 'git@' sits before the last '/', so only a pin is left in tail
    head, slash, tail = url.rpartition('/')
    if '@' in tail:
        tail, commit = tail.rsplit('@', 1)
        return head + slash + tail, commit or None
    return url, None


class GitService:
    """VCS checkout strategy: clone once, then pin the tree to an exact commit."""

    def __init__(
        self,
        context: ResolutionContext,
        work_area: WorkArea,
        stats: ResolveStats | None = None,
        token: str | None = None,
    ):
        self.context = context
        self.work_area = work_area
        self.stats = stats or ResolveStats()
        self.config = get_config()
        self.token = token if token is not None else self.config.github.token

    def _mask_url(self, url: str) -> str:
        """Mask the token in a clone URL for safe logging."""
        if self.token and self.token in url:
            return url.replace(self.token, '*****')
        return url

    def clone_url(self, transport: str) -> str:
        """
        Fully-qualified clone URL for a transport string.
        GitHub repositories use an authenticated transport in privileged
        mode and anonymous https otherwise.
        """
        if transport.startswith('git+'):
            transport = transport[4:]

        host, path = self._host_and_path(transport)
        if host != self.config.github.host:
            return transport

        path = path.strip('/')
        if path.endswith('.git'):
            path = path[:-4]
        if not self.context.privileged:
            return f"https://{host}/{path}"
        if self.token:
            return f"https://x-access-token:{self.token}@{host}/{path}.git"
        return f"git@{host}:{path}.git"

    @staticmethod
    def _host_and_path(transport: str) -> tuple[str | None, str]:
        if '://' in transport:
            parsed = urlparse(transport)
            return parsed.hostname, parsed.path
        match = _SCP_RE.match(transport)
        if match:
            return match.group('host'), match.group('path')
        return None, transport

    def checkout_reference(self, reference: Reference) -> Path:
        """Check out the source a reference points at (vcs_url or forge repo)."""
        if reference.vcs_url:
            transport, commit = split_vcs_pin(reference.vcs_url)
            commit = commit or reference.version
        else:
            transport = f"https://{self.config.github.host}/{reference.full_name}"
            commit = reference.version
        return self.checkout(
            transport,
            commit=commit,
            dest=self.work_area.path_for(reference),
            locator=reference.raw,
        )

    def checkout(
        self,
        transport: str,
        commit: str | None,
        dest: Path,
        locator: str | None = None,
    ) -> Path:
        """
        Make `dest` a working tree of `transport` at `commit`.

        An existing clean tree is reused and a dirty one is cloned again.
        The checkout runs either way, since the tree may sit on another ref.

        Raises:
            VcsError if clone or checkout fails
        """
        url = self.clone_url(transport)
        commit = commit.split('#', 1)[0] if commit else None
        repo = self._open_repo(dest)

        if self.context.dry_run:
            logger.info(
                'Would check out' if repo else 'Would clone',
                url=self._mask_url(url), commit=commit, dest=str(dest),
                locator=locator, _style='dim',
            )
            return dest

        if repo is None:
            logger.info(
                'Cloning', url=self._mask_url(url),
                dest=str(dest), locator=locator,
            )
            if dest.exists():
                shutil.rmtree(dest)
            dest.parent.mkdir(parents=True, exist_ok=True)
            try:
                repo = git.Repo.clone_from(url, str(dest))
            except git.GitCommandError as e:
                raise VcsError(
                    f"git clone of {self._mask_url(url)} into {dest} failed: "
                    f"{self._mask_url(str(e))}",
                ) from e
            self.stats.inc('cloned')
        else:
            logger.info(
                'Working tree present, skipping clone',
                dest=str(dest), locator=locator, _style='dim',
            )
            self.stats.inc('cache_hits')

        if not commit:
            logger.warning(
                'No commit pin, leaving default branch checked out',
                url=self._mask_url(url), dest=str(dest),
            )
            return dest

        self._checkout_commit(repo, commit, url, dest)
        self.stats.inc('checked_out')
        logger.info('Checked out', commit=commit, dest=str(dest))
        return dest

    def _open_repo(self, dest: Path) -> git.Repo | None:
        """Return the repository at dest if it holds a clean working tree."""
        if not dest.is_dir():
            return None
        try:
            repo = git.Repo(str(dest))
            if repo.bare:
                return None
            # Local edits or stray files mean the tree no longer matches any commit
            changes = repo.git.status('--porcelain', '--untracked-files=all')
            if changes.strip():
                logger.warning(
                    'Working tree has local changes, cloning again',
                    dest=str(dest), changes=len(changes.splitlines()),
                )
                return None
            return repo
        except (git.InvalidGitRepositoryError, git.NoSuchPathError, git.GitCommandError):
            logger.debug('Not a valid working tree', dest=str(dest))
            return None

    def _checkout_commit(self, repo: git.Repo, commit: str, url: str, dest: Path) -> None:
        try:
            repo.git.checkout('--quiet', commit)
            return
        except git.GitCommandError:
            logger.debug('Commit not present locally, fetching', commit=commit)

        try:
            repo.git.fetch('--quiet', 'origin', commit)
            repo.git.checkout('--quiet', commit)
        except git.GitCommandError as e:
            raise VcsError(
                f"git checkout of {commit} in {dest} ({self._mask_url(url)}) failed: "
                f"{self._mask_url(str(e))}",
            ) from e
