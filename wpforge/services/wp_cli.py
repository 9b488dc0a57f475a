"""WP-CLI discovery and installation.

Shared hosts often put an old PHP first on PATH, so explicit modern
interpreters are tried before the bare phar and the system ``wp``.
"""
import re
from dataclasses import dataclass
from shlex import quote as Q
from typing import Callable, List, Optional

from wpforge.core.config import settings
from wpforge.core.errors import ToolchainUnavailable
from wpforge.core.logger import setup_logger

logger = setup_logger("wp_cli")

PHP_BINARIES = ("/usr/bin/php8.2", "/usr/bin/php8.1", "/usr/bin/php8.0", "/usr/bin/php7.4")
PHP_ERROR_MARKERS = ("PHP Parse error", "Parse error:", "Fatal error")

_VERSION_RE = re.compile(r"^\d+\.\d+")


@dataclass(frozen=True)
class Candidate:
    name: str
    build: Callable[[str], str]

    def prefix(self, home: str) -> str:
        return self.build(home)


def default_candidates() -> List[Candidate]:
    cands = [
        Candidate(f"php{b.rsplit('php', 1)[-1]}", lambda home, b=b: f"{b} {home}/bin/wp")
        for b in PHP_BINARIES
    ]
    cands.append(Candidate("local", lambda home: f"{home}/bin/wp"))
    cands.append(Candidate("system", lambda home: "wp"))
    return cands


def probe_accepts(output: str) -> bool:
    out = (output or "").strip()
    if any(m in out for m in PHP_ERROR_MARKERS):
        return False
    return "WP-CLI" in out or bool(_VERSION_RE.match(out))


class WPCLIManager:
    def __init__(self, session, home: str, candidates: Optional[List[Candidate]] = None):
        self.session = session
        self.home = home
        self.candidates = candidates or default_candidates()
        self._invocation: Optional[str] = None

    @property
    def install_path(self) -> str:
        return f"{self.home}/bin/wp"

    def _probe(self, prefix: str) -> bool:
        r = self.session.execute(f"{prefix} --version 2>&1", warn=True)
        return r.ok and probe_accepts(r.stdout)

    def get_working_invocation(self) -> Optional[str]:
        """First candidate whose ``--version`` probe succeeds, in priority order."""
        if self._invocation:
            return self._invocation
        for cand in self.candidates:
            prefix = cand.prefix(self.home)
            if self._probe(prefix):
                logger.info(f"WP-CLI works via {cand.name}: {prefix}")
                self._invocation = prefix
                return prefix
            logger.debug(f"WP-CLI candidate rejected: {prefix}")
        return None

    def _download(self) -> bool:
        url = Q(settings.wp_cli_download_url)
        dest = Q(self.install_path)
        self.session.execute(f"mkdir -p {Q(self.home + '/bin')}")
        for cmd in (f"curl -fsSL -o {dest} {url}", f"wget -q -O {dest} {url}"):
            r = self.session.execute(cmd, warn=True)
            if r.ok:
                return True
            logger.warning(f"WP-CLI download failed ({r.exit_code}): {cmd.split()[0]}")
        return False

    def ensure_installed(self) -> str:
        invocation = self.get_working_invocation()
        if invocation:
            return invocation

        logger.info(f"Installing WP-CLI to {self.install_path}")
        if not self._download():
            raise ToolchainUnavailable("Could not download WP-CLI with curl or wget.")
        self.session.execute(f"chmod +x {Q(self.install_path)}")

        invocation = self.get_working_invocation()
        if not invocation:
            raise ToolchainUnavailable(
                "WP-CLI was installed but no PHP interpreter on the server could run it."
            )
        return invocation


def wp(session, invocation: str, wp_path: str, cmd: str, warn: bool = False):
    return session.execute(f"{invocation} {cmd} --path={Q(wp_path)}", warn=warn)
