"""Locate the home directory and WordPress document root on a remote account.

Hosting providers disagree on where a domain's document root lives, so the
resolver probes a list of likely layouts and falls back to a bounded ``find``
for ``wp-config.php``.
"""
from shlex import quote as Q
from typing import Dict, List, Optional

from wpforge.core.config import settings
from wpforge.core.errors import CommandError, PathNotFound
from wpforge.core.logger import setup_logger

logger = setup_logger("path_resolver")

PROVIDER_XSERVER = "xserver"
PROVIDER_CONOHA = "conoha"
PROVIDER_OTHER = "other"


def domain_variants(domain: str) -> List[str]:
    """example.co.jp -> [example.co.jp, example-co-jp, example] (www. stripped, deduped)."""
    d = domain.strip().lower().rstrip("/")
    out: List[str] = [d]
    bare = d[4:] if d.startswith("www.") else d
    for v in (bare, bare.replace(".", "-"), bare.split(".")[0]):
        if v and v not in out:
            out.append(v)
    return out


def _provider_layouts(home: str, d: str, provider: str) -> List[str]:
    xserver = f"{home}/{d}/public_html"
    shared = f"{home}/public_html/{d}"
    if provider == PROVIDER_XSERVER:
        return [xserver, shared]
    return [shared, xserver]


class PathResolver:
    """Per-run path lookups over one remote session. Results are cached on the instance."""

    def __init__(self, session, username: str, provider: str = PROVIDER_OTHER, max_depth: int | None = None):
        self.session = session
        self.username = username
        self.provider = provider or PROVIDER_OTHER
        self.max_depth = max_depth or settings.wp_search_max_depth
        self._home: Optional[str] = None
        self._paths: Dict[str, str] = {}

    def home_directory(self) -> str:
        if self._home is not None:
            return self._home
        home = ""
        try:
            home = self.session.run("echo $HOME").strip()
        except CommandError as e:
            logger.warning(f"echo $HOME failed, falling back to /home/{self.username}: {e}")
        if not home.startswith("/"):
            home = f"/home/{self.username}"
        self._home = home.rstrip("/") or "/"
        logger.info(f"Home directory: {self._home}")
        return self._home

    def default_wordpress_path(self, domain: str) -> str:
        """Where a fresh install goes for this provider."""
        home = self.home_directory()
        d = domain_variants(domain)[0]
        if self.provider == PROVIDER_XSERVER:
            return f"{home}/{d}/public_html"
        return f"{home}/public_html/{d}"

    def candidate_paths(self, domain: str) -> List[str]:
        home = self.home_directory()
        out: List[str] = []
        for d in domain_variants(domain):
            out += _provider_layouts(home, d, self.provider)
        out += [f"{home}/public_html"]
        for d in domain_variants(domain):
            out += [f"{home}/www/{d}", f"{home}/htdocs/{d}"]
        out += [f"{home}/www", f"{home}/htdocs"]
        seen = set()
        return [p for p in out if not (p in seen or seen.add(p))]

    def _search(self) -> Optional[str]:
        home = self.home_directory()
        cmd = (
            f"find {Q(home)} -maxdepth {int(self.max_depth)} -name wp-config.php -type f "
            f"2>/dev/null | head -5"
        )
        out = self.session.execute(cmd, warn=True).stdout
        for line in out.splitlines():
            line = line.strip()
            if line.endswith("/wp-config.php"):
                return line[: -len("/wp-config.php")]
        return None

    def find_wordpress_path(self, domain: str) -> Optional[str]:
        if domain in self._paths:
            return self._paths[domain]

        for path in self.candidate_paths(domain):
            if self.session.file_exists(f"{path}/wp-config.php"):
                logger.info(f"WordPress found at {path}")
                self._paths[domain] = path
                return path

        logger.info(f"No known layout matched for {domain}; searching {self.home_directory()}")
        path = self._search()
        if path:
            logger.info(f"WordPress found by search at {path}")
            self._paths[domain] = path
        return path

    def require_wordpress_path(self, domain: str) -> str:
        path = self.find_wordpress_path(domain)
        if not path:
            raise PathNotFound(f"WordPress installation not found for {domain}")
        return path

    def remember(self, domain: str, path: str):
        self._paths[domain] = path
