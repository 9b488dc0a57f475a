"""Build a fresh WordPress site over SSH.

Steps run strictly in order on one session and report progress before each
one starts:

    1 connect (5)  2 WP-CLI (15)  3 core/config/install (30)  4 theme (60)
    5 plugins (75)  6 home/blog pages (80)  7 business pages (90)  8 done (100)

A failed run is not rolled back; the progress record keeps the step that
failed so the server can be inspected by hand.
"""
import uuid
from dataclasses import dataclass, field
from shlex import quote as Q
from typing import Callable, List, Optional

from wpforge.core.config import settings
from wpforge.core.errors import AlreadyInstalled, WPForgeError
from wpforge.core.logger import log_json, setup_logger
from wpforge.schemas.website import DetectionResult
from wpforge.services.page_catalog import BLOG_PAGE, BUSINESS_PAGES, HOME_PAGE, PageSpec
from wpforge.services.path_resolver import PathResolver
from wpforge.services.progress import ProgressTracker
from wpforge.services.wp_cli import WPCLIManager, wp

logger = setup_logger("provision")

STEPS = {
    1: (5, "Connecting to server..."),
    2: (15, "Preparing WP-CLI..."),
    3: (30, "Downloading and installing WordPress..."),
    4: (60, "Installing theme..."),
    5: (75, "Installing plugins..."),
    6: (80, "Setting up home and blog pages..."),
    7: (90, "Creating business pages..."),
    8: (100, "WordPress build complete"),
}


@dataclass
class BuildConfig:
    domain: str
    server_user: str
    site_title: str
    admin_user: str
    admin_password: str = field(repr=False)
    admin_email: str
    db_name: str
    db_user: str
    db_pass: str = field(repr=False)
    db_host: str = "localhost"
    provider: str = "other"
    locale: str = field(default_factory=lambda: settings.wp_locale)
    theme: str = field(default_factory=lambda: settings.wp_theme)
    plugins: List[str] = field(default_factory=lambda: list(settings.wp_plugins))


@dataclass
class BuildOutcome:
    wp_path: str
    site_url: str
    wp_version: Optional[str] = None
    failed_pages: List[str] = field(default_factory=list)


class WordPressProvisioner:
    def __init__(self, session_factory: Callable, tracker: ProgressTracker):
        self.session_factory = session_factory
        self.tracker = tracker

    def _step(self, n: int):
        percent, message = STEPS[n]
        self.tracker.advance(n, message, percent, completed=(n == 8))

    def run(self, config: BuildConfig, detection: Optional[DetectionResult] = None) -> BuildOutcome:
        if detection is not None and detection.installed:
            version = f" (version {detection.wp_version})" if detection.wp_version else ""
            raise AlreadyInstalled(f"WordPress is already installed on {config.domain}{version}")

        try:
            self._step(1)
            with self.session_factory() as session:
                outcome = self._build(session, config)
        except Exception as e:
            self.tracker.fail(e)
            raise

        log_json(logger, event="build_complete", domain=config.domain, wp_path=outcome.wp_path,
                 wp_version=outcome.wp_version, failed_pages=outcome.failed_pages)
        return outcome

    def _build(self, session, config: BuildConfig) -> BuildOutcome:
        resolver = PathResolver(session, config.server_user, config.provider)

        self._step(2)
        invocation = WPCLIManager(session, resolver.home_directory()).ensure_installed()

        self._step(3)
        path = resolver.default_wordpress_path(config.domain)
        site_url = f"http://{config.domain}"
        self._install_core(session, invocation, path, config, site_url)
        resolver.remember(config.domain, path)

        self._step(4)
        wp(session, invocation, path, f"theme install {Q(config.theme)} --activate")

        self._step(5)
        for plugin in config.plugins:
            wp(session, invocation, path, f"plugin install {Q(plugin)} --activate")
            logger.info(f"Plugin ready: {plugin}")

        self._step(6)
        self._setup_front_page(session, invocation, path)

        self._step(7)
        failed = self._create_business_pages(session, invocation, path)

        version = self._core_version(session, invocation, path)

        self._step(8)
        return BuildOutcome(wp_path=path, site_url=site_url, wp_version=version, failed_pages=failed)

    def _install_core(self, session, invocation: str, path: str, config: BuildConfig, site_url: str):
        if session.file_exists(f"{path}/wp-config.php"):
            raise AlreadyInstalled(f"wp-config.php already exists in {path}; refusing to overwrite it")

        session.execute(f"mkdir -p {Q(path)}")

        if session.file_exists(f"{path}/wp-load.php"):
            logger.info(f"WordPress core already present in {path}; skipping download")
        else:
            wp(session, invocation, path, f"core download --locale={Q(config.locale)}")

        wp(session, invocation, path, (
            f"config create --dbname={Q(config.db_name)} --dbuser={Q(config.db_user)} "
            f"--dbpass={Q(config.db_pass)} --dbhost={Q(config.db_host)} "
            f"--locale={Q(config.locale)} --skip-check"
        ))
        wp(session, invocation, path, (
            f"core install --url={Q(site_url)} --title={Q(config.site_title)} "
            f"--admin_user={Q(config.admin_user)} --admin_password={Q(config.admin_password)} "
            f"--admin_email={Q(config.admin_email)} --skip-email"
        ))
        logger.info(f"WordPress installed at {path}")

    def _create_page(self, session, invocation: str, path: str, page: PageSpec) -> str:
        args = (
            f"--post_type=page --post_title={Q(page.title)} --post_name={Q(page.slug)} "
            f"--post_status=publish --porcelain"
        )
        if not page.content:
            return wp(session, invocation, path, f"post create {args}").stdout.strip()

        # body goes through a file so no page content is ever interpolated into a command
        tmp = f"/tmp/wpforge-page-{uuid.uuid4().hex}.html"
        session.put_text(page.content, tmp)
        try:
            return wp(session, invocation, path, f"post create {Q(tmp)} {args}").stdout.strip()
        finally:
            session.execute(f"rm -f {Q(tmp)}", warn=True)

    def _setup_front_page(self, session, invocation: str, path: str):
        home_id = self._create_page(session, invocation, path, HOME_PAGE)
        blog_id = self._create_page(session, invocation, path, BLOG_PAGE)
        wp(session, invocation, path, "option update show_on_front page")
        wp(session, invocation, path, f"option update page_on_front {Q(home_id)}")
        wp(session, invocation, path, f"option update page_for_posts {Q(blog_id)}")

    def _create_business_pages(self, session, invocation: str, path: str) -> List[str]:
        failed = []
        for page in BUSINESS_PAGES:
            try:
                page_id = self._create_page(session, invocation, path, page)
                logger.info(f"Page created: {page.slug} (#{page_id})")
            except WPForgeError as e:
                logger.error(f"Page {page.slug} could not be created: {e}")
                failed.append(page.slug)
        return failed

    def _core_version(self, session, invocation: str, path: str) -> Optional[str]:
        r = wp(session, invocation, path, "core version", warn=True)
        if not r.ok:
            return None
        return r.stdout.strip() or None
