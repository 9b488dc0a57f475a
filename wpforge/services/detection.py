"""Decide whether WordPress already exists for a domain.

Only the presence of ``wp-config.php`` counts as installed. When WP-CLI
already works on the account the result is enriched with read-only queries;
nothing is installed during detection.
"""
import json
from typing import List, Optional

from wpforge.core.errors import CommandError, PathNotFound, WPForgeError
from wpforge.core.logger import log_json, setup_logger
from wpforge.schemas.website import DetectionResult
from wpforge.services.path_resolver import PathResolver
from wpforge.services.wp_cli import WPCLIManager, wp

logger = setup_logger("detection")


def _names(raw: str) -> List[str]:
    try:
        items = json.loads(raw or "[]")
    except ValueError:
        return []
    return [i["name"] for i in items if isinstance(i, dict) and i.get("name")]


class WordPressDetector:
    def __init__(self, session, resolver: PathResolver, cli: Optional[WPCLIManager] = None):
        self.session = session
        self.resolver = resolver
        self.cli = cli or WPCLIManager(session, resolver.home_directory())

    def _query(self, invocation: str, path: str, cmd: str) -> Optional[str]:
        try:
            r = wp(self.session, invocation, path, cmd, warn=True)
        except WPForgeError as e:
            logger.warning(f"wp {cmd} failed: {e}")
            return None
        if not r.ok:
            logger.warning(f"wp {cmd} exited {r.exit_code}: {r.combined[:200]}")
            return None
        return r.stdout.strip() or None

    def _enrich(self, result: DetectionResult, path: str):
        invocation = self.cli.get_working_invocation()
        if not invocation:
            return
        result.has_wp_cli = True
        result.wp_version = self._query(invocation, path, "core version")
        result.site_url = self._query(invocation, path, "option get siteurl")
        result.admin_email = self._query(invocation, path, "option get admin_email")
        result.themes = _names(self._query(invocation, path, "theme list --format=json --fields=name"))
        result.plugins = _names(self._query(invocation, path, "plugin list --format=json --fields=name"))

    def detect(self, domain: str) -> DetectionResult:
        result = DetectionResult()
        try:
            path = self.resolver.require_wordpress_path(domain)
        except PathNotFound:
            logger.info(f"No WordPress for {domain}")
            return result
        except CommandError as e:
            result.error = str(e)
            return result

        result.path = path
        result.has_wp_config = self.session.file_exists(f"{path}/wp-config.php")
        result.installed = result.has_wp_config

        if result.installed:
            try:
                self._enrich(result, path)
            except WPForgeError as e:
                logger.warning(f"Detection enrichment failed for {domain}: {e}")
                result.error = str(e)

        log_json(logger, event="detection", domain=domain, path=path, **result.to_record())
        return result
