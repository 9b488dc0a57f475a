"""Let's Encrypt issuance for a freshly built site.

    1 connect (5)  2 DNS poll (10-30)  3 certbot (35)  4 certificate (60)
    5 Apache vhost (80)  6 renewal timer (90)  7 done (100)
"""
import math
import socket
import ssl
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from shlex import quote as Q
from typing import Callable, Optional, Set

from wpforge.core.config import settings
from wpforge.core.errors import CertificateIssuanceFailed, CommandError, DNSNotPropagated
from wpforge.core.logger import log_json, setup_logger
from wpforge.services.path_resolver import PathResolver
from wpforge.services.progress import ProgressTracker

logger = setup_logger("ssl")

CERTBOT_INSTALL = (
    "apt-get update -y",
    "apt-get install -y snapd",
    "snap install core",
    "snap refresh core",
    "snap install --classic certbot",
    "ln -sf /snap/bin/certbot /usr/bin/certbot",
)

RENEWAL_TIMERS = ("certbot.timer", "snap.certbot.renew.timer")

VHOST_TEMPLATE = """<VirtualHost *:443>
    ServerName {domain}
    ServerAlias www.{domain}
    DocumentRoot "{docroot}"

    SSLEngine on
    SSLCertificateFile /etc/letsencrypt/live/{domain}/fullchain.pem
    SSLCertificateKeyFile /etc/letsencrypt/live/{domain}/privkey.pem

    <Directory "{docroot}">
        AllowOverride All
        Require all granted
    </Directory>
</VirtualHost>

<VirtualHost *:80>
    ServerName {domain}
    ServerAlias www.{domain}
    Redirect permanent / https://{domain}/
</VirtualHost>
"""


def _sh(cmd: str) -> str:
    # sudo only wraps the first word; chains need their own shell
    return f"sh -c {Q(cmd)}"


def bare_domain(domain: str) -> str:
    d = domain.strip().lower()
    return d[4:] if d.startswith("www.") else d


# ---------- DNS ----------

def resolve_addresses(host: str) -> Set[str]:
    return {info[4][0] for info in socket.getaddrinfo(host, None)}


class DNSPropagationChecker:
    """Polls until the domain resolves to one of the server's addresses."""

    def __init__(self, resolver: Callable[[str], Set[str]] = resolve_addresses,
                 sleep: Callable[[float], None] = time.sleep,
                 max_retries: int | None = None, interval: float | None = None):
        self.resolver = resolver
        self.sleep = sleep
        self.max_retries = settings.dns_max_retries if max_retries is None else max_retries
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        self.interval = settings.dns_retry_interval if interval is None else interval

    def _resolve(self, host: str) -> Set[str]:
        try:
            return set(self.resolver(host))
        except (OSError, UnicodeError) as e:
            logger.debug(f"DNS lookup for {host} failed: {e}")
            return set()

    def wait(self, domain: str, server_host: str,
             on_attempt: Optional[Callable[[int, int], None]] = None) -> Set[str]:
        server_ips: Set[str] = set()
        for attempt in range(1, self.max_retries + 1):
            if on_attempt:
                on_attempt(attempt, self.max_retries)
            if not server_ips:
                server_ips = self._resolve(server_host)
            domain_ips = self._resolve(domain)
            matched = domain_ips & server_ips
            if matched:
                logger.info(f"DNS for {domain} points at {sorted(matched)} (attempt {attempt})")
                return matched
            logger.info(
                f"DNS not propagated yet ({attempt}/{self.max_retries}): "
                f"{domain} -> {sorted(domain_ips)}, server -> {sorted(server_ips)}"
            )
            if attempt < self.max_retries:
                self.sleep(self.interval)
        raise DNSNotPropagated(
            f"{domain} does not resolve to the server ({server_host}) after "
            f"{self.max_retries} attempts. Check the domain's A record and try again later."
        )


# ---------- certbot / apache ----------

class CertbotInstaller:
    def __init__(self, session, email: str, sites_dir: str | None = None):
        self.session = session
        self.email = email
        self.sites_dir = sites_dir or settings.apache_sites_dir

    def ensure_certbot(self):
        if self.session.execute("certbot --version 2>&1", warn=True).ok:
            logger.info("certbot already installed")
            return
        logger.info("Installing certbot via snap")
        try:
            for cmd in CERTBOT_INSTALL:
                self.session.sudo(cmd)
        except CommandError as e:
            raise CertificateIssuanceFailed(f"Could not install certbot: {e}") from e

    def _certonly(self, domain: str, method: str) -> str:
        d = bare_domain(domain)
        return (
            f"certbot certonly {method} -d {Q(d)} -d {Q('www.' + d)} "
            f"--email {Q(self.email)} --agree-tos --non-interactive"
        )

    def obtain(self, domain: str, webroot: str) -> str:
        """Webroot first; standalone with Apache stopped as the fallback. Returns the method used."""
        r = self.session.sudo(self._certonly(domain, f"--webroot -w {Q(webroot)}"), warn=True)
        if r.ok:
            logger.info(f"Certificate issued for {domain} (webroot)")
            return "webroot"
        logger.warning(f"Webroot validation failed for {domain}; retrying standalone: {r.combined[:300]}")

        self.session.sudo(_sh("systemctl stop apache2 2>/dev/null || systemctl stop httpd"), warn=True)
        try:
            r = self.session.sudo(self._certonly(domain, "--standalone"), warn=True)
        finally:
            self.session.sudo(_sh("systemctl start apache2 2>/dev/null || systemctl start httpd"), warn=True)
        if not r.ok:
            raise CertificateIssuanceFailed(
                f"Certificate issuance failed for {domain} (webroot and standalone):\n{r.combined}"
            )
        logger.info(f"Certificate issued for {domain} (standalone)")
        return "standalone"

    def configure_apache(self, domain: str, docroot: str) -> str:
        d = bare_domain(domain)
        conf = f"{self.sites_dir}/{d}-ssl.conf"
        tmp = f"/tmp/wpforge-{uuid.uuid4().hex}.conf"
        self.session.put_text(VHOST_TEMPLATE.format(domain=d, docroot=docroot), tmp)
        self.session.sudo(f"mv {Q(tmp)} {Q(conf)}")
        self.session.sudo("a2enmod ssl", warn=True)
        self.session.sudo(f"a2ensite {Q(d + '-ssl.conf')}", warn=True)
        self.session.sudo(_sh("systemctl reload apache2 2>/dev/null || systemctl reload httpd"))
        logger.info(f"Apache TLS vhost written to {conf}")
        return conf

    def enable_renewal(self) -> bool:
        for timer in RENEWAL_TIMERS:
            if self.session.sudo(f"systemctl enable --now {timer}", warn=True).ok:
                logger.info(f"Renewal timer enabled: {timer}")
                return True
        logger.warning("Could not enable a certbot renewal timer; renew manually or add a cron job")
        return False


def get_ssl_expiry(domain: str, timeout: float = 10) -> Optional[datetime]:
    """notAfter of the certificate served on :443, or None when it cannot be read."""
    try:
        context = ssl.create_default_context()
        with socket.create_connection((domain, 443), timeout=timeout) as sock:
            with context.wrap_socket(sock, server_hostname=domain) as ssock:
                cert = ssock.getpeercert()
        # e.g. 'Oct 24 22:14:28 2025 GMT'
        return datetime.fromtimestamp(ssl.cert_time_to_seconds(cert["notAfter"]), tz=timezone.utc)
    except (OSError, ssl.SSLError, KeyError, ValueError) as e:
        logger.warning(f"Could not read certificate expiry for {domain}: {e}")
        return None


# ---------- pipeline ----------

@dataclass
class SSLConfig:
    domain: str
    email: str
    server_host: str
    server_user: str
    provider: str = "other"
    webroot: Optional[str] = None


@dataclass
class SSLOutcome:
    method: str
    vhost_path: str
    renewal_enabled: bool
    expires_at: Optional[datetime] = None


class CertificateProvisioner:
    def __init__(self, session_factory: Callable, tracker: ProgressTracker,
                 dns_checker: Optional[DNSPropagationChecker] = None,
                 expiry_checker: Callable[[str], Optional[datetime]] = get_ssl_expiry):
        self.session_factory = session_factory
        self.tracker = tracker
        self.dns_checker = dns_checker or DNSPropagationChecker()
        self.expiry_checker = expiry_checker

    def run(self, config: SSLConfig) -> SSLOutcome:
        try:
            self.tracker.advance(1, "Connecting to server...", 5)
            with self.session_factory() as session:
                outcome = self._issue(session, config)
        except Exception as e:
            self.tracker.fail(e)
            raise
        log_json(logger, event="ssl_complete", domain=config.domain, method=outcome.method,
                 renewal=outcome.renewal_enabled, expires_at=outcome.expires_at)
        return outcome

    def _on_dns_attempt(self, attempt: int, total: int):
        percent = math.floor(10 + attempt / total * 20)
        self.tracker.advance(2, f"Waiting for DNS propagation ({attempt}/{total})...", percent)

    def _issue(self, session, config: SSLConfig) -> SSLOutcome:
        self.tracker.advance(2, "Checking DNS...", 10)
        self.dns_checker.wait(config.domain, config.server_host, on_attempt=self._on_dns_attempt)

        certbot = CertbotInstaller(session, config.email)
        self.tracker.advance(3, "Installing certbot...", 35)
        certbot.ensure_certbot()

        self.tracker.advance(4, "Obtaining certificate...", 60)
        webroot = config.webroot
        if not webroot:
            resolver = PathResolver(session, config.server_user, config.provider)
            webroot = resolver.find_wordpress_path(config.domain) or resolver.default_wordpress_path(config.domain)
        method = certbot.obtain(config.domain, webroot)

        self.tracker.advance(5, "Configuring Apache for HTTPS...", 80)
        vhost = certbot.configure_apache(config.domain, webroot)

        self.tracker.advance(6, "Enabling automatic renewal...", 90)
        renewal = certbot.enable_renewal()

        expires_at = self.expiry_checker(bare_domain(config.domain))
        self.tracker.advance(7, "SSL setup complete", 100, completed=True)
        return SSLOutcome(method=method, vhost_path=vhost, renewal_enabled=renewal, expires_at=expires_at)
