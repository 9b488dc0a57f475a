from types import SimpleNamespace

import pytest

from wpforge.core import vault
from wpforge.core.errors import (
    AlreadyInstalled,
    AuthenticationFailed,
    CommandError,
    DNSNotPropagated,
    InvalidWebsiteState,
    MissingCredentials,
)
from wpforge.schemas.website import BuildRequest, SaveCredentialsRequest, SSLRequest
from wpforge.services import website_service
from wpforge.services.ssl_service import DNSPropagationChecker
from wpforge.utils.ssh_utils import RemoteSession

from conftest import FakeSession

WP = "/usr/bin/php8.2 /home/user/bin/wp"


def build_request(website_id, **overrides):
    values = dict(
        website_id=website_id,
        site_title="My Shop",
        admin_user="admin",
        admin_password="Adm1n-Pass!",
        admin_email="owner@example.com",
        db_name="wp_db",
        db_user="wp_user",
        db_pass="db-pass",
    )
    values.update(overrides)
    return BuildRequest(**values)


def connect_to(session):
    return lambda creds, secrets=(): session


class ScriptedConnection:
    """Fabric connection stand-in answering from a FakeSession's rules."""

    def __init__(self, script):
        self.script = script

    def run(self, command, **kwargs):
        r = self.script._respond(command)
        return SimpleNamespace(stdout=r.stdout, stderr=r.stderr, exited=r.exit_code)

    def sudo(self, command, **kwargs):
        return self.run(f"sudo {command}")

    def put(self, local, remote):
        self.script.uploads[remote] = local.getvalue().decode("utf-8")

    def close(self):
        pass


def remote_over(script):
    def connect(creds, secrets=()):
        session = RemoteSession(creds, secrets=secrets)
        session._conn = ScriptedConnection(script)
        return session
    return connect


def buildable_session():
    ids = iter(range(100, 200))
    return (
        FakeSession()
        .on(f"{WP} --version", stdout="WP-CLI 2.10.0")
        .on("post create", reply=lambda cmd: (f"{next(ids)}\n", 0, ""))
        .on("core version", stdout="6.5\n")
    )


class TestSaveCredentials:
    def test_verified_credentials_are_encrypted(self, db, make_website):
        website = make_website(status="unconfigured", password=None)
        seen = []
        req = SaveCredentialsRequest(website_id=website.id, server_host=" sv1.example.net ",
                                     server_user="user", server_pass="pw-123", server_provider="xserver")

        saved = website_service.save_credentials(db, req, verifier=seen.append)

        assert seen[0].host == "sv1.example.net" and seen[0].password == "pw-123"
        assert saved.status == "credentials_saved"
        assert saved.server_pass_encrypted != "pw-123"
        assert vault.decrypt(saved.server_pass_encrypted) == "pw-123"
        assert saved.server_key_encrypted is None
        assert saved.server_provider == "xserver"

    def test_failed_login_stores_nothing(self, db, make_website):
        website = make_website(status="unconfigured", password=None)
        req = SaveCredentialsRequest(website_id=website.id, server_host="h", server_user="u",
                                     server_pass="wrong")

        def reject(creds):
            raise AuthenticationFailed("Authentication failed. Check the user name and password.")

        with pytest.raises(AuthenticationFailed):
            website_service.save_credentials(db, req, verifier=reject)
        db.refresh(website)
        assert website.server_pass_encrypted is None
        assert website.status == "unconfigured"

    def test_private_key_requires_key(self):
        with pytest.raises(ValueError):
            SaveCredentialsRequest(website_id="x", server_host="h", server_user="u", auth_method="privateKey")


class TestTriggerGuards:
    @pytest.mark.parametrize("status", ["completed", "active", "ssl_pending", "building"])
    def test_build_blocked_statuses(self, db, make_website, status):
        website = make_website(status=status)
        with pytest.raises(InvalidWebsiteState):
            website_service.start_build(db, build_request(website.id))
        db.refresh(website)
        assert website.status == status

    def test_build_needs_credentials(self, db, make_website):
        website = make_website(status="unconfigured", password=None)
        with pytest.raises(MissingCredentials):
            website_service.start_build(db, build_request(website.id))

    def test_build_marks_building(self, db, make_website):
        website = make_website(status="error", error_message="old failure")
        started = website_service.start_build(db, build_request(website.id))
        assert started.status == "building"
        assert started.error_message is None
        assert started.build_progress == {"step": 0, "message": "Queued", "percent": 0, "completed": False}

    @pytest.mark.parametrize("status", ["credentials_saved", "building", "completed", "error"])
    def test_ssl_requires_ssl_pending(self, db, make_website, status):
        website = make_website(status=status)
        with pytest.raises(InvalidWebsiteState):
            website_service.start_ssl(db, SSLRequest(website_id=website.id, email="a@example.com"))

    def test_ssl_marks_installing(self, db, make_website):
        website = make_website(status="ssl_pending")
        assert website_service.start_ssl(db, SSLRequest(website_id=website.id, email="a@example.com")).status \
            == "ssl_installing"

    def test_detection_needs_credentials(self, db, make_website):
        website = make_website(status="unconfigured", password=None)
        with pytest.raises(MissingCredentials):
            website_service.start_detection(db, website.id)

    def test_build_payload_is_sealed(self):
        payload = website_service.build_task_payload(build_request("w1"))
        assert "admin_password" not in payload and "db_pass" not in payload
        assert vault.decrypt(payload["admin_password_sealed"]) == "Adm1n-Pass!"
        assert vault.decrypt(payload["db_pass_sealed"]) == "db-pass"


class TestRuns:
    def test_detect_then_build_ends_in_ssl_pending(self, db, db_factory, make_website, fetch):
        website = make_website()

        detection = website_service.run_detection(website.id, db_factory, connect_to(FakeSession()))
        assert detection.installed is False
        assert fetch(website.id).wp_detection_result["installed"] is False

        website_service.start_build(db, build_request(website.id))
        session = buildable_session()
        payload = website_service.build_task_payload(build_request(website.id))
        result = website_service.run_build(website.id, payload, db_factory, connect_to(session))

        stored = fetch(website.id)
        assert stored.status == "ssl_pending"
        assert stored.build_progress == {
            "step": 8, "message": "WordPress build complete", "percent": 100, "completed": True,
        }
        assert stored.wp_path == "/home/user/public_html/example.com" == result["wp_path"]
        assert stored.wp_version == "6.5"
        assert stored.current_step == 8
        assert session.exits == 1

    def test_installed_site_is_refused_and_status_kept(self, db, db_factory, make_website, fetch):
        website = make_website()
        path = "/home/user/public_html/example.com"
        session = (
            FakeSession(files=[f"{path}/wp-config.php"])
            .on(f"{WP} --version", stdout="WP-CLI 2.10.0")
            .on("core version", stdout="6.4\n")
        )

        detection = website_service.run_detection(website.id, db_factory, connect_to(session))
        assert detection.installed and detection.wp_version == "6.4"
        stored = fetch(website.id)
        assert stored.status == "active"
        assert stored.wp_path == path

        db.expire_all()
        with pytest.raises(AlreadyInstalled, match="already installed"):
            website_service.start_build(db, build_request(website.id))
        assert fetch(website.id).status == "active"

    def test_detection_does_not_relabel_a_built_site(self, db_factory, make_website, fetch):
        website = make_website(status="ssl_pending")
        session = FakeSession(files=["/home/user/public_html/example.com/wp-config.php"])
        website_service.run_detection(website.id, db_factory, connect_to(session))
        assert fetch(website.id).status == "ssl_pending"

    def test_detection_connection_error_is_recorded(self, db_factory, make_website, fetch):
        website = make_website()

        def refuse(creds, secrets=()):
            raise AuthenticationFailed("Authentication failed. Check the user name and password.")

        result = website_service.run_detection(website.id, db_factory, refuse)
        assert result.installed is False
        stored = fetch(website.id)
        assert "Authentication failed" in stored.wp_detection_result["error"]
        assert stored.status == "credentials_saved"

    def test_build_failure_marks_error_with_step(self, db, db_factory, make_website, fetch):
        website = make_website()
        website_service.start_build(db, build_request(website.id))
        session = buildable_session().on("theme install", stderr="Theme not found", exit_code=1)

        with pytest.raises(CommandError):
            website_service.run_build(website.id, website_service.build_task_payload(build_request(website.id)),
                                      db_factory, connect_to(session))

        stored = fetch(website.id)
        assert stored.status == "error"
        assert "Theme not found" in stored.error_message
        assert stored.build_progress["step"] == 4
        assert stored.build_progress["percent"] == 60
        assert stored.build_progress["completed"] is False

    def test_build_error_never_stores_quoted_password(self, db, db_factory, make_website, fetch):
        website = make_website()
        req = build_request(website.id, db_pass="db'pass")
        website_service.start_build(db, req)
        script = buildable_session().on(
            "config create", reply=lambda cmd: ("", 1, f"Error: cannot connect: {cmd}"))

        with pytest.raises(CommandError):
            website_service.run_build(website.id, website_service.build_task_payload(req),
                                      db_factory, remote_over(script))

        stored = fetch(website.id)
        assert stored.status == "error"
        assert "config create" in stored.error_message
        assert "db'pass" not in stored.error_message
        assert "pass'" not in stored.error_message
        assert "***" in stored.error_message

    def test_ssl_run_completes_site(self, db_factory, make_website, fetch):
        website = make_website(status="ssl_installing", wp_path="/home/user/public_html/example.com")
        session = FakeSession().on("certbot --version", stdout="certbot 2.9.0")
        checker = DNSPropagationChecker(resolver=lambda host: {"203.0.113.10"}, sleep=lambda s: None,
                                        max_retries=2, interval=0)

        result = website_service.run_ssl(website.id, "owner@example.com", db_factory, connect_to(session),
                                         dns_checker=checker, expiry_checker=lambda d: None)

        stored = fetch(website.id)
        assert result["method"] == "webroot"
        assert stored.status == "completed"
        assert stored.ssl_enabled is True
        assert stored.ssl_progress["percent"] == 100 and stored.ssl_progress["completed"]
        assert session.ran("-w /home/user/public_html/example.com")

    def test_ssl_dns_failure_marks_error(self, db_factory, make_website, fetch):
        website = make_website(status="ssl_installing", wp_path="/srv/www")
        checker = DNSPropagationChecker(resolver=lambda host: {"198.51.100.1"} if host == "example.com"
                                        else {"203.0.113.10"}, sleep=lambda s: None, max_retries=2, interval=0)
        with pytest.raises(DNSNotPropagated):
            website_service.run_ssl(website.id, "owner@example.com", db_factory, connect_to(FakeSession()),
                                    dns_checker=checker)
        stored = fetch(website.id)
        assert stored.status == "error"
        assert stored.ssl_enabled is False
        assert stored.ssl_progress["step"] == 2
