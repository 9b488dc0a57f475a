"""Pytest configuration and fixtures."""

from shlex import quote as Q
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wpforge.core import vault
from wpforge.core.config import settings
from wpforge.core.errors import CommandError
from wpforge.db.models.website import Base, Website
from wpforge.services.progress import ProgressSink
from wpforge.utils.ssh_utils import CommandResult

TEST_KEY = "test-encryption-key-0123456789abcdefghijklmnop"


class FakeSession:
    """Scripted stand-in for RemoteSession.

    Responses are matched by substring, most recently added rule first.
    A rule's reply may be a callable taking the command.
    """

    def __init__(self, username="user", home="/home/user", files=()):
        self.credentials = SimpleNamespace(username=username, host="203.0.113.10")
        self.home = home
        self.files = set(files)
        self.rules = []
        self.commands = []
        self.uploads = {}
        self.enters = 0
        self.exits = 0

    def on(self, pattern, stdout="", exit_code=0, stderr="", reply=None):
        self.rules.append((pattern, reply or (stdout, exit_code, stderr)))
        return self

    def _respond(self, command):
        for pattern, reply in reversed(self.rules):
            if pattern in command:
                if callable(reply):
                    reply = reply(command)
                stdout, code, stderr = reply
                return CommandResult(stdout=stdout, stderr=stderr, exit_code=code)
        if command == "echo $HOME":
            return CommandResult(stdout=f"{self.home}\n", stderr="", exit_code=0)
        if command.startswith("test -f "):
            path = command[len("test -f "):]
            found = any(Q(f) == path for f in self.files)
            return CommandResult(stdout="", stderr="", exit_code=0 if found else 1)
        if "--version" in command:
            return CommandResult(stdout="", stderr="command not found", exit_code=127)
        return CommandResult(stdout="", stderr="", exit_code=0)

    def execute(self, command, warn=False):
        self.commands.append(command)
        result = self._respond(command)
        if not result.ok and not warn:
            raise CommandError(command, result.exit_code, result.combined)
        return result

    def run(self, command):
        return self.execute(command).stdout

    def sudo(self, command, warn=False):
        return self.execute(f"sudo {command}", warn=warn)

    def file_exists(self, path):
        return self.execute(f"test -f {Q(path)}", warn=True).ok

    def put_text(self, content, remote_path):
        self.commands.append(f"put {remote_path}")
        self.uploads[remote_path] = content

    def __enter__(self):
        self.enters += 1
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exits += 1
        return False

    def ran(self, fragment):
        return [c for c in self.commands if fragment in c]


class RecordingSink(ProgressSink):
    def __init__(self):
        self.reports = []
        self.failures = []

    def report(self, progress):
        self.reports.append(progress)

    def fail(self, progress, error_message):
        self.failures.append((progress, error_message))

    @property
    def percents(self):
        return [p.percent for p in self.reports]


@pytest.fixture(autouse=True)
def encryption_key(monkeypatch):
    monkeypatch.setattr(settings, "encryption_key", TEST_KEY)
    return TEST_KEY


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def db_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(db_factory):
    session = db_factory()
    yield session
    session.close()


@pytest.fixture
def make_website(db):
    """Create a website row; credentials are encrypted with the test key."""

    def _make(status="credentials_saved", domain="example.com", password="s3cret-pass", **fields):
        website = Website(
            user_id=fields.pop("user_id", "user-1"),
            domain=domain,
            server_host="203.0.113.10",
            server_port=22,
            server_user="user",
            server_auth_method="password",
            server_pass_encrypted=vault.encrypt(password) if password else None,
            server_provider="other",
            status=status,
            **fields,
        )
        db.add(website)
        db.commit()
        db.refresh(website)
        return website

    return _make


def reload(db_factory, website_id):
    session = db_factory()
    try:
        return session.get(Website, website_id)
    finally:
        session.close()


@pytest.fixture
def fetch(db_factory):
    return lambda website_id: reload(db_factory, website_id)
