import io
import socket
from dataclasses import dataclass, field
from shlex import quote as Q

import paramiko
from fabric import Config, Connection
from invoke.exceptions import AuthFailure
from paramiko.ssh_exception import (
    AuthenticationException,
    NoValidConnectionsError,
    PasswordRequiredException,
    SSHException,
)

from wpforge.core import errors
from wpforge.core.config import settings
from wpforge.core.logger import mask, setup_logger

logger = setup_logger("ssh")

KEY_FORMAT_MESSAGE = (
    "The private key format is not valid. Open the downloaded .key file in a "
    "text editor and paste everything from \"-----BEGIN\" to \"-----END\"."
)

_KEY_TYPES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


@dataclass
class SSHCredentials:
    host: str
    username: str
    port: int = 22
    password: str | None = field(default=None, repr=False)
    private_key: str | None = field(default=None, repr=False)

    @property
    def auth_method(self) -> str:
        return "privateKey" if self.private_key else "password"


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def combined(self) -> str:
        return "\n".join(s for s in (self.stdout.strip(), self.stderr.strip()) if s)


def load_private_key(pem: str) -> paramiko.PKey:
    """Parse a pasted PEM/OpenSSH key, trying each supported key type."""
    text = pem.strip() + "\n"
    for key_cls in _KEY_TYPES:
        try:
            return key_cls.from_private_key(io.StringIO(text))
        except PasswordRequiredException as e:
            raise errors.KeyFormatInvalid(
                "The private key is protected by a passphrase. Upload a key without a passphrase."
            ) from e
        except (SSHException, ValueError, IndexError):
            continue
    raise errors.KeyFormatInvalid(KEY_FORMAT_MESSAGE)


def _connect_kwargs(creds: SSHCredentials) -> dict:
    # make behavior deterministic: only the stored credential is ever offered
    kw = {
        "allow_agent": False,
        "look_for_keys": False,
        "banner_timeout": settings.ssh_banner_timeout,
        "auth_timeout": settings.ssh_auth_timeout,
    }
    if creds.private_key:
        kw["pkey"] = load_private_key(creds.private_key)
    elif creds.password:
        kw["password"] = creds.password
    else:
        raise errors.AuthenticationFailed(
            "No credentials available (a password or an SSH key is required)."
        )
    return kw


def _conn_params(creds: SSHCredentials, timeout: int) -> dict:
    cfg = Config(overrides={"sudo": {"password": creds.password}})
    return {
        "host": creds.host,
        "user": creds.username,
        "port": creds.port or 22,
        "connect_timeout": timeout,
        "connect_kwargs": _connect_kwargs(creds),
        "config": cfg,
    }


def translate_connect_error(exc: Exception, creds: SSHCredentials) -> errors.ConnectionError:
    """Map a low-level socket/paramiko failure to a user-facing connection error."""
    if isinstance(exc, errors.ConnectionError):
        return exc
    if isinstance(exc, socket.gaierror):
        return errors.HostUnreachable("Host name not found. Check the SSH host name.")
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return errors.ConnectionTimeout(
            "The connection timed out. Check the host name and port number."
        )
    if isinstance(exc, (NoValidConnectionsError, ConnectionRefusedError)):
        return errors.HostUnreachable("The connection was refused. Check the port number.")
    if isinstance(exc, AuthenticationException):
        if creds.auth_method == "privateKey":
            return errors.AuthenticationFailed(
                "Authentication failed. Check the contents of the private key."
            )
        return errors.AuthenticationFailed(
            "Authentication failed. Check the user name and password."
        )
    if isinstance(exc, SSHException):
        if "banner" in str(exc).lower():
            return errors.ConnectionTimeout(
                "The server did not answer the SSH handshake in time. Check the port number."
            )
        return errors.HostUnreachable(f"The SSH handshake failed: {exc}")
    if isinstance(exc, OSError):
        return errors.HostUnreachable(f"The server could not be reached: {exc}")
    return errors.ConnectionError(f"SSH connection error: {exc}")


class RemoteSession:
    """One authenticated SSH connection, used for exactly one run.

    Use as a context manager; the connection is closed exactly once when the
    block exits, whatever happened inside. Commands run one at a time, each in
    a fresh shell, so they must not rely on cwd or exported variables from a
    previous call.
    """

    def __init__(self, credentials: SSHCredentials, timeout: int | None = None, secrets=()):
        self.credentials = credentials
        self.timeout = timeout or settings.ssh_connect_timeout
        self._conn: Connection | None = None
        self._secrets = [credentials.password, *secrets]

    # ---------- lifecycle ----------

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> "RemoteSession":
        creds = self.credentials
        logger.info(f"Connecting to {creds.host}:{creds.port} as {creds.username} ({creds.auth_method})")
        params = _conn_params(creds, self.timeout)
        conn = Connection(**params)
        try:
            conn.open()
        except Exception as e:
            conn.close()
            err = translate_connect_error(e, creds)
            logger.warning(f"SSH connect to {creds.host} failed: {type(e).__name__}: {e}")
            raise err from e
        self._conn = conn
        logger.info(f"SSH connected to {creds.host}")
        return self

    def close(self):
        if self._conn is None:
            return
        try:
            self._conn.close()
        finally:
            self._conn = None
            logger.info(f"SSH disconnected from {self.credentials.host}")

    def __enter__(self):
        if not self.connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ---------- execution ----------

    def _require(self) -> Connection:
        if self._conn is None:
            raise errors.ConnectionError("SSH session is not connected.")
        return self._conn

    def _finish(self, r) -> CommandResult:
        return CommandResult(stdout=r.stdout or "", stderr=r.stderr or "", exit_code=r.exited)

    def execute(self, command: str, warn: bool = False) -> CommandResult:
        """Run one command to completion.

        Non-zero exit raises CommandError unless ``warn`` is set, in which case
        the caller inspects ``exit_code`` itself.
        """
        conn = self._require()
        shown = mask(command, self._secrets)
        logger.debug(f"$ {shown}")
        result = self._finish(conn.run(command, hide=True, warn=True, in_stream=False))
        if not result.ok and not warn:
            logger.error(f"Command failed ({result.exit_code}): {shown}")
            raise errors.CommandError(shown, result.exit_code, mask(result.combined, self._secrets))
        return result

    def run(self, command: str) -> str:
        return self.execute(command).stdout

    def sudo(self, command: str, warn: bool = False) -> CommandResult:
        conn = self._require()
        if self.credentials.username == "root":
            return self.execute(command, warn=warn)
        shown = mask(command, self._secrets)
        logger.debug(f"$ sudo {shown}")
        try:
            r = conn.sudo(command, hide=True, warn=True, in_stream=False)
        except AuthFailure as e:
            raise errors.CommandError(
                f"sudo {shown}", -1, "sudo rejected the password (or requires one that was not provided)."
            ) from e
        result = self._finish(r)
        if not result.ok and not warn:
            logger.error(f"Command failed ({result.exit_code}): sudo {shown}")
            raise errors.CommandError(f"sudo {shown}", result.exit_code, mask(result.combined, self._secrets))
        return result

    def file_exists(self, path: str) -> bool:
        return self.execute(f"test -f {Q(path)}", warn=True).ok

    def put_text(self, content: str, remote_path: str):
        conn = self._require()
        logger.debug(f"upload -> {remote_path} ({len(content)} chars)")
        try:
            conn.put(io.BytesIO(content.encode("utf-8")), remote=remote_path)
        except (OSError, SSHException) as e:
            raise errors.CommandError(f"upload {remote_path}", -1, str(e)) from e


def verify_ssh(credentials: SSHCredentials) -> dict:
    with RemoteSession(credentials) as session:
        out = session.run("echo ok && uname -a")
        return {"ok": out.startswith("ok"), "stdout": out.strip()}
