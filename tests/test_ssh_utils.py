import io
import socket
from shlex import quote as Q
from types import SimpleNamespace

import paramiko
import pytest
from paramiko.ssh_exception import AuthenticationException, NoValidConnectionsError, SSHException

from wpforge.core import errors
from wpforge.utils import ssh_utils
from wpforge.utils.ssh_utils import RemoteSession, SSHCredentials, load_private_key, translate_connect_error

PASSWORD_CREDS = SSHCredentials(host="203.0.113.10", username="user", password="hunter22")
KEY_CREDS = SSHCredentials(host="203.0.113.10", username="user", private_key="-----BEGIN...")


class TestTranslateConnectError:
    def test_unknown_host(self):
        err = translate_connect_error(socket.gaierror(-2, "Name or service not known"), PASSWORD_CREDS)
        assert isinstance(err, errors.HostUnreachable)
        assert "host name" in str(err).lower()

    def test_timeout(self):
        err = translate_connect_error(socket.timeout("timed out"), PASSWORD_CREDS)
        assert isinstance(err, errors.ConnectionTimeout)

    def test_refused(self):
        exc = NoValidConnectionsError({("203.0.113.10", 22): ConnectionRefusedError()})
        err = translate_connect_error(exc, PASSWORD_CREDS)
        assert isinstance(err, errors.HostUnreachable)
        assert "port" in str(err)

    def test_auth_failure_mentions_password(self):
        err = translate_connect_error(AuthenticationException("bad"), PASSWORD_CREDS)
        assert isinstance(err, errors.AuthenticationFailed)
        assert "password" in str(err)

    def test_auth_failure_mentions_key(self):
        err = translate_connect_error(AuthenticationException("bad"), KEY_CREDS)
        assert isinstance(err, errors.AuthenticationFailed)
        assert "private key" in str(err)

    def test_banner_error_is_a_timeout(self):
        err = translate_connect_error(SSHException("Error reading SSH protocol banner"), PASSWORD_CREDS)
        assert isinstance(err, errors.ConnectionTimeout)

    def test_connection_errors_pass_through(self):
        original = errors.KeyFormatInvalid("bad key")
        assert translate_connect_error(original, KEY_CREDS) is original


class TestLoadPrivateKey:
    def test_garbage_is_key_format_invalid(self):
        with pytest.raises(errors.KeyFormatInvalid) as exc:
            load_private_key("this is not a key")
        assert "-----BEGIN" in str(exc.value)

    def test_rsa_key_is_loaded(self):
        buf = io.StringIO()
        paramiko.RSAKey.generate(2048).write_private_key(buf)
        key = load_private_key("\n  " + buf.getvalue() + "  \n")
        assert isinstance(key, paramiko.RSAKey)


class FakeConnection:
    def __init__(self, results=None, open_error=None, **kwargs):
        self.kwargs = kwargs
        self.results = results or {}
        self.open_error = open_error
        self.close_calls = 0

    def open(self):
        if self.open_error:
            raise self.open_error

    def close(self):
        self.close_calls += 1

    def run(self, command, **kwargs):
        out, code = self.results.get(command, ("", 0))
        return SimpleNamespace(stdout=out, stderr="", exited=code)


class TestRemoteSession:
    def _connected(self, results):
        session = RemoteSession(PASSWORD_CREDS, secrets=("db-secret",))
        session._conn = FakeConnection(results)
        return session

    def test_execute_returns_result(self):
        session = self._connected({"uname": ("Linux\n", 0)})
        r = session.execute("uname")
        assert r.ok and r.stdout == "Linux\n"
        assert session.run("uname") == "Linux\n"

    def test_non_zero_exit_raises_with_secrets_masked(self):
        session = self._connected({"mysql -pdb-secret": ("access denied for db-secret", 1)})
        with pytest.raises(errors.CommandError) as exc:
            session.execute("mysql -pdb-secret")
        assert exc.value.exit_code == 1
        assert "db-secret" not in str(exc.value)
        assert "***" in exc.value.command

    def test_quoted_secret_is_masked(self):
        db_pass = "db'pass"
        command = f"wp config create --dbname=wp --dbpass={Q(db_pass)}"
        session = RemoteSession(PASSWORD_CREDS, secrets=(db_pass,))
        session._conn = FakeConnection({command: (f"Error: access denied (using {db_pass})", 1)})
        with pytest.raises(errors.CommandError) as exc:
            session.execute(command)
        message = str(exc.value)
        assert db_pass not in message
        assert Q(db_pass) not in message
        assert "pass'" not in message
        assert exc.value.command == "wp config create --dbname=wp --dbpass=***"

    def test_warn_returns_failed_result(self):
        session = self._connected({"false": ("", 1)})
        assert session.execute("false", warn=True).exit_code == 1

    def test_close_is_idempotent(self):
        session = self._connected({})
        conn = session._conn
        session.close()
        session.close()
        assert conn.close_calls == 1
        assert not session.connected

    def test_commands_require_a_connection(self):
        with pytest.raises(errors.ConnectionError):
            RemoteSession(PASSWORD_CREDS).execute("true")

    def test_failed_connect_is_translated_and_cleaned_up(self, monkeypatch):
        made = []

        def fake_connection(**kwargs):
            conn = FakeConnection(open_error=socket.gaierror(-2, "unknown"), **kwargs)
            made.append(conn)
            return conn

        monkeypatch.setattr(ssh_utils, "Connection", fake_connection)
        with pytest.raises(errors.HostUnreachable):
            with RemoteSession(PASSWORD_CREDS):
                pass
        assert made[0].close_calls == 1
        assert made[0].kwargs["connect_kwargs"]["password"] == "hunter22"
        assert made[0].kwargs["connect_kwargs"]["look_for_keys"] is False

    def test_context_manager_closes_once_on_error(self, monkeypatch):
        made = []
        monkeypatch.setattr(ssh_utils, "Connection", lambda **kw: made.append(FakeConnection(**kw)) or made[-1])
        with pytest.raises(RuntimeError):
            with RemoteSession(PASSWORD_CREDS) as session:
                assert session.connected
                raise RuntimeError("boom")
        assert made[0].close_calls == 1

    def test_missing_secret_is_rejected_before_connecting(self):
        with pytest.raises(errors.AuthenticationFailed):
            RemoteSession(SSHCredentials(host="h", username="u")).connect()
