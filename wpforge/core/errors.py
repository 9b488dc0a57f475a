# wpforge/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class WPForgeError(Exception):
    """Base class for all provisioning engine errors."""
    pass


# -----------------------------
# Connection Errors
# -----------------------------

class ConnectionError(WPForgeError):
    """SSH session could not be established. ``str(err)`` is safe to show to users."""
    pass


class HostUnreachable(ConnectionError):
    pass


class AuthenticationFailed(ConnectionError):
    pass


class ConnectionTimeout(ConnectionError):
    pass


class KeyFormatInvalid(ConnectionError):
    pass


# -----------------------------
# Remote Execution Errors
# -----------------------------

class CommandError(WPForgeError):
    """A remote command exited non-zero."""

    def __init__(self, command: str, exit_code: int, combined_output: str):
        self.command = command
        self.exit_code = exit_code
        self.combined_output = combined_output
        super().__init__(
            f"Command exited with status {exit_code}: {command}\n{combined_output}".rstrip()
        )


class ToolchainUnavailable(WPForgeError):
    """WP-CLI could not be installed or no interpreter could run it."""
    pass


class PathNotFound(WPForgeError):
    """No WordPress directory exists for the domain."""
    pass


class AlreadyInstalled(WPForgeError):
    pass


# -----------------------------
# SSL Errors
# -----------------------------

class DNSNotPropagated(WPForgeError):
    pass


class CertificateIssuanceFailed(WPForgeError):
    pass


# -----------------------------
# Vault Errors
# -----------------------------

class VaultError(WPForgeError):
    """Encryption key missing or ciphertext corrupted/tampered. Never retried."""
    pass


# -----------------------------
# Trigger Guard Errors
# -----------------------------

class WebsiteNotFound(WPForgeError):
    pass


class InvalidWebsiteState(WPForgeError):
    pass


class MissingCredentials(WPForgeError):
    pass
