"""Exceptions raised by the certificate orchestrator"""


class CertSyncError(Exception):
    """Base error"""


class AcmeShNotInstalledError(CertSyncError):
    """acme.sh is missing and could not be installed"""


class AcmeCommandError(CertSyncError, ValueError):
    """An acme.sh command line could not be built"""


class CredentialsUnavailableError(CertSyncError):
    """No credentials are configured for the requested database role"""


class ConfigurationError(CertSyncError):
    """A setting has a value the orchestrator cannot work with"""
