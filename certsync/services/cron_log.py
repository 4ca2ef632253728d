"""Per-tenant run logging"""
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from certsync.models.certificate_log import CertificateLog, CertificateLogLevel

logger = logging.getLogger("certsync.cron")

SYSTEM_LOGINNAME = "cron"

_LEVELS = {
    CertificateLogLevel.DEBUG: logging.DEBUG,
    CertificateLogLevel.INFO: logging.INFO,
    CertificateLogLevel.SUCCESS: logging.INFO,
    CertificateLogLevel.WARNING: logging.WARNING,
    CertificateLogLevel.ERROR: logging.ERROR,
}


class CronLog:
    """
    Logger bound to one tenant.

    Every entry goes to the Python logger with the tenant's loginname attached
    and is added to ``certificate_logs`` in the given session. Entries are
    persisted with the session's next commit.
    """

    def __init__(self, db: Optional[AsyncSession], loginname: str = SYSTEM_LOGINNAME, domain_id: Optional[int] = None):
        self.db = db
        self.loginname = loginname
        self.domain_id = domain_id

    def for_tenant(self, loginname: str, domain_id: Optional[int] = None) -> "CronLog":
        return CronLog(self.db, loginname, domain_id)

    def log(self, level: CertificateLogLevel, message: str, details: Optional[str] = None):
        logger.log(_LEVELS[level], f"[{self.loginname}] {message}", extra={"loginname": self.loginname})
        if details:
            logger.debug(details, extra={"loginname": self.loginname})
        if self.db is not None:
            self.db.add(CertificateLog(
                loginname=self.loginname,
                domain_id=self.domain_id,
                level=level,
                message=message,
                details=details,
            ))

    def debug(self, message: str, details: Optional[str] = None):
        self.log(CertificateLogLevel.DEBUG, message, details)

    def info(self, message: str, details: Optional[str] = None):
        self.log(CertificateLogLevel.INFO, message, details)

    def success(self, message: str, details: Optional[str] = None):
        self.log(CertificateLogLevel.SUCCESS, message, details)

    def warning(self, message: str, details: Optional[str] = None):
        self.log(CertificateLogLevel.WARNING, message, details)

    def error(self, message: str, details: Optional[str] = None):
        self.log(CertificateLogLevel.ERROR, message, details)
