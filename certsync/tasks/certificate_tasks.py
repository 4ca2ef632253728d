"""Certificate management tasks"""
import asyncio
import logging
from sqlalchemy.exc import SQLAlchemyError

from certsync.core.config import settings
from certsync.core.exceptions import AcmeShNotInstalledError, ConfigurationError
from certsync.services.letsencrypt_service import LetsEncryptService
from certsync.tasks import celery_app
from certsync.tasks.utils import create_task_db_session

logger = logging.getLogger(__name__)


async def _check() -> bool:
    task_engine, session_factory = create_task_db_session()
    try:
        async with session_factory() as db:
            return await LetsEncryptService(db).check()
    finally:
        await task_engine.dispose()


async def _run(force: bool, debug: bool, insert_task: bool) -> dict:
    task_engine, session_factory = create_task_db_session()
    try:
        async with session_factory() as db:
            result = await LetsEncryptService(db).run(force=force, debug=debug, insert_task=insert_task)
            return result.model_dump()
    finally:
        await task_engine.dispose()


@celery_app.task(name="certsync.tasks.certificate.check_certificates")
def check_certificates():
    """Schedule a full run if certificates are missing or were renewed on disk"""
    if asyncio.run(_check()):
        logger.info("Certificates need attention, scheduling a certificate run")
        run_certificates.delay()
        return {"status": "scheduled"}
    return {"status": "idle"}


@celery_app.task(
    bind=True,
    name="certsync.tasks.certificate.run_certificates",
    max_retries=settings.RUN_MAX_RETRIES,
    default_retry_delay=settings.RUN_RETRY_DELAY,
)
def run_certificates(self, force: bool = False, debug: bool = False, insert_task: bool = True):
    """
    Issue missing certificates and store renewed ones.

    Database and process errors are retried a bounded number of times; after
    that the work stays pending and the next check schedules it again.
    """
    logger.info(f"Starting certificate run (force={force}, debug={debug})")
    try:
        result = asyncio.run(_run(force, debug, insert_task))
    except (AcmeShNotInstalledError, ConfigurationError) as e:
        logger.error(f"Certificate run aborted: {e}")
        return {"status": "error", "error": str(e)}
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Certificate run failed (attempt {self.request.retries + 1}): {e}", exc_info=True)
        if self.request.retries >= self.max_retries:
            logger.error("Giving up on this certificate run, pending work is picked up by the next check")
            return {"status": "error", "error": str(e)}
        raise self.retry(exc=e)

    return {"status": "success", **result}
