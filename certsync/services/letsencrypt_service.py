"""Certificate run coordination"""
import enum
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from certsync.core.config import Settings, settings as default_settings
from certsync.schemas.certificate import DomainCertificateRequest, RunResult
from certsync.services.acme_locator import AcmeLocator
from certsync.services.acme_service import AcmeShClient
from certsync.services.candidate_service import CandidateService
from certsync.services.cron_log import CronLog
from certsync.services.domain_service import DomainService
from certsync.services.materializer import CertificateMaterializer
from certsync.services.san_service import Resolver, SANService
from certsync.services.task_queue import ReconfigurationKind, TaskQueue

logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    """Phases of a run, always entered in this order"""
    IDLE = "idle"
    SELECTING = "selecting"
    ISSUING = "issuing"
    RENEWING = "renewing"
    RECONCILING = "reconciling"
    DONE = "done"


class LetsEncryptService:
    """
    One certificate run over all tenant domains and the platform vhost.

    The collaborating services are built once per instance and shared by every
    stage of the run. Candidates are processed one at a time; a failing
    candidate is logged and left for the next run.
    """

    def __init__(
        self,
        db: AsyncSession,
        config: Settings = default_settings,
        acme: Optional[AcmeShClient] = None,
        resolver: Optional[Resolver] = None,
        task_queue: Optional[TaskQueue] = None,
        locator: Optional[AcmeLocator] = None,
    ):
        self.db = db
        self.settings = config
        self.locator = locator or AcmeLocator(config)
        self.domains = DomainService(db)
        self.candidates = CandidateService(db, config, self.locator)
        self.sans = SANService(db, config, resolver=resolver, domains=self.domains)
        self.acme = acme or AcmeShClient(config)
        self.materializer = CertificateMaterializer(db, config, self.locator, self.domains)
        self.task_queue = task_queue or TaskQueue(config)
        self.log = CronLog(db)
        self.state = RunState.IDLE

    def _enter(self, state: RunState):
        logger.debug(f"Certificate run: {self.state.value} -> {state.value}")
        self.state = state

    async def check(self) -> bool:
        """Whether a full run has work to do, without doing any of it"""
        return await self.candidates.needs_run()

    async def run(self, force: bool = False, debug: bool = False, insert_task: bool = True) -> RunResult:
        self.state = RunState.IDLE
        result = RunResult(state=self.state.value)

        logger.info(f"Using ACME server {self.acme.server}")
        await self.acme.ensure_installed()
        await self.acme.check_upgrade()

        self._enter(RunState.SELECTING)
        issue = await self.candidates.issue_domains()
        if await self.candidates.issue_platform_vhost():
            issue.append(self.candidates.platform_request())
        result.issue_candidates = len(issue)

        if issue:
            self._enter(RunState.ISSUING)
            self.log.info(f"Requesting {len(issue)} new Let's Encrypt certificates")
            await self.db.commit()
            for request in issue:
                await self._issue(request, result, debug)

        self._enter(RunState.RENEWING)
        renew = await self.candidates.renew_domains()
        platform_record = await self.candidates.renew_platform_vhost()
        if platform_record is not None:
            renew.append(self.candidates.platform_request(platform_record))
        result.renew_candidates = len(renew)

        self._enter(RunState.RECONCILING)
        for request in renew:
            await self._reconcile(request, result, force)

        self._enter(RunState.DONE)
        if result.changed:
            if insert_task:
                self.task_queue.enqueue(ReconfigurationKind.REBUILD_VHOSTS)
                result.task_enqueued = True
            self.log.info("Let's Encrypt certificates have been updated")
        else:
            self.log.info("No new certificates or certificate updates found")
        await self.db.commit()

        result.state = self.state.value
        return result

    async def _issue(self, request: DomainCertificateRequest, result: RunResult, debug: bool):
        log = self.log.for_tenant(request.loginname, request.domain_id)

        if self.sans.should_skip(request):
            log.warning(f"Skipping Let's Encrypt generation for {request.domain} due to an enabled ssl_redirect")
            result.skipped.append(request.domain)
            await self.db.commit()
            return

        force = self.sans.needs_force(request)
        if force:
            log.info(f"Re-creating certificate for {request.domain}")
        else:
            log.info(f"Creating certificate for {request.domain}")

        sans = await self.sans.build_san_list(request, log)
        sans = await self.sans.validate_dns(sans, request.domain_id, log)
        if not sans:
            log.warning(f"No domain names left to request a certificate for {request.domain}")
            result.skipped.append(request.domain)
            await self.db.commit()
            return

        try:
            acme_result = await self.acme.issue(sans, force=force, debug=debug)
        except OSError as e:
            log.error(f"Could not run acme.sh for {request.domain}: {e}")
            result.failed.append(request.domain)
            await self.db.commit()
            return
        log.debug(f"acme.sh exited with code {acme_result.exit_code}", "\n".join(acme_result.output))

        if await self.materializer.materialize(request, log, acme_result.output):
            result.issued.append(request.domain)
            result.changed = True
        else:
            result.failed.append(request.domain)

    async def _reconcile(self, request: DomainCertificateRequest, result: RunResult, force: bool):
        if not force and not self.locator.is_filesystem_cert_newer(request.domain, request.expirationdate):
            return
        log = self.log.for_tenant(request.loginname, request.domain_id)
        if await self.materializer.materialize(request, log):
            result.renewed.append(request.domain)
            result.changed = True
        else:
            result.failed.append(request.domain)
