"""acme.sh invocation"""
import asyncio
import logging
import time
from pathlib import Path
from typing import Iterable, List, Optional

import httpx

from certsync.core.config import ACME_PROVIDERS, Settings, settings as default_settings
from certsync.core.exceptions import AcmeCommandError, AcmeShNotInstalledError
from certsync.schemas.certificate import AcmeCommandResult

logger = logging.getLogger(__name__)

# Flags the orchestrator may pass to acme.sh, with whether they take a value
ALLOWED_FLAGS = {
    "--server": True,
    "--issue": False,
    "-d": True,
    "-w": True,
    "--keylength": True,
    "--always-force-new-domain-key": False,
    "--staging": False,
    "--force": False,
    "--debug": False,
    "--upgrade": False,
    "--auto-upgrade": True,
    "--install-cronjob": False,
}

STAGING_PROVIDER = "letsencrypt_test"


class AcmeCommand:
    """Argument vector for acme.sh restricted to ALLOWED_FLAGS"""

    def __init__(self, executable: str):
        self.args: List[str] = [executable]

    def flag(self, name: str, value: Optional[str] = None) -> "AcmeCommand":
        if name not in ALLOWED_FLAGS:
            raise AcmeCommandError(f"acme.sh flag '{name}' is not allowed")
        takes_value = ALLOWED_FLAGS[name]
        if takes_value and (value is None or str(value) == ""):
            raise AcmeCommandError(f"acme.sh flag '{name}' requires a value")
        if not takes_value and value is not None:
            raise AcmeCommandError(f"acme.sh flag '{name}' does not take a value")

        self.args.append(name)
        if value is not None:
            value = str(value)
            if value.startswith("-"):
                raise AcmeCommandError(f"Invalid value '{value}' for acme.sh flag '{name}'")
            self.args.append(value)
        return self

    def build(self) -> List[str]:
        return list(self.args)


class AcmeShClient:
    """Runs acme.sh synchronously per call and captures its output"""

    def __init__(self, config: Settings = default_settings):
        self.settings = config

    @property
    def executable(self) -> str:
        return self.settings.ACME_SH_PATH

    @property
    def server(self) -> str:
        try:
            return ACME_PROVIDERS[self.settings.LETSENCRYPT_CA]
        except KeyError:
            raise AcmeCommandError(f"Unknown ACME provider '{self.settings.LETSENCRYPT_CA}'")

    def build_issue_command(self, sans: Iterable[str], force: bool = False, debug: bool = False) -> List[str]:
        sans = list(sans)
        if not sans:
            raise AcmeCommandError("At least one domain is required")

        cmd = AcmeCommand(self.executable).flag("--server", self.server).flag("--issue")
        for san in sans:
            cmd.flag("-d", san)
        cmd.flag("-w", self.settings.LETSENCRYPT_CHALLENGE_PATH)
        if self.settings.use_ecc:
            cmd.flag("--keylength", f"ec-{self.settings.LETSENCRYPT_ECC}")
        else:
            cmd.flag("--keylength", str(self.settings.LETSENCRYPT_KEY_SIZE))
        if not self.settings.LETSENCRYPT_REUSE_OLD_KEY:
            cmd.flag("--always-force-new-domain-key")
        if self.settings.LETSENCRYPT_CA == STAGING_PROVIDER:
            cmd.flag("--staging")
        if force:
            cmd.flag("--force")
        if debug:
            cmd.flag("--debug")
        return cmd.build()

    async def execute(self, command: List[str], stdin: Optional[bytes] = None) -> AcmeCommandResult:
        """Run ``command`` to completion with stderr merged into stdout"""
        start_time = time.monotonic()
        logger.debug(f"Executing: {' '.join(command)}")
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        stdout, _ = await proc.communicate(stdin)
        return AcmeCommandResult(
            command=command,
            exit_code=proc.returncode,
            output=stdout.decode("utf-8", errors="replace").splitlines(),
            execution_time=time.monotonic() - start_time,
        )

    async def issue(self, sans: Iterable[str], force: bool = False, debug: bool = False) -> AcmeCommandResult:
        return await self.execute(self.build_issue_command(sans, force=force, debug=debug))

    async def install(self):
        """Download the acme.sh installer and pipe it to sh"""
        logger.info(f"Could not find acme.sh - installing it to {Path(self.executable).parent}")
        async with httpx.AsyncClient(timeout=60.0, follow_redirects=True) as client:
            response = await client.get(self.settings.ACME_SH_INSTALL_URL)
            response.raise_for_status()
        result = await self.execute(["sh"], stdin=response.content)
        logger.info("acme.sh installer output:\n" + "\n".join(result.output))

    async def ensure_installed(self, tries: int = 0):
        """Install acme.sh if missing; a second miss is fatal"""
        if Path(self.executable).exists():
            return
        if tries > 0:
            message = (
                "Download/installation of acme.sh seems to have failed. "
                f"Re-run the job to try again or install manually to '{self.executable}'"
            )
            logger.error(message)
            raise AcmeShNotInstalledError(message)
        try:
            await self.install()
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"acme.sh installation failed: {e}")
        await self.ensure_installed(tries + 1)

    async def check_upgrade(self):
        """Upgrade acme.sh and make sure its renewal cronjob exists; failures are not fatal"""
        output = []
        for cmd in (
            AcmeCommand(self.executable).flag("--upgrade").flag("--auto-upgrade", "0"),
            AcmeCommand(self.executable).flag("--install-cronjob"),
        ):
            try:
                result = await self.execute(cmd.build())
            except OSError as e:
                logger.warning(f"Could not run {' '.join(cmd.build())}: {e}")
                continue
            output.extend(result.output)
            if not result.success:
                logger.warning(f"{' '.join(result.command)} exited with {result.exit_code}")
        logger.info("Checking for LetsEncrypt client upgrades before renewing certificates:\n" + "\n".join(output))
