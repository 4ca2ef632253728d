"""
Shared pytest fixtures.

Every test gets its own in-memory SQLite database and a temporary acme.sh
home. ``FakeAcmeShClient`` stands in for the acme.sh process: instead of
talking to a CA it writes the certificate artifacts a real run would leave
behind, so the orchestrator's filesystem and storage code runs unchanged.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from certsync.core.config import Settings
from certsync.core.init import create_tables
from certsync.models import Customer, Domain, IPAddress, domain_to_ip
from certsync.schemas.certificate import AcmeCommandResult
from certsync.services.acme_locator import AcmeLocator
from certsync.services.acme_service import AcmeShClient


# ─── Certificates ─────────────────────────────────────────────────────────────

def make_certificate(common_name: str, not_after: datetime, sans: Optional[List[str]] = None) -> tuple[str, str]:
    """Self-signed certificate valid until ``not_after`` (naive UTC). Returns (cert_pem, key_pem)."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=90))
        .not_valid_after(not_after)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(san) for san in (sans or [common_name])]),
            critical=False,
        )
    )
    cert = builder.sign(key, hashes.SHA256())
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode()
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    return cert_pem, key_pem


def write_acme_files(folder: Path, domain: str, cert_pem: Optional[str], key_pem: str = "KEY", with_extras: bool = True):
    """Lay out a domain directory the way acme.sh does"""
    folder.mkdir(parents=True, exist_ok=True)
    if cert_pem is not None:
        (folder / f"{domain}.cer").write_text(cert_pem)
    (folder / f"{domain}.key").write_text(key_pem)
    if with_extras:
        (folder / "ca.cer").write_text("CHAIN")
        (folder / "fullchain.cer").write_text((cert_pem or "") + "CHAIN")
        (folder / f"{domain}.csr").write_text("CSR")


# ─── Collaborator fakes ───────────────────────────────────────────────────────

class FakeAcmeShClient(AcmeShClient):
    """Records acme.sh command lines and writes the artifacts of the chosen outcome"""

    def __init__(
        self,
        config: Settings,
        outcome: str = "success",
        not_after: Optional[datetime] = None,
        outcomes: Optional[dict] = None,
    ):
        super().__init__(config)
        self.locator = AcmeLocator(config)
        self.outcome = outcome
        self.outcomes = outcomes or {}
        self.not_after = not_after or datetime(2031, 1, 1)
        self.commands: List[List[str]] = []

    @property
    def issue_commands(self) -> List[List[str]]:
        return [cmd for cmd in self.commands if "--issue" in cmd]

    async def execute(self, command, stdin=None):
        self.commands.append(command)
        if "--issue" in command:
            domain = command[command.index("-d") + 1]
            sans = [command[i + 1] for i, arg in enumerate(command) if arg == "-d"]
            folder = self.locator.resolve_working_dir(domain)
            outcome = self.outcomes.get(domain, self.outcome)
            if outcome == "success":
                cert_pem, key_pem = make_certificate(domain, self.not_after, sans)
                write_acme_files(folder, domain, cert_pem, key_pem)
            elif outcome == "garbage":
                write_acme_files(folder, domain, "this is not a certificate")
            elif outcome == "binary":
                write_acme_files(folder, domain, None)
                (folder / f"{domain}.cer").write_bytes(b"\xff\xfe\x00garbage")
            return AcmeCommandResult(
                command=command,
                exit_code=0 if outcome == "success" else 1,
                output=[f"Single domain='{domain}'", "Verify error" if outcome != "success" else "Cert success."],
            )
        return AcmeCommandResult(command=command, exit_code=0, output=["ok"])


class FakeTaskQueue:
    def __init__(self):
        self.enqueued = []

    def enqueue(self, kind):
        self.enqueued.append(kind)
        return f"task-{len(self.enqueued)}"


class FakeResolver:
    """Maps hostnames to IP sets; unknown names do not resolve"""

    def __init__(self, records: Optional[dict] = None):
        self.records = records or {}
        self.lookups: List[str] = []

    def __call__(self, hostname):
        self.lookups.append(hostname)
        return set(self.records.get(hostname, ()))


# ─── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def config(tmp_path: Path) -> Settings:
    acme_home = tmp_path / "acme"
    acme_home.mkdir()
    (acme_home / "acme.sh").write_text("#!/bin/sh\n")
    return Settings(
        ACME_SH_PATH=str(acme_home / "acme.sh"),
        LETSENCRYPT_CHALLENGE_PATH=str(tmp_path / "challenge"),
        PLATFORM_HOSTNAME="panel.example.net",
        PLATFORM_INSTALL_DIR="/var/www/panel",
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_acme(config):
    return FakeAcmeShClient(config)


@pytest.fixture
def task_queue():
    return FakeTaskQueue()


async def add_customer(db: AsyncSession, loginname: str = "web1", deactivated: bool = False) -> Customer:
    customer = Customer(loginname=loginname, deactivated=deactivated)
    db.add(customer)
    await db.flush()
    return customer


async def add_domain(db: AsyncSession, customer: Customer, name: str, **kwargs) -> Domain:
    values = {
        "letsencrypt": True,
        "iswildcarddomain": False,
        "wwwserveralias": False,
        "ssl_redirect": 0,
        "documentroot": f"/var/customers/webs/{customer.loginname}/",
    }
    values.update(kwargs)
    domain = Domain(customer_id=customer.id, domain=name, **values)
    db.add(domain)
    await db.flush()
    return domain


async def add_ip(db: AsyncSession, ip: str, domains=()) -> IPAddress:
    address = IPAddress(ip=ip, port=80)
    db.add(address)
    await db.flush()
    for domain in domains:
        await db.execute(domain_to_ip.insert().values(id_domain=domain.id, id_ipandports=address.id))
    return address
