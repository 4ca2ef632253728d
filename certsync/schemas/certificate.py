"""Certificate orchestration schemas"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class DomainCertificateRequest(BaseModel):
    """One certificate target of a run"""
    loginname: str
    domain: str
    domain_id: int = Field(..., description="0 = platform vhost")
    documentroot: str = ""
    wwwserveralias: bool = False
    ssl_redirect: int = 0
    expirationdate: Optional[datetime] = None
    ssl_cert_file: Optional[str] = None
    ssl_key_file: Optional[str] = None
    ssl_ca_file: Optional[str] = None
    ssl_csr_file: Optional[str] = None
    record_id: Optional[int] = None


class CertificateFiles(BaseModel):
    """Certificate artifacts read from the acme.sh working directory"""
    crt: Optional[str] = None
    key: Optional[str] = None
    chain: Optional[str] = None
    fullchain: Optional[str] = None
    csr: Optional[str] = None


class AcmeCommandResult(BaseModel):
    """Result of one acme.sh invocation"""
    command: List[str]
    exit_code: int
    output: List[str] = Field(default_factory=list, description="Combined stdout/stderr lines")
    execution_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class RunResult(BaseModel):
    """Summary of one orchestrator run"""
    state: str
    changed: bool = False
    issue_candidates: int = 0
    renew_candidates: int = 0
    issued: List[str] = Field(default_factory=list)
    renewed: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    task_enqueued: bool = False
