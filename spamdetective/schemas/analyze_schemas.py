from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional, Any

from spamdetective.utils.risk_levels import RiskLevel


class AnalysisResult(BaseModel):
    """Outcome of analyzing one account. Never mutated after construction."""
    model_config = ConfigDict(frozen=True)

    is_suspicious: bool
    risk_level: RiskLevel
    reasons: List[str]
    score: int


WHITELISTED_RESULT = AnalysisResult(is_suspicious=False, risk_level=RiskLevel.LOW, reasons=[], score=0)


class SuspiciousUser(BaseModel):
    """An analyzed account as shown to reviewers."""
    id: int
    username: str
    email: str
    display_name: str
    registered: datetime
    risk_level: RiskLevel
    reasons: List[str]
    score: int
    can_delete: bool
    has_orders: bool
    roles: List[str]


class SkippedCounts(BaseModel):
    protected_roles: int = 0
    has_orders: int = 0
    whitelisted: int = 0


class BatchAnalysisResponse(BaseModel):
    users: List[SuspiciousUser]
    total_analyzed: int
    skipped: SkippedCounts
    failed: int = 0


class AnalyzeRequest(BaseModel):
    quick_scan: bool = False


class ReanalyzeRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)


class ReanalyzeResponse(BaseModel):
    still_flagged: List[SuspiciousUser]
    removed_count: int
    total_reanalyzed: int
    failed: int = 0


class DeleteUsersRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    force: bool = False


class DeleteUsersResponse(BaseModel):
    success: bool
    deleted: int
    skipped: int
    message: str
    protected_users: List[str]
    users_with_orders: List[str]


class RegistrationIPRequest(BaseModel):
    ip: Optional[str] = None  # defaults to the calling client's address


class RegistrationIPResponse(BaseModel):
    user_id: int
    ip: Optional[str]
    stored: bool


class DomainRequest(BaseModel):
    domain: str


class DomainListResponse(BaseModel):
    list_type: str
    domains: List[str]


class DomainChangeResponse(BaseModel):
    success: bool
    domain: str
    message: str


class DomainImportRequest(BaseModel):
    whitelist: Optional[List[str]] = None
    suspicious_domains: Optional[List[str]] = None
    mode: str = Field(default="replace", pattern="^(replace|merge)$")


class CacheClearResponse(BaseModel):
    message: str
    cache_cleared: bool
    stats: Dict[str, int]
    timestamp: datetime


class CacheMaintenanceResponse(BaseModel):
    message: str
    affected: int
    stats: Dict[str, int]
    timestamp: datetime


class HealthResponse(BaseModel):
    status: str
    components: Dict[str, Any]
    error: Optional[str] = None
