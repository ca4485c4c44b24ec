"""
Spam risk scoring engine.

analyze() runs, in order:
    domain fast path -> username/display/email/name patterns
    -> repository analyzers -> disposable + advanced signals
    -> external reputation checks
and maps the summed score onto a risk tier.

analyze_batch() and reanalyze() add the account selection, skip rules and
caching around it.
"""

import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from spamdetective.config import settings, DetectionSettings, DEFAULT_DETECTION_SETTINGS
from spamdetective.errors import LookupUnavailable
from spamdetective.models.account import Account
from spamdetective.schemas.analyze_schemas import (
    AnalysisResult,
    BatchAnalysisResponse,
    ReanalyzeResponse,
    SkippedCounts,
    SuspiciousUser,
    WHITELISTED_RESULT,
)
from spamdetective.services import advanced_analysis, disposable_email
from spamdetective.services.account_repository import AccountRepository
from spamdetective.services.cache_service import AnalysisCache
from spamdetective.services.external_checks import ExternalCheckGate, ExternalChecker
from spamdetective.services.pattern_analyzers import run_pattern_analysis
from spamdetective.services.repository_analyzers import (
    analyze_bulk_registrations,
    analyze_registration_burst,
    analyze_sequential_usernames,
    analyze_user_activity,
)
from spamdetective.services.user_manager import UserManager, sort_by_risk_and_date
from spamdetective.utils.logging_config import (
    StructuredLogger,
    account_id_var,
    batch_id_var,
    log_execution_time,
    metrics,
)
from spamdetective.utils.preprocessing import get_email_domain
from spamdetective.utils.risk_levels import derive_risk_from_score, is_suspicious_score

logger = StructuredLogger(__name__)


class SpamAnalyzer:
    def __init__(
        self,
        repository: AccountRepository,
        settings_accessor=None,
        domain_lists=None,
        analysis_cache: Optional[AnalysisCache] = None,
        external_checker: Optional[ExternalChecker] = None,
        user_manager: Optional[UserManager] = None,
        workers: Optional[int] = None,
    ):
        self.repository = repository
        self.settings_accessor = settings_accessor
        self.domain_lists = domain_lists
        self.analysis_cache = analysis_cache
        self.external_checker = external_checker or ExternalChecker()
        self.user_manager = user_manager or UserManager(repository, analysis_cache)
        self.workers = workers or settings.batch_workers

    def detection_settings(self) -> DetectionSettings:
        if self.settings_accessor is None:
            return DEFAULT_DETECTION_SETTINGS
        return self.settings_accessor.get()

    def _domain_lists(self) -> Tuple[Set[str], Set[str]]:
        if self.domain_lists is None:
            return set(), set()
        return self.domain_lists.get_allow(), self.domain_lists.get_deny()

    # ============== SINGLE ACCOUNT ==============

    def analyze(
        self,
        account: Account,
        allow_list: Iterable[str] = (),
        deny_list: Iterable[str] = (),
        config: Optional[DetectionSettings] = None,
        external_gate: Optional[ExternalCheckGate] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """
        Score one account.

        allow_list/deny_list must already be lowercase. Raises
        LookupUnavailable if the account repository cannot be queried.
        """
        config = config or self.detection_settings()
        email_domain = get_email_domain(account.email)

        if email_domain in allow_list:
            return WHITELISTED_RESULT

        reasons: List[str] = []
        score = 0

        if email_domain in deny_list:
            reasons.append("Known spam domain")
            score += 50

        pattern_score, _ = run_pattern_analysis(account, reasons)
        score += pattern_score

        score += analyze_bulk_registrations(email_domain, self.repository, reasons)
        score += analyze_sequential_usernames(account.login, self.repository, reasons)
        score += analyze_registration_burst(account.registered, self.repository, reasons)
        score += analyze_user_activity(account, self.repository, reasons, now=now)

        if config.enable_disposable_check and disposable_email.is_disposable(account.email):
            reasons.append("Disposable/temporary email address")
            score += 40

        score += self._advanced_signals(account, config, reasons)
        score += self._external_signals(account, config, reasons, external_gate, now)

        return AnalysisResult(
            is_suspicious=is_suspicious_score(score, config),
            risk_level=derive_risk_from_score(score, config),
            reasons=list(dict.fromkeys(reasons)),
            score=score,
        )

    def _advanced_signals(self, account: Account, config: DetectionSettings, reasons: List[str]) -> int:
        signals = []
        if config.enable_entropy_check:
            signals.append(advanced_analysis.get_entropy_score(account.login))
        if config.enable_homoglyph_check:
            signals.append(advanced_analysis.check_homoglyphs(account.login))
        signals.append(advanced_analysis.check_suspicious_tld(account.email))
        signals.append(advanced_analysis.check_keyboard_patterns(account.login))
        if config.enable_similarity_check:
            signals.append(advanced_analysis.find_similar_usernames(
                account.login, self.repository, cap=settings.similarity_candidate_cap
            ))
        if config.track_registration_ip and account.registration_ip:
            signals.append(advanced_analysis.check_ip_registration_velocity(
                account.registration_ip, self.repository
            ))

        score = 0
        for signal in signals:
            if signal.score > 0:
                score += signal.score
                reasons.append(signal.reason)
        return score

    def _external_signals(
        self,
        account: Account,
        config: DetectionSettings,
        reasons: List[str],
        gate: Optional[ExternalCheckGate],
        now: Optional[datetime],
    ) -> int:
        if not config.enable_external_checks:
            return 0
        if gate is None:
            return self.external_checker.run_all(account, config, reasons, now=now)

        if not gate.try_enter():
            logger.debug("External checks skipped under load", account_id=account.id)
            metrics.increment("external.skipped")
            return 0
        try:
            return self.external_checker.run_all(account, config, reasons, now=now)
        finally:
            gate.leave()

    # ============== BATCH ==============

    def _analyze_cached(
        self,
        account: Account,
        allow_list: Set[str],
        deny_list: Set[str],
        config: DetectionSettings,
        gate: ExternalCheckGate,
    ) -> AnalysisResult:
        use_cache = config.enable_caching and self.analysis_cache is not None
        if use_cache:
            cached = self.analysis_cache.get_user_analysis(account)
            if cached is not None:
                metrics.increment("analysis.cache_hits")
                return cached

        result = self.analyze(account, allow_list, deny_list, config=config, external_gate=gate)
        if use_cache:
            self.analysis_cache.set_user_analysis(account, result, config.cache_ttl_seconds)
        return result

    def _worker(self, batch_id, account, allow_list, deny_list, config, gate) -> Optional[AnalysisResult]:
        """Analyze one account on a pool thread. Returns None if the lookup failed."""
        batch_id_var.set(batch_id)
        account_id_var.set(account.id)
        try:
            result = self._analyze_cached(account, allow_list, deny_list, config, gate)
        except LookupUnavailable as e:
            logger.error("Account analysis failed", account_id=account.id, error=str(e), exc_info=True)
            metrics.increment("analysis.failed")
            return None

        metrics.increment("analysis.total")
        metrics.increment(f"analysis.risk.{result.risk_level.value}")
        return result

    def _select_for_analysis(
        self,
        accounts: List[Account],
        config: DetectionSettings,
        allow_list: Set[str],
    ) -> Tuple[List[Account], SkippedCounts, int]:
        """Apply the batch skip rules. Returns (to_analyze, skipped, failed)."""
        skipped = SkippedCounts()
        failed = 0
        to_analyze: List[Account] = []

        for account in accounts:
            if self.user_manager.is_protected_user(account):
                skipped.protected_roles += 1
                continue

            try:
                has_orders = config.protect_users_with_orders and self.user_manager.has_meaningful_orders(account)
            except LookupUnavailable:
                failed += 1
                continue
            if has_orders:
                skipped.has_orders += 1
                continue

            if get_email_domain(account.email) in allow_list:
                skipped.whitelisted += 1
                continue

            to_analyze.append(account)

        return to_analyze, skipped, failed

    @log_execution_time("spamdetective.analyzer")
    def analyze_batch(self, quick_scan: bool = False) -> BatchAnalysisResponse:
        """
        Analyze the most recent accounts (or all of them) and return the
        suspicious ones, highest risk and newest first.

        Accounts go to the worker pool in chunks of batch_size.
        """
        batch_id = uuid.uuid4().hex[:12]
        batch_id_var.set(batch_id)
        start = time.time()

        config = self.detection_settings()
        allow_list, deny_list = self._domain_lists()
        accounts = self.user_manager.get_users_for_analysis(quick_scan)
        to_analyze, skipped, failed = self._select_for_analysis(accounts, config, allow_list)

        gate = ExternalCheckGate()
        results: List[Optional[AnalysisResult]] = []
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            for offset in range(0, len(to_analyze), config.batch_size):
                chunk = to_analyze[offset:offset + config.batch_size]
                results.extend(pool.map(
                    lambda a: self._worker(batch_id, a, allow_list, deny_list, config, gate),
                    chunk,
                ))
                metrics.increment("analysis.chunks")

        suspicious: List[SuspiciousUser] = []
        for account, result in zip(to_analyze, results):
            if result is None:
                failed += 1
            elif result.is_suspicious:
                suspicious.append(self.user_manager.format_user_for_display(account, result))

        metrics.timing("analysis.batch.latency", time.time() - start)
        logger.info(
            f"Analysis complete - found {len(suspicious)} suspicious users",
            batch_id=batch_id,
            total=len(accounts),
            protected_roles=skipped.protected_roles,
            has_orders=skipped.has_orders,
            whitelisted=skipped.whitelisted,
            failed=failed,
        )

        return BatchAnalysisResponse(
            users=sort_by_risk_and_date(suspicious),
            total_analyzed=len(accounts),
            skipped=skipped,
            failed=failed,
        )

    def reanalyze(self, account_ids: List[int]) -> ReanalyzeResponse:
        """
        Fresh analysis of previously flagged accounts, bypassing cached results.

        Accounts that are no longer suspicious, whitelisted, or holding orders
        count towards removed_count and lose their cache entry.
        """
        config = self.detection_settings()
        allow_list, deny_list = self._domain_lists()
        still_flagged: List[SuspiciousUser] = []
        removed_count = 0
        failed = 0

        for account in self.repository.get_accounts(account_ids):
            if self.user_manager.is_protected_user(account):
                continue

            try:
                has_orders = config.protect_users_with_orders and self.user_manager.has_meaningful_orders(account)
                if has_orders or get_email_domain(account.email) in allow_list:
                    removed_count += 1
                    self._forget(account)
                    continue

                result = self.analyze(account, allow_list, deny_list, config=config)
            except LookupUnavailable as e:
                logger.error("Account re-analysis failed", account_id=account.id, error=str(e), exc_info=True)
                metrics.increment("analysis.failed")
                failed += 1
                continue

            if result.is_suspicious:
                still_flagged.append(self.user_manager.format_user_for_display(account, result))
                if self.analysis_cache is not None:
                    self.analysis_cache.set_user_analysis(account, result, config.cache_ttl_seconds)
            else:
                removed_count += 1
                self._forget(account)

        logger.info(
            f"Re-analyzed {len(account_ids)} users",
            still_suspicious=len(still_flagged),
            removed=removed_count,
            failed=failed,
        )

        return ReanalyzeResponse(
            still_flagged=sort_by_risk_and_date(still_flagged),
            removed_count=removed_count,
            total_reanalyzed=len(account_ids),
            failed=failed,
        )

    def _forget(self, account: Account):
        if self.analysis_cache is not None:
            self.analysis_cache.clear_user_cache(account)

    def warmup_cache(self, quick_scan: bool = True) -> int:
        """
        Pre-compute analyses for accounts the next batch will score.

        Only accounts without a cached result are analyzed. Returns how many
        were added; 0 when caching is disabled.
        """
        config = self.detection_settings()
        if not config.enable_caching or self.analysis_cache is None:
            return 0

        allow_list, deny_list = self._domain_lists()
        accounts = self.user_manager.get_users_for_analysis(quick_scan)
        to_analyze, _, _ = self._select_for_analysis(accounts, config, allow_list)

        warmed_up = self.analysis_cache.warmup(
            to_analyze,
            lambda a: self.analyze(a, allow_list, deny_list, config=config),
            ttl=config.cache_ttl_seconds,
        )
        logger.info("Analysis cache warmed up", warmed_up=warmed_up, candidates=len(to_analyze))
        return warmed_up

    # ============== STATUS ==============

    def system_info(self) -> Dict[str, object]:
        config = self.detection_settings()
        allow_list, deny_list = self._domain_lists()
        return {
            "components": {
                "repository": True,
                "settings": self.settings_accessor is not None,
                "domain_lists": self.domain_lists is not None,
                "analysis_cache": self.analysis_cache is not None,
                "external_checks": config.enable_external_checks,
            },
            "cache": self.analysis_cache.get_stats() if self.analysis_cache is not None else {},
            "domains": {
                "whitelist": len(allow_list),
                "suspicious": len(deny_list),
                "disposable": disposable_email.domain_count(),
                "suspicious_tlds": len(advanced_analysis.SUSPICIOUS_TLDS),
            },
            "protected_roles": self.user_manager.get_protected_roles(),
            "settings": config.model_dump(),
            "metrics": metrics.get_stats()["counters"],
        }

    def health_check(self) -> Dict[str, object]:
        """Probe the repository and domain lists; status is "ok" or "degraded"."""
        components = {}
        error = None
        try:
            self.repository.list_accounts(limit=1)
            components["repository"] = "ok"
        except LookupUnavailable as e:
            components["repository"] = "unavailable"
            error = str(e)

        try:
            self._domain_lists()
            components["domain_lists"] = "ok"
        except LookupUnavailable as e:
            components["domain_lists"] = "unavailable"
            error = error or str(e)

        components["cache"] = "ok" if self.analysis_cache is not None else "disabled"
        status = "ok" if error is None else "degraded"
        return {"status": status, "components": components, "error": error}
