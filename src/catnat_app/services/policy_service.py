"""Policy service."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from catnat_app.core.clock import utc_now
from catnat_app.core.errors import PolicyNotFoundError, PolicyStateError
from catnat_app.models.audit import AuditAction, AuditEntry, snapshot
from catnat_app.models.policy import (
    Certificate,
    CoverageType,
    Policy,
    PolicyStatus,
    PortfolioSummary,
)
from catnat_app.models.store import Store
from catnat_app.repositories.audit_repository import AuditRepository
from catnat_app.repositories.policy_repository import PolicyRepository
from catnat_app.services.pricing_engine import PricingEngine, to_cents

logger = logging.getLogger(__name__)

POLICY_ENTITY = "policy"
CERTIFICATE_ENTITY = "certificate"
DEFAULT_DURATION_MONTHS = 12
DEFAULT_CERTIFICATE_BASE_URL = "/documents/certificates"


def _stamp() -> str:
    return f"{utc_now():%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6]}"


class PolicyService:
    """Coordinates policy and certificate use cases."""

    def __init__(
        self,
        policy_repo: PolicyRepository,
        audit_repo: AuditRepository,
        pricing_engine: PricingEngine,
        certificate_base_url: str = DEFAULT_CERTIFICATE_BASE_URL,
    ):
        self._policy_repo = policy_repo
        self._audit_repo = audit_repo
        self._pricing_engine = pricing_engine
        self._certificate_base_url = certificate_base_url.rstrip("/")
        self._session_id: str | None = None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def init_session(self, session_id: str) -> None:
        """Adopt a session, wiping policies left by a different one."""
        if self._session_id != session_id:
            self.clear_session_data()
            self._session_id = session_id

    def clear_session_data(self) -> None:
        self._policy_repo.purge_all()
        self._audit_repo.purge_logs(POLICY_ENTITY)
        self._audit_repo.purge_logs(CERTIFICATE_ENTITY)
        self._session_id = None

    def create_policy(
        self,
        store: Store,
        coverage_type: CoverageType,
        effective_from: datetime | None = None,
        duration_months: int = DEFAULT_DURATION_MONTHS,
        performed_by: str = "system",
    ) -> Policy:
        """Price and persist a new active policy for a store.

        Pricing errors such as NoActiveConfigError propagate to the caller.
        """
        start = effective_from or utc_now()
        pricing = self._pricing_engine.calculate(store, coverage_type, start)
        now = utc_now()
        policy = Policy(
            policy_id=f"POL-{store.store_code}-{_stamp()}",
            store_code=store.store_code,
            coverage_type=CoverageType(coverage_type),
            insured_sum=pricing.insured_sum,
            premium=pricing.premium,
            effective_from=start,
            effective_to=start + relativedelta(months=duration_months),
            status=PolicyStatus.active,
            created_at=now,
            updated_at=now,
        )
        self._policy_repo.save_policy(policy)
        self._log(AuditAction.policy_created, policy.policy_id, None, policy, performed_by)
        logger.info("Created policy %s for store %s", policy.policy_id, store.store_code)
        return policy

    def get_policy(self, policy_id: str) -> Policy | None:
        return self._policy_repo.get_policy(policy_id)

    def _require(self, policy_id: str) -> Policy:
        policy = self._policy_repo.get_policy(policy_id)
        if policy is None:
            raise PolicyNotFoundError(policy_id)
        return policy

    def get_active_policy(self, store_code: str) -> Policy | None:
        """Return the single active policy of a store, if any."""
        return self._policy_repo.find_active_policy(store_code)

    def can_price(self, coverage_type: CoverageType, as_of: datetime | None = None) -> bool:
        """Return True when a rate covers coverage_type on as_of (default now)."""
        return self._pricing_engine.has_pricing_config(coverage_type, as_of or utc_now())

    def get_store_policies(self, store_code: str) -> list[Policy]:
        return self._policy_repo.list_policies(store_code)

    def get_all_policies(self) -> list[Policy]:
        """All policies, newest first."""
        return sorted(
            self._policy_repo.list_policies(),
            key=lambda policy: policy.created_at,
            reverse=True,
        )

    def cancel_policy(
        self,
        policy_id: str,
        reason: str | None = None,
        performed_by: str = "system",
    ) -> Policy:
        """Cancel a policy and record the reason in the audit log."""
        policy = self._require(policy_id)
        if policy.status == PolicyStatus.cancelled:
            raise PolicyStateError(f"Policy {policy_id} is already cancelled")

        cancelled = replace(policy, status=PolicyStatus.cancelled, updated_at=utc_now())
        self._policy_repo.save_policy(cancelled)
        self._log(
            AuditAction.policy_cancelled,
            policy_id,
            policy,
            cancelled,
            performed_by,
            {"reason": reason},
        )
        logger.info("Cancelled policy %s (%s)", policy_id, reason or "no reason given")
        return cancelled

    def update_policy_pricing(
        self,
        policy_id: str,
        store: Store,
        performed_by: str = "system",
    ) -> Policy:
        """Reprice a policy after the store changed. Dates and status are kept."""
        policy = self._require(policy_id)
        pricing = self._pricing_engine.calculate(store, policy.coverage_type, policy.effective_from)
        repriced = replace(
            policy,
            premium=pricing.premium,
            insured_sum=pricing.insured_sum,
            updated_at=utc_now(),
        )
        self._policy_repo.save_policy(repriced)
        self._log(AuditAction.premium_calculated, policy_id, policy, repriced, performed_by)
        return repriced

    def renew_policy(
        self,
        policy_id: str,
        duration_months: int = DEFAULT_DURATION_MONTHS,
        performed_by: str = "system",
    ) -> Policy:
        """Expire a policy and start a contiguous successor with the same terms."""
        old = self._require(policy_id)
        if old.status != PolicyStatus.active:
            raise PolicyStateError(
                f"Policy {policy_id} is {old.status.value} and cannot be renewed"
            )

        now = utc_now()
        expired = replace(old, status=PolicyStatus.expired, updated_at=now)
        self._policy_repo.save_policy(expired)

        successor = Policy(
            policy_id=f"POL-{old.store_code}-{_stamp()}",
            store_code=old.store_code,
            coverage_type=old.coverage_type,
            insured_sum=old.insured_sum,
            premium=old.premium,
            effective_from=old.effective_to,
            effective_to=old.effective_to + relativedelta(months=duration_months),
            status=PolicyStatus.active,
            created_at=now,
            updated_at=now,
        )
        self._policy_repo.save_policy(successor)
        self._log(
            AuditAction.policy_renewed,
            successor.policy_id,
            old,
            successor,
            performed_by,
            {"renewed_from": policy_id},
        )
        return successor

    def process_expirations(self, as_of: datetime | None = None) -> list[Policy]:
        """Expire active policies whose window ended before as_of."""
        moment = as_of or utc_now()
        expired: list[Policy] = []
        for policy in self._policy_repo.list_policies():
            if policy.status != PolicyStatus.active or policy.effective_to >= moment:
                continue
            updated = replace(policy, status=PolicyStatus.expired, updated_at=utc_now())
            self._policy_repo.save_policy(updated)
            self._log(AuditAction.policy_expired, policy.policy_id, policy, updated, "system")
            expired.append(updated)
        if expired:
            logger.info("Expired %d policies", len(expired))
        return expired

    def generate_certificate(self, policy: Policy, performed_by: str = "system") -> Certificate:
        """Issue a certificate mirroring the policy window at issuance."""
        now = utc_now()
        cert_id = f"CERT-{policy.policy_id}-{uuid.uuid4().hex[:8]}"
        certificate = Certificate(
            cert_id=cert_id,
            policy_id=policy.policy_id,
            issue_date=now,
            document_url=f"{self._certificate_base_url}/{cert_id}.pdf",
            valid_from=policy.effective_from,
            valid_to=policy.effective_to,
            created_at=now,
        )
        self._policy_repo.save_certificate(certificate)
        self._audit_repo.add_log(
            AuditAction.certificate_generated,
            CERTIFICATE_ENTITY,
            cert_id,
            None,
            snapshot(certificate),
            performed_by=performed_by,
            metadata={"policy_id": policy.policy_id},
        )
        return certificate

    def get_certificate(self, cert_id: str) -> Certificate | None:
        return self._policy_repo.get_certificate(cert_id)

    def get_policy_certificates(self, policy_id: str) -> list[Certificate]:
        return self._policy_repo.list_certificates(policy_id)

    def get_portfolio_summary(self) -> PortfolioSummary:
        """Aggregate counts by status; money totals cover active policies only."""
        policies = self._policy_repo.list_policies()
        by_status = {status.value: 0 for status in PolicyStatus}
        total_premium = Decimal("0")
        total_insured_sum = Decimal("0")

        for policy in policies:
            by_status[policy.status.value] += 1
            if policy.status == PolicyStatus.active:
                total_premium += policy.premium
                total_insured_sum += policy.insured_sum

        return PortfolioSummary(
            total_policies=len(policies),
            active_policies=by_status[PolicyStatus.active.value],
            total_premium=to_cents(total_premium),
            total_insured_sum=to_cents(total_insured_sum),
            by_status=by_status,
        )

    def get_audit_log(self) -> list[AuditEntry]:
        return self._audit_repo.list_logs(entity_type=POLICY_ENTITY)

    def _log(
        self,
        action: AuditAction,
        policy_id: str,
        before: Policy | None,
        after: Policy,
        performed_by: str,
        metadata: dict | None = None,
    ) -> None:
        self._audit_repo.add_log(
            action,
            POLICY_ENTITY,
            policy_id,
            snapshot(before) if before is not None else None,
            snapshot(after),
            performed_by=performed_by,
            metadata=metadata,
        )
