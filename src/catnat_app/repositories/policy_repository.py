"""Policy and certificate repository."""

from __future__ import annotations

from catnat_app.models.policy import Certificate, Policy, PolicyStatus
from catnat_app.repositories.memory_store import InMemoryTable


class PolicyRepository:
    """Handles policy and certificate persistence."""

    def __init__(self) -> None:
        self._policies: InMemoryTable[str, Policy] = InMemoryTable()
        self._certificates: InMemoryTable[str, Certificate] = InMemoryTable()

    def save_policy(self, policy: Policy) -> None:
        self._policies.put(policy.policy_id, policy)

    def get_policy(self, policy_id: str) -> Policy | None:
        return self._policies.get(policy_id)

    def find_active_policy(self, store_code: str) -> Policy | None:
        """Linear scan for the active policy of one store."""
        return self._policies.find(
            lambda policy: policy.store_code == store_code
            and policy.status == PolicyStatus.active
        )

    def list_policies(self, store_code: str | None = None) -> list[Policy]:
        policies = self._policies.values()
        if store_code is None:
            return policies
        return [policy for policy in policies if policy.store_code == store_code]

    def save_certificate(self, certificate: Certificate) -> None:
        self._certificates.put(certificate.cert_id, certificate)

    def get_certificate(self, cert_id: str) -> Certificate | None:
        return self._certificates.get(cert_id)

    def list_certificates(self, policy_id: str) -> list[Certificate]:
        return [cert for cert in self._certificates.values() if cert.policy_id == policy_id]

    def purge_all(self) -> None:
        """Delete all policies and certificates."""
        self._policies.clear()
        self._certificates.clear()
