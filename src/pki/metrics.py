"""OpenTelemetry metrics for the PKI pipeline."""

from collections.abc import Iterator

from opentelemetry import metrics

# Get meter for pki module
meter = metrics.get_meter("pki")

# ============================================================================
# Certificate Authority
# ============================================================================

ca_generated_total = meter.create_counter(
    name="pki_ca_generated_total",
    description="Total root CAs generated",
    unit="1",
)

# CA loaded gauge - track storage type
_ca_storage_type: str | None = None


def _get_ca_loaded(
    options: metrics.CallbackOptions,
) -> Iterator[metrics.Observation]:
    """Callback to report CA loaded status."""
    if _ca_storage_type:
        yield metrics.Observation(1, {"storage_type": _ca_storage_type})
    else:
        yield metrics.Observation(0, {"storage_type": "none"})


ca_loaded_gauge = meter.create_observable_gauge(
    name="pki_ca_loaded",
    description="CA loaded (1=yes, 0=no)",
    unit="1",
    callbacks=[_get_ca_loaded],
)

# ============================================================================
# Issuance and bundling
# ============================================================================

certificates_issued_total = meter.create_counter(
    name="pki_certificates_issued_total",
    description="Total leaf certificates issued",
    unit="1",
)

certificate_issue_duration = meter.create_histogram(
    name="pki_certificate_issue_duration_seconds",
    description="Certificate issuance duration in seconds",
    unit="s",
)

bundles_built_total = meter.create_counter(
    name="pki_bundles_built_total",
    description="Total keystore/truststore bundles built",
    unit="1",
)

bundle_duration = meter.create_histogram(
    name="pki_bundle_duration_seconds",
    description="Keystore bundling duration in seconds",
    unit="s",
)

# ============================================================================
# Publication
# ============================================================================

secrets_published_total = meter.create_counter(
    name="pki_secrets_published_total",
    description="Total secrets created in the secret store",
    unit="1",
)

pipeline_failures_total = meter.create_counter(
    name="pki_pipeline_failures_total",
    description="Total fatal pipeline failures",
    unit="1",
)


class PkiMetrics:
    """Facade for pki metrics with proper labels."""

    def record_ca_generated(self) -> None:
        ca_generated_total.add(1)

    def record_ca_loaded(self, storage_type: str) -> None:
        """Record CA loaded with storage type (file|generated)."""
        global _ca_storage_type
        _ca_storage_type = storage_type

    def record_certificate_issued(self, role: str, duration_seconds: float) -> None:
        """Record leaf issuance. Labels: role=server|peer|client"""
        certificates_issued_total.add(1, {"role": role})
        certificate_issue_duration.record(duration_seconds, {"role": role})

    def record_bundle_built(self, role: str, duration_seconds: float) -> None:
        bundles_built_total.add(1, {"role": role})
        bundle_duration.record(duration_seconds, {"role": role})

    def record_secret_published(self, convention: str, kind: str) -> None:
        """Record secret creation. Labels: kind=primary|auxiliary|jwt|credentials"""
        secrets_published_total.add(1, {"convention": convention, "kind": kind})

    def record_failure(self, error_type: str) -> None:
        pipeline_failures_total.add(1, {"error": error_type})


# Singleton instance
pki_metrics = PkiMetrics()
