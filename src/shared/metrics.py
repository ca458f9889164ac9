from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource


def setup_metrics(app_name: str, console_export: bool = False) -> MeterProvider:
    """Configure OpenTelemetry metrics."""

    resource = Resource.create({"service.name": app_name})

    # A one-shot CLI has nothing to scrape, so readers are push-only
    readers = []
    if console_export:
        readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))

    provider = MeterProvider(resource=resource, metric_readers=readers)

    metrics.set_meter_provider(provider)
    return provider
