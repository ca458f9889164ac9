import logging
import sys

from opentelemetry._logs import get_logger_provider, set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, ConsoleLogRecordExporter

from .config import Settings


def setup_logging(settings: Settings) -> LoggerProvider:
    """Configure OpenTelemetry logging and a stderr stream handler.

    Repeated calls in one process only update the level.
    """
    root = logging.getLogger()
    if any(isinstance(h, LoggingHandler) for h in root.handlers):
        root.setLevel(settings.LOG_LEVEL)
        return get_logger_provider()

    # 1. Setup OpenTelemetry Logger Provider
    logger_provider = LoggerProvider()

    # Console export is opt-in so CLI output stays readable
    if settings.OTEL_CONSOLE_EXPORT:
        console_exporter = ConsoleLogRecordExporter()
        logger_provider.add_log_record_processor(BatchLogRecordProcessor(console_exporter))

    set_logger_provider(logger_provider)

    # 2. Attach OTel LoggingHandler to Python's root logger
    handler = LoggingHandler(
        level=getattr(logging, settings.LOG_LEVEL), logger_provider=logger_provider
    )

    root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL)

    # stdout is left to command output; diagnostics go to stderr
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root.addHandler(stream_handler)

    # Silence noisy libraries
    logging.getLogger("kubernetes.client.rest").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logger_provider


logger = logging.getLogger("cluster_pki")
