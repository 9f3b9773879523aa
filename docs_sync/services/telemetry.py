"""OpenTelemetry logging and tracing service for sync run telemetry"""

import logging
from datetime import datetime, timezone

from opentelemetry import trace
from opentelemetry._logs import SeverityNumber, set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from docs_sync.config import config
from docs_sync.models.sync_result import SyncResult

logger = logging.getLogger(__name__)


class TelemetryService:
    """Handle OpenTelemetry logging and tracing for sync runs"""

    def __init__(self):
        self.logging_enabled = config.otel_logging_enabled
        self.tracing_enabled = config.otel_tracing_enabled
        self.logger_provider = None
        self.tracer_provider = None
        self.otel_logger = None

        # Initialize logging if enabled
        if self.logging_enabled:
            try:
                self._initialize_logging()
            except Exception as e:
                logger.warning(f"Failed to initialize OTel logging: {e}. Logging disabled.")
                self.logging_enabled = False

        # Initialize tracing if enabled
        if self.tracing_enabled:
            try:
                self._initialize_tracing()
            except Exception as e:
                logger.warning(f"Failed to initialize OTel tracing: {e}. Tracing disabled.")
                self.tracing_enabled = False

    def _resource(self) -> Resource:
        return Resource(
            attributes={
                SERVICE_NAME: config.otel_service_name,
                SERVICE_VERSION: config.otel_service_version,
            }
        )

    def _initialize_logging(self) -> None:
        """Initialize OpenTelemetry logging with OTLP log exporter"""
        self.logger_provider = LoggerProvider(resource=self._resource())

        # The endpoint should point to the logs endpoint
        log_endpoint = config.otel_endpoint
        if not log_endpoint.endswith("/v1/logs"):
            log_endpoint = f"{log_endpoint.rstrip('/')}/v1/logs"

        log_exporter = OTLPLogExporter(endpoint=log_endpoint)
        self.logger_provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))

        set_logger_provider(self.logger_provider)
        self.otel_logger = self.logger_provider.get_logger(__name__)

        logger.info(f"OpenTelemetry logging initialized with endpoint: {log_endpoint}")

    def _initialize_tracing(self) -> None:
        """Initialize OpenTelemetry tracing with OTLP trace exporter"""
        self.tracer_provider = TracerProvider(resource=self._resource())

        # The endpoint should point to the traces endpoint
        trace_endpoint = config.otel_endpoint
        if not trace_endpoint.endswith("/v1/traces"):
            trace_endpoint = f"{trace_endpoint.rstrip('/')}/v1/traces"

        trace_exporter = OTLPSpanExporter(endpoint=trace_endpoint)
        self.tracer_provider.add_span_processor(BatchSpanProcessor(trace_exporter))

        trace.set_tracer_provider(self.tracer_provider)

        logger.info(f"OpenTelemetry tracing initialized with endpoint: {trace_endpoint}")

    def log_sync(self, result: SyncResult) -> None:
        """
        Emit one log record describing a sync run

        Args:
            result: Outcome of the run
        """
        if not self.logging_enabled or not self.otel_logger:
            return

        try:
            # Low-cardinality attributes only; file lists go in the body
            attributes: dict[str, str | int | float | bool] = {
                "sync.source": result.source,
                "sync.success": result.success,
                "sync.committed": result.committed,
                "sync.pushed": result.pushed,
                "sync.documents": result.documents,
                "sync.files_written": len(result.files_written),
                "sync.files_removed": len(result.files_removed),
                "sync.missing_sidebar_entries": len(result.missing_sidebar_entries),
                "sync.duration_seconds": result.duration_seconds,
            }
            if result.revision:
                attributes["sync.revision"] = result.revision
            if result.commit_sha:
                attributes["sync.commit_sha"] = result.commit_sha

            log_body_parts = [f"[sync:{result.source}]"]
            log_body_parts.append("SUCCESS" if result.success else "FAILED")
            if result.revision:
                log_body_parts.append(f"revision={result.revision[:7]}")
            log_body_parts.append(
                f"written={len(result.files_written)} removed={len(result.files_removed)}"
            )

            if result.error:
                # Truncate if very long
                error_message = result.error
                if len(error_message) > 500:
                    error_message = error_message[:500] + "..."
                attributes["error.message"] = error_message
                log_body_parts.append(f"error={error_message}")

            severity = logging.INFO if result.success else logging.ERROR

            self.otel_logger.emit(
                body=" ".join(log_body_parts),
                severity_number=SeverityNumber(self._severity_to_number(severity)),
                attributes=attributes,
                timestamp=int(datetime.now(timezone.utc).timestamp() * 1e9),
            )

        except Exception as e:
            # Don't let telemetry errors break a sync
            logger.warning(f"Failed to log telemetry: {e}")

    def _severity_to_number(self, level: int) -> int:
        """Convert Python logging level to OpenTelemetry severity number"""
        # https://opentelemetry.io/docs/specs/otel/logs/data-model/#severity-fields
        if level >= logging.CRITICAL:
            return 21  # FATAL
        elif level >= logging.ERROR:
            return 17  # ERROR
        elif level >= logging.WARNING:
            return 13  # WARN
        elif level >= logging.INFO:
            return 9  # INFO
        else:
            return 5  # DEBUG


# Global telemetry service instance
_telemetry_service: TelemetryService | None = None
# Track if instrumentation has been initialized
_instrumentation_initialized = False


def _ensure_instrumentation_initialized() -> None:
    """Ensure httpx instrumentation is initialized before GitHub clients are created"""
    global _instrumentation_initialized
    if not _instrumentation_initialized and config.otel_tracing_enabled:
        try:
            HTTPXClientInstrumentor().instrument()
            _instrumentation_initialized = True
            logger.info("HTTP request tracing instrumentation initialized")
        except Exception as e:
            logger.warning(f"Failed to initialize HTTP tracing instrumentation: {e}")


def get_telemetry_service() -> TelemetryService:
    """Get or create the global telemetry service instance"""
    global _telemetry_service
    _ensure_instrumentation_initialized()
    if _telemetry_service is None:
        _telemetry_service = TelemetryService()
    return _telemetry_service
