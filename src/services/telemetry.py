"""OpenTelemetry export of tool-call records and HTTP traces"""

import json
import logging
import time
from typing import Any

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

from src.config import AppConfig

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 500

Attributes = dict[str, str | int | float | bool]


def _signal_endpoint(base: str, signal: str) -> str:
    """Append the OTLP/HTTP signal path (e.g. ``/v1/logs``) unless already present"""
    suffix = f"/v1/{signal}"
    return base if base.endswith(suffix) else f"{base.rstrip('/')}{suffix}"


def _search_attributes(response: dict[str, Any]) -> Attributes:
    return {
        "response.search_type": str(response["searchType"]),
        "response.total_messages": int(response.get("totalMessages", 0)),
        "response.conversation_count": len(response.get("conversations", [])),
    }


def _backfill_attributes(response: dict[str, Any]) -> Attributes:
    return {
        "response.total_processed": int(response["totalProcessed"]),
        "response.success_count": int(response.get("successCount", 0)),
        "response.fail_count": int(response.get("failCount", 0)),
    }


def _stats_attributes(response: dict[str, Any]) -> Attributes:
    return {"response.coverage_percentage": float(response["coverage_percentage"])}


# Keyed by a field only that tool's payload carries
_RESPONSE_ATTRIBUTES = (
    ("searchType", _search_attributes),
    ("totalProcessed", _backfill_attributes),
    ("coverage_percentage", _stats_attributes),
)


class TelemetryService:
    """Export one structured log record per tool call, plus traces of outbound HTTP"""

    def __init__(self, config: AppConfig):
        self.config = config
        self.logging_enabled = config.otel_logging_enabled
        self.tracing_enabled = config.otel_tracing_enabled
        self.logger_provider: LoggerProvider | None = None
        self.tracer_provider: TracerProvider | None = None
        self.otel_logger = None

        resource = Resource(
            attributes={
                SERVICE_NAME: config.otel_service_name,
                SERVICE_VERSION: config.otel_service_version,
            }
        )

        if self.logging_enabled:
            try:
                self._start_log_export(resource)
            except Exception as e:
                logger.warning(f"OTel log export unavailable ({e}); continuing without it")
                self.logging_enabled = False

        if self.tracing_enabled:
            try:
                self._start_trace_export(resource)
            except Exception as e:
                logger.warning(f"OTel trace export unavailable ({e}); continuing without it")
                self.tracing_enabled = False

    def _start_log_export(self, resource: Resource) -> None:
        endpoint = _signal_endpoint(self.config.otel_endpoint, "logs")
        provider = LoggerProvider(resource=resource)
        provider.add_log_record_processor(
            BatchLogRecordProcessor(OTLPLogExporter(endpoint=endpoint))
        )
        set_logger_provider(provider)

        self.logger_provider = provider
        self.otel_logger = provider.get_logger(__name__)
        logger.info(f"Exporting tool-call logs to {endpoint}")

    def _start_trace_export(self, resource: Resource) -> None:
        endpoint = _signal_endpoint(self.config.otel_endpoint, "traces")
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)

        # httpx spans come from instrument_httpx(), which must run before clients exist
        self.tracer_provider = provider
        logger.info(f"Exporting traces to {endpoint}")

    def log_tool_call(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        response: dict[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        """
        Emit a record describing one tool call

        Only low-cardinality values become attributes. Query and message
        text never leave the process.

        Args:
            tool_name: Name of the MCP tool
            parameters: Arguments the tool was called with
            response: Payload returned to the client, if the call succeeded
            error: Exception that failed the call, if any
        """
        if not self.logging_enabled or self.otel_logger is None:
            return

        try:
            attributes: Attributes = {
                "mcp.tool.name": tool_name,
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                "response.success": error is None,
            }

            if parameters.get("limit") is not None:
                attributes["request.param.limit"] = int(parameters["limit"])

            if response:
                attributes["response.size_bytes"] = len(json.dumps(response, default=str))
                for marker, extract in _RESPONSE_ATTRIBUTES:
                    if marker in response:
                        attributes.update(extract(response))

            if error is None:
                body = f"[{tool_name}] SUCCESS"
                severity = SeverityNumber.INFO
            else:
                body = f"[{tool_name}] FAILED error={type(error).__name__}"
                severity = SeverityNumber.ERROR
                attributes["error.type"] = type(error).__name__
                attributes["error.message"] = str(error)[:MAX_ERROR_MESSAGE_LENGTH]

            self.otel_logger.emit(
                body=body,
                severity_number=severity,
                attributes=attributes,
                timestamp=time.time_ns(),
            )
        except Exception as e:
            logger.warning(f"Dropped telemetry record for {tool_name}: {e}")


_telemetry_service: TelemetryService | None = None
_httpx_instrumented = False


def instrument_httpx(config: AppConfig) -> None:
    """Trace outbound httpx requests (embedding calls) when tracing is enabled"""
    global _httpx_instrumented
    if _httpx_instrumented or not config.otel_tracing_enabled:
        return
    try:
        HTTPXClientInstrumentor().instrument()
        _httpx_instrumented = True
        logger.info("httpx request tracing enabled")
    except Exception as e:
        logger.warning(f"httpx request tracing unavailable: {e}")


def get_telemetry_service(config: AppConfig) -> TelemetryService:
    """Return the process-wide TelemetryService, creating it on first use"""
    global _telemetry_service
    instrument_httpx(config)
    if _telemetry_service is None:
        _telemetry_service = TelemetryService(config)
    return _telemetry_service
