"""
Logging setup for the data modeler: console output plus OpenTelemetry OTLP
export, or a rotating log file when the OTel SDK is disabled.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from opentelemetry import _logs, trace
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import (
    OTLPLogExporter as GrpcOTLPLogExporter,
)
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
    OTLPSpanExporter as GrpcOTLPSpanExporter,
)
from opentelemetry.exporter.otlp.proto.http._log_exporter import (
    OTLPLogExporter as HttpOTLPLogExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as HttpOTLPSpanExporter,
)
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from datamodeler.config import settings

DEFAULT_LOG_DIR = "./"
DEFAULT_LOG_FILE = "datamodeler.log"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_initialized = False


def _build_formatter() -> logging.Formatter:
    return logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def _build_file_handler(log_dir: str, log_file: str, formatter: logging.Formatter) -> RotatingFileHandler:
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, log_file),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def _ensure_handlers(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    existing = set(logger.handlers)
    for handler in handlers:
        if handler not in existing:
            logger.addHandler(handler)


def _otel_disabled() -> bool:
    return os.getenv("OTEL_SDK_DISABLED", "").strip().lower() in {"1", "true", "yes", "on"}


_OTLP_EXPORTERS = {
    "logs": (GrpcOTLPLogExporter, HttpOTLPLogExporter),
    "traces": (GrpcOTLPSpanExporter, HttpOTLPSpanExporter),
}


def build_otlp_exporter(signal: str) -> Optional[object]:
    """
    OTLP exporter for `logs` or `traces`. `OTEL_<SIGNAL>_EXPORTER=none` turns a
    signal off; the per-signal protocol variable overrides the shared one.
    """
    key = signal.upper()
    if os.getenv(f"OTEL_{key}_EXPORTER", "otlp").strip().lower() in {"none", "disabled"}:
        return None
    protocol = os.getenv(f"OTEL_EXPORTER_OTLP_{key}_PROTOCOL") or os.getenv("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc")
    grpc_exporter, http_exporter = _OTLP_EXPORTERS[signal]
    if protocol.strip().lower() in {"http/protobuf", "http"}:
        return http_exporter()
    return grpc_exporter()


def setup_logging(
    *,
    service_name: Optional[str] = None,
    level: str | int | None = None,
    log_dir: str = DEFAULT_LOG_DIR,
    log_file: str = DEFAULT_LOG_FILE,
    with_console: bool = True,
) -> logging.Logger:
    """
    Configure root logging. Safe to call multiple times; handlers are only
    added on the first call, later calls just adjust the level.
    """
    global _initialized

    root = logging.getLogger("")
    root.setLevel(level or settings.LOG_LEVEL.upper())

    if _initialized:
        return root
    _initialized = True

    formatter = _build_formatter()
    handlers: list[logging.Handler] = []
    if with_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        handlers.append(console)

    if _otel_disabled():
        handlers.insert(0, _build_file_handler(log_dir, log_file, formatter))
        _ensure_handlers(root, handlers)
        return root

    resource = Resource.create({"service.name": service_name or settings.SERVICE_NAME})

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)
    span_exporter = build_otlp_exporter("traces")
    if span_exporter is not None:
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    logger_provider = LoggerProvider(resource=resource)
    _logs.set_logger_provider(logger_provider)
    log_exporter = build_otlp_exporter("logs")
    if log_exporter is not None:
        logger_provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))
        handlers.insert(0, LoggingHandler(level=root.level, logger_provider=logger_provider))

    LoggingInstrumentor().instrument(set_logging_format=False)

    _ensure_handlers(root, handlers)
    return root
