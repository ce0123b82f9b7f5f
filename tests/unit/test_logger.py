from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpOTLPSpanExporter

from datamodeler.utils.logger import build_otlp_exporter


def test_disabled_signal_has_no_exporter(monkeypatch) -> None:
    monkeypatch.setenv("OTEL_LOGS_EXPORTER", "none")

    assert build_otlp_exporter("logs") is None


def test_signal_protocol_overrides_shared_protocol(monkeypatch) -> None:
    monkeypatch.delenv("OTEL_TRACES_EXPORTER", raising=False)
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_TRACES_PROTOCOL", "http/protobuf")

    exporter = build_otlp_exporter("traces")

    assert isinstance(exporter, HttpOTLPSpanExporter)
    exporter.shutdown()
