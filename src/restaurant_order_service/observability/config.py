"""OpenTelemetry and logging configuration for the order service."""

import logging
import os
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)

# Libraries that log every request or API call at INFO
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "uvicorn.access")


def get_service_resource() -> Resource:
    """Create the resource describing this service instance.

    Lambda invocations are tagged with the function name so traces from the
    API Gateway deployment can be told apart from the uvicorn server.

    Returns:
        Resource with service, environment and runtime attributes
    """
    attributes: dict[str, Any] = {
        "service.name": os.getenv("OTEL_SERVICE_NAME", "order-svc"),
        "service.namespace": "restaurant",
        "deployment.environment": os.getenv("ENVIRONMENT", "development"),
    }

    function_name = os.getenv("AWS_LAMBDA_FUNCTION_NAME")
    if function_name:
        attributes["cloud.platform"] = "aws_lambda"
        attributes["faas.name"] = function_name

    return Resource.create(attributes)


def get_otlp_endpoint() -> str:
    return os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318").rstrip("/")


def setup_tracing(resource: Resource, endpoint: str) -> None:
    """Export spans over OTLP/HTTP.

    Args:
        resource: Service resource for trace identification
        endpoint: OTLP collector base URL
    """
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    logger.info(f"OpenTelemetry tracing configured with endpoint: {endpoint}")


def setup_metrics(resource: Resource, endpoint: str) -> None:
    """Export order metrics over OTLP/HTTP.

    The export interval defaults to one minute and can be shortened with
    ``OTEL_METRIC_EXPORT_INTERVAL`` (milliseconds) when watching a service.

    Args:
        resource: Service resource for metric identification
        endpoint: OTLP collector base URL
    """
    interval = int(os.getenv("OTEL_METRIC_EXPORT_INTERVAL", "60000"))
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"),
        export_interval_millis=interval,
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))

    logger.info(f"OpenTelemetry metrics configured with endpoint: {endpoint} every {interval}ms")


def setup_observability(app: Any = None, enable_exporters: bool = True) -> None:
    """Initialize tracing, metrics and instrumentation for the order service.

    DynamoDB and EventBridge calls are traced through the botocore
    instrumentor; HTTP routes through the FastAPI instrumentor when ``app`` is
    given. Exporters are never enabled when ``ENVIRONMENT`` is ``test``.

    Args:
        app: Optional FastAPI application to instrument
        enable_exporters: Whether to export to an OTLP collector
    """
    if os.getenv("ENVIRONMENT", "development") == "test":
        enable_exporters = False

    resource = get_service_resource()

    if enable_exporters:
        endpoint = get_otlp_endpoint()
        setup_tracing(resource, endpoint)
        setup_metrics(resource, endpoint)
    else:
        # In-process providers only, nothing leaves the process
        trace.set_tracer_provider(TracerProvider(resource=resource))
        metrics.set_meter_provider(MeterProvider(resource=resource))

    BotocoreInstrumentor().instrument()

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI application instrumented")

    logger.info("OpenTelemetry observability configured for DynamoDB, EventBridge and HTTP")


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger.

    Records carry ``timestamp``, ``logger``, ``level`` and ``message`` keys.
    AWS SDK and access-log chatter is held at WARNING unless the service
    itself runs at DEBUG.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level_str = os.getenv("LOG_LEVEL", log_level).upper()
    level = getattr(logging, level_str, logging.INFO)

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "timestamp", "name": "logger", "levelname": "level"},
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    library_level = level if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.info(f"Structured JSON logging configured at {level_str} level")
