import logging
import os
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.aiokafka import AIOKafkaInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

def setup_telemetry(app: FastAPI, service_name: str = None) -> None:
    """
    Sets up OpenTelemetry for the FastAPI application.
    This includes a tracer provider, OTLP exporter, and instrumentation for
    FastAPI, httpx, redis and aiokafka.
    """
    service_name = service_name or os.getenv("OTEL_SERVICE_NAME")
    if not service_name:
        logger.warning("OTEL_SERVICE_NAME environment variable not set. Defaulting to 'unknown_service'.")
        service_name = "unknown_service"

    resource = Resource(attributes={
        "service.name": service_name
    })

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", "http://localhost:4318/v1/traces")
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)

    logger.info(f"Telemetry setup for service: {service_name}")
    logger.info(f"OTLP traces endpoint: {endpoint}")

    # Instrument the FastAPI application.
    FastAPIInstrumentor.instrument_app(app)

    # Instrument other libraries
    HTTPXClientInstrumentor().instrument()
    RedisInstrumentor().instrument()
    AIOKafkaInstrumentor().instrument()

    logger.info("FastAPI, httpx, Redis and AIOKafka have been instrumented.")
