"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "allocation-engine"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created',
    ['channel'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    registry=REGISTRY
)

BOOKING_ITEMS_CANCELLED = Counter(
    'booking_items_cancelled_total',
    'Total booking items cancelled, whole-booking cancellations included',
    registry=REGISTRY
)

UNITS_BOOKED = Counter(
    'allocation_units_booked_total',
    'Total capacity units consumed by bookings',
    registry=REGISTRY
)

CAPACITY_CONFLICTS = Counter(
    'allocation_capacity_conflicts_total',
    'Conditional capacity updates that matched no row',
    ['target'],
    registry=REGISTRY
)

SUPPLIER_SELECTIONS = Counter(
    'supplier_selections_total',
    'Supplier selection attempts by outcome',
    ['outcome'],
    registry=REGISTRY
)

LOW_MARGIN_WARNINGS = Counter(
    'low_margin_warnings_total',
    'Selections whose margin fell below the warning threshold',
    registry=REGISTRY
)

HOLD_TRANSITIONS = Counter(
    'hold_transitions_total',
    'Inventory holds by lifecycle outcome',
    ['outcome'],
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource(app_name: str) -> Resource:
    return Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource(app_name))

    # Export spans only when an OTLP endpoint is configured
    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(app_name), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine=None):
    """Instrument SQLAlchemy with OpenTelemetry."""
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    else:
        SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_booking_created(channel: str, units: int):
        """Record a committed booking and the capacity it consumed."""
        BOOKINGS_CREATED.labels(channel=channel).inc()
        UNITS_BOOKED.inc(units)

    @staticmethod
    def record_booking_cancelled():
        """Record a whole-booking cancellation."""
        BOOKINGS_CANCELLED.inc()

    @staticmethod
    def record_items_cancelled(count: int):
        """Record cancelled booking items."""
        BOOKING_ITEMS_CANCELLED.inc(count)

    @staticmethod
    def record_capacity_conflict(target: str):
        """Record a lost capacity race on an allocation record or a pool."""
        CAPACITY_CONFLICTS.labels(target=target).inc()

    @staticmethod
    def record_supplier_selection(outcome: str):
        """Record a supplier selection outcome (selected, no_master_rate, no_supplier)."""
        SUPPLIER_SELECTIONS.labels(outcome=outcome).inc()

    @staticmethod
    def record_low_margin_warning():
        """Record a low-margin warning."""
        LOW_MARGIN_WARNINGS.inc()

    @staticmethod
    def record_hold(outcome: str, count: int = 1):
        """Record hold transitions (created, confirmed, released, expired)."""
        HOLD_TRANSITIONS.labels(outcome=outcome).inc(count)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
