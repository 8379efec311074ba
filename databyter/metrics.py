# metrics.py
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from django.http import HttpResponse

class PrometheusMetrics:
    # Request count metric
    REQUEST_COUNT = Counter(
        'databyter_http_requests_total',
        'Total HTTP requests count',
        ['method', 'endpoint', 'status_code']
    )

    # Request latency metric
    REQUEST_LATENCY = Histogram(
        'databyter_http_request_latency_seconds',
        'HTTP request latency in seconds',
        ['method', 'endpoint']
    )

    # Exception count metric
    EXCEPTION_COUNT = Counter(
        'databyter_http_exceptions_total',
        'Total HTTP request exceptions',
        ['method', 'endpoint', 'exception_type']
    )

    # MongoDB connection status
    MONGODB_CONNECTION = Gauge(
        'databyter_mongodb_connection_up',
        'MongoDB connection status (1=up, 0=down)',
        []
    )

    # Entry lineage transitions
    ENTRY_TRANSITIONS = Counter(
        'databyter_entry_transitions_total',
        'Entry version transitions by kind',
        ['transition']
    )

    @staticmethod
    def endpoint_label(request):
        """
        Route pattern the request resolved to, or "unmatched"
        """
        match = getattr(request, 'resolver_match', None)
        if match is None:
            return 'unmatched'
        return '/' + match.route

    @classmethod
    def track_request_metrics(cls, request, response=None, exception=None):
        """
        Track metrics for HTTP requests
        """
        method = request.method
        path = cls.endpoint_label(request)

        if exception:
            exception_type = type(exception).__name__
            cls.EXCEPTION_COUNT.labels(
                method=method,
                endpoint=path,
                exception_type=exception_type
            ).inc()
        elif response:
            cls.REQUEST_COUNT.labels(
                method=method,
                endpoint=path,
                status_code=response.status_code
            ).inc()

    @classmethod
    def track_transition(cls, transition):
        """
        Count an entry transition (create, update, rollback, delete)
        """
        cls.ENTRY_TRANSITIONS.labels(transition=transition).inc()

    @classmethod
    def update_mongodb_status(cls, status=True):
        """
        Update MongoDB connection status
        """
        cls.MONGODB_CONNECTION.set(1 if status else 0)

    @classmethod
    def metrics_view(cls, request):
        """
        Return all metrics as a Prometheus-formatted response
        """
        metrics_page = generate_latest()
        return HttpResponse(metrics_page, content_type=CONTENT_TYPE_LATEST)
