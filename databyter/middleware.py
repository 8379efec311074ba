from .metrics import PrometheusMetrics
import time

class PrometheusMiddleware:
    """
    Times each request and counts it under its URL route, so query
    parameters and unknown paths do not create new label values
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        # Scrapes of the metrics page are not counted
        if request.path == '/metrics':
            return self.get_response(request)

        started = time.perf_counter()
        response = self.get_response(request)

        # Count by status, then observe latency under the same route
        PrometheusMetrics.track_request_metrics(request, response)
        PrometheusMetrics.REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=PrometheusMetrics.endpoint_label(request)
        ).observe(time.perf_counter() - started)

        return response

    def process_exception(self, request, exception):
        PrometheusMetrics.track_request_metrics(request, exception=exception)
        return None
