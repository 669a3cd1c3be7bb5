"""
Prometheus metrics for the portal.

Tracks HTTP requests, page views, calls to the financing API, token refreshes,
and loan-screening runs.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "portal_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "portal_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0),
)

# Page view metrics
portal_page_views_total = Counter("portal_page_views_total", "Total page views", ["page"])

# Financing API metrics
portal_api_requests_total = Counter(
    "portal_api_requests_total",
    "Total requests to the financing API",
    ["method", "endpoint", "status"],
)

portal_api_request_duration_seconds = Histogram(
    "portal_api_request_duration_seconds",
    "Financing API request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

portal_api_errors_total = Counter(
    "portal_api_errors_total",
    "Total financing API errors",
    ["error_type"],
)

# Session metrics
portal_token_refreshes_total = Counter(
    "portal_token_refreshes_total",
    "Access token refresh attempts",
    ["outcome"],
)

portal_sessions_expired_total = Counter(
    "portal_sessions_expired_total", "Sessions ended because tokens could not be renewed"
)

# Loan screening
portal_screening_results_total = Counter(
    "portal_screening_results_total",
    "Loan company screening outcomes",
    ["company", "status"],
)


def track_request_metrics(method: str, endpoint: str, status_code: int, duration: float):
    """Track HTTP request metrics."""
    http_requests_total.labels(method=method, endpoint=endpoint, status=status_code).inc()
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
        duration
    )


def track_page_view(page: str):
    """Track page view metrics."""
    portal_page_views_total.labels(page=page).inc()


def track_api_request(method: str, endpoint: str, status_code: int, duration: float):
    """Track financing API request metrics."""
    portal_api_requests_total.labels(
        method=method, endpoint=endpoint, status=status_code
    ).inc()
    portal_api_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
        duration
    )


def track_api_error(error_type: str):
    """Track financing API errors."""
    portal_api_errors_total.labels(error_type=error_type).inc()


def track_token_refresh(success: bool):
    """Track token refresh attempts."""
    portal_token_refreshes_total.labels(outcome="success" if success else "failure").inc()


def track_session_expired():
    portal_sessions_expired_total.inc()


def track_screening_result(company: str, status: str):
    portal_screening_results_total.labels(company=company, status=status).inc()


async def metrics_endpoint():
    """
    Prometheus metrics endpoint.

    Returns:
        Response with Prometheus metrics in text format
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
