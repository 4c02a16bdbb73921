from prometheus_client import Counter, Histogram

HTTP_REQUESTS = Counter("ubuntu_http_requests_total", "HTTP requests", ["method", "path", "status"])
HTTP_DURATION = Histogram(
    "ubuntu_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
OTP_REQUESTS = Counter("ubuntu_otp_requests_total", "OTP issuance attempts", ["result"])
OTP_VERIFICATIONS = Counter("ubuntu_otp_verifications_total", "OTP verification checks", ["result"])
