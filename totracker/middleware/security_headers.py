"""
Security headers middleware.

The service only speaks JSON, so the policy is locked down to "nothing may
be loaded from a response".
"""

_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        for name, value in _HEADERS.items():
            response.headers.setdefault(name, value)
        response.headers.pop("Server", None)
        return response
