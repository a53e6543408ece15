"""Rate limiting adapters.

``base`` holds the result type and the limiter interface the HTTP layer
depends on; ``sql`` is the store-backed fixed-window implementation.
"""
