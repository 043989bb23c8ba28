"""
gateway/constants.py

Response constants used by the proxy endpoint.
"""

PROXY_ROUTE: str = "/proxyToFirebase"
MISSING_FIELDS_MESSAGE: str = "Missing required fields"
