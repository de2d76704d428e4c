"""
Web application package for Deploymint.

This package contains the HTTP API exposing the supervisor's status, start,
stop and restart operations and the configuration endpoints, plus the
Hypercorn runner that serves it.
"""
