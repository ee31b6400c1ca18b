"""
Shared utilities for AdminHub components.

This package contains functionality that does not know about deployments:
- errors: error taxonomy shared by stream and one-shot clients
- sse_client: line-delimited event stream client (SSE over HTTP)
- periodic: cancellable fixed-interval background timers
- logging_config: process-wide logging setup
"""
