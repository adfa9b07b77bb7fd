"""
docwatch
========

Watches a directory and hands new documents to a remote document service.

Features:
- Debounced filesystem events and bounded-concurrency processing with retries
- Rename and PDF split policies with failed / pass-through routing
- Health status over a Unix socket and graceful drain on shutdown
"""

__version__ = "0.1.0"
