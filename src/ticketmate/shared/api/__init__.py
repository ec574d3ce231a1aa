"""
Shared API Layer
================

Middleware and exception handlers installed on the FastAPI app.
"""
