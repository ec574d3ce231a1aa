"""
Infrastructure Layer
====================

Technical adapters shared by the modules:
- database: SQLAlchemy async engine and sessions
- llm: classifier clients
- mail: SMTP delivery
- workflow: durable background execution
"""
