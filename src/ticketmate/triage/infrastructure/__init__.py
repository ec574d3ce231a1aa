"""
Triage Infrastructure Layer
===========================

YAML configuration with hot reload.
"""

from ticketmate.triage.infrastructure.config import ConfigFileHandler, TriageConfigManager

__all__ = ["ConfigFileHandler", "TriageConfigManager"]
