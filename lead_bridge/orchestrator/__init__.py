"""Workflow orchestration for fetching, mapping and recording leads."""

from .service import IngestionOrchestrator, LeadSourceProtocol

__all__ = ["IngestionOrchestrator", "LeadSourceProtocol"]
