"""Batch orchestration for relationship discovery."""

from artistgraph.pipeline.orchestrator import BatchOrchestrator

__all__ = ["BatchOrchestrator"]
