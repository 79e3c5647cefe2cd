"""Workflow package — orchestrators, LangGraph pipeline, checkpoints, and progress."""

from workflow.book_orchestrator import (
    BookOrchestrator,
    GenerationOptions,
    GenerationReport,
    OrchestratorServices,
)
from workflow.chapter_orchestrator import ChapterOrchestrator
from workflow.graph import build_graph, run_pipeline
from workflow.state import PipelineState
from workflow.callbacks import (
    ProgressChannel,
    InMemoryProgressChannel,
    LoggingProgressChannel,
    RichProgressChannel,
    PipelineCallback,
    LoggingCallback,
)
from workflow.checkpoint import CheckpointStore, CheckpointSummary
from workflow.lease import BookLeaseManager
from workflow.progress import ProgressReporter
from workflow.quality_gate import QualityGate

__all__ = [
    "BookOrchestrator",
    "GenerationOptions",
    "GenerationReport",
    "OrchestratorServices",
    "ChapterOrchestrator",
    "build_graph",
    "run_pipeline",
    "PipelineState",
    "ProgressChannel",
    "InMemoryProgressChannel",
    "LoggingProgressChannel",
    "RichProgressChannel",
    "PipelineCallback",
    "LoggingCallback",
    "CheckpointStore",
    "CheckpointSummary",
    "BookLeaseManager",
    "ProgressReporter",
    "QualityGate",
]
