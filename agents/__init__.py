"""Agents package — all AI agent classes."""

from agents.base_agent import BaseAgent
from agents.planner_agent import PlannerAgent
from agents.research_agent import ResearchAgent
from agents.chief_editor_agent import ChiefEditorAgent
from agents.quality_enhancer_agent import QualityEnhancerAgent
from agents.continuity_agent import ContinuityStore
from agents.supervision_agent import SupervisionAgent
from agents.proofreader_agent import ProofreaderAgent
from agents.section_generator import SectionGenerator

__all__ = [
    "BaseAgent",
    "PlannerAgent",
    "ResearchAgent",
    "ChiefEditorAgent",
    "QualityEnhancerAgent",
    "ContinuityStore",
    "SupervisionAgent",
    "ProofreaderAgent",
    "SectionGenerator",
]
