"""Prompt assembly: system templates, instructions and token budgeting."""

from patentrag.prompts.manager import PromptManager
from patentrag.prompts.schemas import (
    AnalysisTask,
    BuiltPrompt,
    ClaimAnalysisContext,
    DetailLevel,
    Message,
    MoleculeContext,
    OutputFormat,
    PatentContext,
    PriorArtContext,
    PromptParams,
)
from patentrag.prompts.templates import TemplateInfo, TemplateRegistry

__all__ = [
    "AnalysisTask",
    "BuiltPrompt",
    "ClaimAnalysisContext",
    "DetailLevel",
    "Message",
    "MoleculeContext",
    "OutputFormat",
    "PatentContext",
    "PriorArtContext",
    "PromptManager",
    "PromptParams",
    "TemplateInfo",
    "TemplateRegistry",
]
