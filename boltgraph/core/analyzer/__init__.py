"""Analyzer capability implementations."""

from boltgraph.core.analyzer.base import AnalysisResult, Analyzer
from boltgraph.core.analyzer.hashing import HashingAnalyzer
from boltgraph.core.analyzer.ollama import OllamaAnalyzer
from boltgraph.core.analyzer.openai import OpenAIAnalyzer
from boltgraph.core.analyzer.registry import AnalyzerRegistry

__all__ = [
    "Analyzer",
    "AnalysisResult",
    "OllamaAnalyzer",
    "OpenAIAnalyzer",
    "HashingAnalyzer",
    "AnalyzerRegistry",
]
