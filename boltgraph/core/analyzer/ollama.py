"""
Ollama analyzer using native ollama-python SDK.
"""

import ollama

from boltgraph.core.analyzer.base import AnalysisResult, Analyzer, build_prompt
from boltgraph.models.node import ViewKind
from boltgraph.models.policy import ContentType
from boltgraph.utils.exceptions import AnalysisUnavailableError, EmptyContentError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaAnalyzer(Analyzer):
    """
    Ollama analyzer for semantic and pragmatic views.

    Uses native ollama-python SDK embeddings with a view instruction prefix.
    Supports models like nomic-embed-text, mxbai-embed-large, etc.
    """

    name = "ollama"

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 30.0,
    ):
        """
        Initialize Ollama analyzer.

        Args:
            host: Ollama server URL
            model: Embedding model name (e.g., "nomic-embed-text", "mxbai-embed-large")
            timeout: Request timeout in seconds
        """
        self.host = host
        self.model = model
        self.timeout = timeout

        # Create async client
        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def analyze(
        self,
        text: str,
        view: ViewKind,
        content_type_hint: ContentType | None = None,
    ) -> AnalysisResult:
        """
        Generate a view vector using Ollama.

        Args:
            text: Span text
            view: SEMANTIC or PRAGMATIC
            content_type_hint: Optional content category

        Returns:
            Analysis result

        Raises:
            EmptyContentError: If text is blank
            AnalysisUnavailableError: If Ollama fails
        """
        if not text or not text.strip():
            raise EmptyContentError("Text cannot be empty")

        prompt = build_prompt(text, view, content_type_hint)

        try:
            response = await self.client.embeddings(model=self.model, prompt=prompt)

            if not response or "embedding" not in response or not response["embedding"]:
                raise AnalysisUnavailableError("Ollama returned invalid embedding response")

            return AnalysisResult(
                vector=list(response["embedding"]),
                model=self.model,
                features={"provider": self.name, "view": view.value},
            )
        except AnalysisUnavailableError:
            raise
        except Exception as e:
            logger.error(
                "Ollama analysis failed",
                extra={
                    "model": self.model,
                    "host": self.host,
                    "view": view.value,
                    "error": str(e),
                },
            )
            raise AnalysisUnavailableError(
                f"Ollama analysis error: {e}", context={"view": view.value}
            ) from e

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
        pass
