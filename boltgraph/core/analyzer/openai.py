"""
OpenAI analyzer using official SDK.
"""

from openai import AsyncOpenAI

from boltgraph.core.analyzer.base import AnalysisResult, Analyzer, build_prompt
from boltgraph.models.node import ViewKind
from boltgraph.models.policy import ContentType
from boltgraph.utils.exceptions import AnalysisUnavailableError, EmptyContentError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAIAnalyzer(Analyzer):
    """
    OpenAI analyzer for semantic and pragmatic views.

    Uses official OpenAI SDK embeddings.
    Supports models like text-embedding-3-small, text-embedding-3-large, etc.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        organization: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        dimensions: int | None = None,
    ):
        """
        Initialize OpenAI analyzer.

        Args:
            api_key: OpenAI API key
            model: Embedding model name (e.g., "text-embedding-3-small")
            organization: Optional organization ID
            base_url: Optional custom base URL
            timeout: Request timeout in seconds
            dimensions: Optional output dimension for text-embedding-3 models
        """
        self.model = model
        self.dimensions = dimensions

        self.client = AsyncOpenAI(
            api_key=api_key, organization=organization, base_url=base_url, timeout=timeout
        )

    async def analyze(
        self,
        text: str,
        view: ViewKind,
        content_type_hint: ContentType | None = None,
    ) -> AnalysisResult:
        """
        Generate a view vector using OpenAI.

        Raises:
            EmptyContentError: If text is blank
            AnalysisUnavailableError: If the OpenAI API call fails
        """
        if not text or not text.strip():
            raise EmptyContentError("Text cannot be empty")

        kwargs = {"dimensions": self.dimensions} if self.dimensions else {}

        try:
            response = await self.client.embeddings.create(
                model=self.model, input=build_prompt(text, view, content_type_hint), **kwargs
            )

            if not response.data or len(response.data) == 0:
                raise AnalysisUnavailableError("OpenAI returned empty embedding response")

            return AnalysisResult(
                vector=list(response.data[0].embedding),
                model=self.model,
                features={"provider": self.name, "view": view.value},
            )
        except AnalysisUnavailableError:
            raise
        except Exception as e:
            logger.error(
                "OpenAI analysis failed",
                extra={
                    "model": self.model,
                    "view": view.value,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise AnalysisUnavailableError(
                f"OpenAI analysis error: {e}", context={"view": view.value}
            ) from e

    async def close(self):
        """Close OpenAI client."""
        await self.client.close()
