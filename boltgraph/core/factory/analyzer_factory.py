"""
Factory for creating analyzer capabilities.
"""

from boltgraph.config import AnalyzerConfig
from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.analyzer.hashing import HashingAnalyzer
from boltgraph.core.analyzer.ollama import OllamaAnalyzer
from boltgraph.core.analyzer.openai import OpenAIAnalyzer
from boltgraph.core.analyzer.registry import AnalyzerRegistry
from boltgraph.models.policy import ContentType


class AnalyzerFactory:
    """Factory for creating analyzers from configuration."""

    @staticmethod
    def create(config: AnalyzerConfig, dimension: int = 384) -> Analyzer:
        """
        Create the analyzer capability from configuration.

        Content types listed in config.routes get their own provider; every
        other content type goes to config.provider.

        Args:
            config: Analyzer configuration
            dimension: View dimension (used by the hashing analyzer)

        Returns:
            Analyzer instance (an AnalyzerRegistry when routes are configured)

        Raises:
            ValueError: If a provider or content type is not supported
        """
        default = AnalyzerFactory.create_provider(config.provider, config, dimension)
        if not config.routes:
            return default

        built: dict[str, Analyzer] = {config.provider: default}
        by_content_type = {}
        for content_type, provider in config.routes.items():
            try:
                key = ContentType(content_type)
            except ValueError as e:
                raise ValueError(f"Unsupported content type in analyzer routes: {content_type}") from e
            if provider not in built:
                built[provider] = AnalyzerFactory.create_provider(provider, config, dimension)
            by_content_type[key] = built[provider]
        return AnalyzerRegistry(default=default, by_content_type=by_content_type)

    @staticmethod
    def create_provider(provider: str, config: AnalyzerConfig, dimension: int = 384) -> Analyzer:
        # Routed providers use their own default model
        own_model = provider == config.provider

        if provider == "ollama":
            return OllamaAnalyzer(
                host=config.base_url,
                model=config.model if own_model else "nomic-embed-text",
                timeout=config.timeout,
            )
        elif provider == "openai":
            if not config.api_key:
                raise ValueError("OpenAI API key is required")
            return OpenAIAnalyzer(
                api_key=config.api_key,
                model=config.model if own_model else "text-embedding-3-small",
                timeout=config.timeout,
            )
        elif provider == "hashing":
            return HashingAnalyzer(dimension=dimension)
        else:
            raise ValueError(f"Unsupported analyzer provider: {provider}")
