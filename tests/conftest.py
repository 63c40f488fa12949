"""Shared fixtures.

Every fixture runs fully in-process: the hashing analyzer stands in for a
model server, storage and index live in memory. Fixtures use function
scope so each test gets a fresh engine.
"""

import asyncio
from collections.abc import AsyncGenerator

import pytest

from boltgraph.config import Config
from boltgraph.core.analyzer.base import AnalysisResult, Analyzer
from boltgraph.core.analyzer.hashing import HashingAnalyzer
from boltgraph.core.index.memory import InMemoryNodeIndex
from boltgraph.core.storage.manager import StorageManager
from boltgraph.core.storage.memory import InMemoryBlobStore
from boltgraph.models.document import Document
from boltgraph.models.node import ViewKind
from boltgraph.models.policy import ContentType
from boltgraph.services.hierarchy_engine import HierarchyEngine
from boltgraph.utils.exceptions import AnalysisUnavailableError

DIMENSION = 64

TWO_SECTIONS = """# Section One

The harbour crane lifts steel containers onto waiting cargo ships every morning.

Dock workers inspect each container seal before the crane operator starts lifting.

Heavy fog sometimes delays the cargo schedule and the crane stays idle for hours.

# Section Two

Fresh bread from the village bakery arrives warm before sunrise.

The baker kneads rye dough slowly and bakes loaves in a stone oven.
"""


class FakeAnalyzer(Analyzer):
    """
    Hashing analyzer with knobs for failure injection.

    Attributes:
        calls: Number of analyze() calls
        fail_times: Remaining calls that raise AnalysisUnavailableError
            (-1 fails forever)
        delay: Seconds to sleep inside every call
    """

    name = "fake"

    def __init__(self, dimension: int = DIMENSION):
        self.inner = HashingAnalyzer(dimension=dimension)
        self.calls = 0
        self.fail_times = 0
        self.delay = 0.0
        self.closed = False

    async def analyze(
        self,
        text: str,
        view: ViewKind,
        content_type_hint: ContentType | None = None,
    ) -> AnalysisResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times:
            if self.fail_times > 0:
                self.fail_times -= 1
            raise AnalysisUnavailableError("Fake analyzer unavailable")
        return await self.inner.analyze(text, view, content_type_hint)

    async def close(self):
        self.closed = True


def make_config(**overrides) -> Config:
    """Test configuration; keyword overrides are applied per section."""
    config = Config()
    config.views.dimension = DIMENSION
    config.analyzer.provider = "hashing"
    config.analyzer.backoff_base = 0.001
    config.analyzer.backoff_max = 0.01
    config.logging.log_to_file = False
    for section, values in overrides.items():
        for key, value in values.items():
            setattr(getattr(config, section), key, value)
    return config


def make_engine(config: Config | None = None, analyzer: Analyzer | None = None, **kwargs):
    config = config or make_config()
    return HierarchyEngine(
        analyzer=analyzer or FakeAnalyzer(config.views.dimension),
        storage=StorageManager(InMemoryBlobStore()),
        index=InMemoryNodeIndex(),
        config=config,
        **kwargs,
    )


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
async def engine(config, analyzer) -> AsyncGenerator[HierarchyEngine, None]:
    """Initialized in-memory engine."""
    instance = make_engine(config, analyzer)
    await instance.initialize()
    yield instance
    await instance.close()


@pytest.fixture
def document() -> Document:
    return Document(document_id="doc-1", content=TWO_SECTIONS, metadata={"title": "Port and Bakery"})
