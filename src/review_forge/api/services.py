"""Service wiring for the API server.

Builds the gate, the knowledge stores (Qdrant and Neo4j, or one in-memory
store when ``KNOWLEDGE_BACKEND=memory``), the feedback pipeline and, when
the matching clients are supplied, the orchestrator and history sync.
"""

from dataclasses import dataclass, field

import structlog

from review_forge.config import RepoConfig, ServiceConfig
from review_forge.learning.background import BackgroundWriter
from review_forge.learning.base import InteractionGraph, KnowledgeSink, SemanticIndex
from review_forge.learning.concepts import ConceptExtractor
from review_forge.learning.embeddings import create_embedder
from review_forge.learning.enrich import Enricher
from review_forge.learning.feedback import FeedbackRecorder, HumanCommentIngestor
from review_forge.learning.graph_store import GraphStore
from review_forge.learning.inmemory import InMemoryKnowledgeStore
from review_forge.learning.recall import LearningRecall
from review_forge.learning.sync import HistorySource, HistorySync
from review_forge.learning.vector_store import VectorStore
from review_forge.llm.client import ReviewLLMClient
from review_forge.llm.reviewer import AgenticReviewer
from review_forge.models import PRContext
from review_forge.review.gate import ReviewGate
from review_forge.review.orchestrator import ConfigLoader, Orchestrator, SourceControl

logger = structlog.get_logger(__name__)


class StaticConfigLoader:
    """Serve the same repo config for every pull request."""

    def __init__(self, repo_config: RepoConfig | None = None):
        self.repo_config = repo_config or RepoConfig()

    async def load(self, ctx: PRContext) -> RepoConfig:
        return self.repo_config


@dataclass
class Services:
    """Everything the routes need."""

    gate: ReviewGate
    recorder: FeedbackRecorder
    ingestor: HumanCommentIngestor
    orchestrator: Orchestrator | None = None
    history_sync: HistorySync | None = None
    vector_store: VectorStore | None = None
    graph_store: GraphStore | None = None
    writer: BackgroundWriter = field(default_factory=BackgroundWriter)

    async def close(self) -> None:
        """Flush background writes and release connections."""
        await self.writer.drain()
        if self.vector_store:
            await self.vector_store.close()
        if self.graph_store:
            await self.graph_store.close()
        self.gate.close()


async def build_services(
    config: ServiceConfig,
    source_control: SourceControl | None = None,
    config_loader: ConfigLoader | None = None,
    history_source: HistorySource | None = None,
) -> Services:
    """
    Create and connect the service graph.

    Args:
        config: Service configuration
        source_control: Host client; without one reviews cannot run or publish
        config_loader: Repo config source (default: built-in defaults)
        history_source: Past pull request reader; enables history sync

    Returns:
        Connected services
    """
    gate = ReviewGate(config.db_path)
    writer = BackgroundWriter(max_concurrency=config.background_concurrency)

    llm = ReviewLLMClient(api_key=config.anthropic_api_key) if config.anthropic_api_key else None
    concepts = ConceptExtractor(llm=llm)

    vector_store = None
    graph_store = None
    memory_store = None
    if config.knowledge_backend == "memory":
        memory_store = InMemoryKnowledgeStore()
        logger.info("Using in-memory knowledge store")
    elif config.learning_enabled:
        embedder = create_embedder(
            config.embedding_backend,
            config.ollama_url,
            config.embedding_model,
            config.embedding_dimension,
        )
        vector_store = VectorStore(
            url=config.qdrant_url,
            collection=config.qdrant_collection,
            embedder=embedder,
            api_key=config.qdrant_api_key,
        )
        graph_store = GraphStore(
            uri=config.neo4j_uri,
            username=config.neo4j_user,
            password=config.neo4j_password,
            database=config.neo4j_database,
        )
        if not await vector_store.connect():
            vector_store = None
        if not await graph_store.connect():
            graph_store = None
    else:
        logger.info("Learning disabled; knowledge stores not configured")

    semantic: SemanticIndex | None = memory_store if memory_store is not None else vector_store
    graph: InteractionGraph | None = memory_store if memory_store is not None else graph_store
    sinks: list[KnowledgeSink] = [s for s in (memory_store, vector_store, graph_store) if s is not None]

    orchestrator = None
    if source_control is not None:
        orchestrator = Orchestrator(
            source_control=source_control,
            config_loader=config_loader or StaticConfigLoader(),
            gate=gate,
            reviewer=AgenticReviewer(llm, semantic=semantic, graph=graph) if llm else None,
            recall=LearningRecall(semantic, graph, concepts) if sinks else None,
            enricher=Enricher(graph, concepts) if graph else None,
            sinks=sinks,
            writer=writer,
            concepts=concepts,
        )

    ingestor = HumanCommentIngestor(sinks, concepts)
    return Services(
        gate=gate,
        recorder=FeedbackRecorder(sinks, gate),
        ingestor=ingestor,
        orchestrator=orchestrator,
        history_sync=HistorySync(history_source, ingestor) if history_source is not None else None,
        vector_store=vector_store,
        graph_store=graph_store,
        writer=writer,
    )
