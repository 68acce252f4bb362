"""
GraphStore - Review interactions as a property graph in Neo4j.

Interactions link to the file they reviewed, the repo they belong to and
the concepts they relate to:

    (Interaction)-[:REVIEWED]->(File)
    (Interaction)-[:BELONGS_TO]->(Repo)
    (Interaction)-[:RELATES_TO]->(Concept)

Queries never raise; an unreachable database yields empty results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase

from review_forge.learning.concepts import file_stem
from review_forge.models import ConceptStat, RetrievedPattern, ReviewInteraction

logger = structlog.get_logger(__name__)

MAX_DIFF_CONTEXT = 2000
MIN_CONCEPT_SAMPLES = 3

SCHEMA_STATEMENTS = [
    "CREATE CONSTRAINT IF NOT EXISTS FOR (i:Interaction) REQUIRE i.id IS UNIQUE",
    "CREATE CONSTRAINT IF NOT EXISTS FOR (f:File) REQUIRE f.path IS UNIQUE",
    "CREATE CONSTRAINT IF NOT EXISTS FOR (c:Concept) REQUIRE c.name IS UNIQUE",
    "CREATE CONSTRAINT IF NOT EXISTS FOR (r:Repo) REQUIRE r.name IS UNIQUE",
    "CREATE INDEX IF NOT EXISTS FOR (i:Interaction) ON (i.approved)",
    "CREATE INDEX IF NOT EXISTS FOR (i:Interaction) ON (i.timestamp)",
]

_PATTERN_RETURN = """
RETURN i.reviewComment AS reviewComment, i.diffContext AS diffContext,
       i.approved AS approved, i.category AS category, f.path AS filePath,
       i.pullNumber AS pullNumber, i.source AS source, i.timestamp AS ts
"""


@dataclass
class QueryResult:
    """Result of a graph query."""

    records: list[dict[str, Any]]
    count: int
    query: str


@dataclass
class KnowledgeStats:
    """Counts of interactions by approval state."""

    total: int = 0
    approved: int = 0
    rejected: int = 0
    pending: int = 0


class GraphStore:
    """Structural index of review interactions."""

    name = "neo4j"

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        username: str = "neo4j",
        password: str = "neo4j",
        database: str = "neo4j",
    ):
        """
        Initialize the graph store.

        Args:
            uri: Neo4j connection URI
            username: Neo4j username
            password: Neo4j password
            database: Database name
        """
        self.uri = uri
        self.username = username
        self.password = password
        self.database = database
        self._driver: Optional[AsyncDriver] = None

    async def connect(self) -> bool:
        """Connect to Neo4j and create constraints and indexes.

        Returns:
            True if the store is usable
        """
        try:
            if self._driver is None:
                self._driver = AsyncGraphDatabase.driver(
                    self.uri,
                    auth=(self.username, self.password),
                )
            for statement in SCHEMA_STATEMENTS:
                await self.execute(statement)
            logger.info("Connected to Neo4j", uri=self.uri)
            return True
        except Exception as e:
            logger.error("Failed to initialize Neo4j", uri=self.uri, error=str(e))
            await self.close()
            return False

    async def close(self) -> None:
        """Close Neo4j connection."""
        if self._driver:
            await self._driver.close()
            self._driver = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def available(self) -> bool:
        return self._driver is not None

    async def execute(self, query: str, params: Optional[dict] = None) -> QueryResult:
        """
        Execute a raw Cypher query.

        Args:
            query: Cypher query string
            params: Query parameters

        Returns:
            Query result
        """
        if not self._driver:
            raise RuntimeError("Neo4j driver is not connected")

        params = params or {}

        async with self._driver.session(database=self.database) as session:
            result = await session.run(query, params)
            records = []
            async for record in result:
                records.append(dict(record))

        return QueryResult(
            records=records,
            count=len(records),
            query=query,
        )

    # =========================================================================
    # KnowledgeSink
    # =========================================================================

    async def store_interaction(self, interaction: ReviewInteraction) -> bool:
        """Create the interaction node and its relationships."""
        if not self._driver:
            return False

        query = """
        MERGE (r:Repo {name: $repo})
        MERGE (i:Interaction {id: $id})
        ON CREATE SET
            i.reviewComment = $reviewComment,
            i.diffContext = $diffContext,
            i.approved = $approved,
            i.category = $category,
            i.source = $source,
            i.severity = $severity,
            i.pullNumber = $pullNumber,
            i.line = $line,
            i.timestamp = datetime($timestamp)
        MERGE (f:File {path: $filePath})
        MERGE (i)-[:REVIEWED]->(f)
        MERGE (i)-[:BELONGS_TO]->(r)
        WITH i
        UNWIND $concepts AS conceptName
            MERGE (c:Concept {name: conceptName})
            MERGE (i)-[:RELATES_TO]->(c)
        """
        params = {
            "id": interaction.id,
            "repo": interaction.repo,
            "reviewComment": interaction.review_comment,
            "diffContext": interaction.diff_context[:MAX_DIFF_CONTEXT],
            "approved": interaction.approved,
            "category": interaction.category,
            "source": interaction.source.value,
            "severity": interaction.severity.value,
            "pullNumber": interaction.pull_number,
            "filePath": interaction.file_path,
            "line": interaction.line,
            "timestamp": interaction.timestamp.isoformat(),
            "concepts": interaction.concepts,
        }

        try:
            await self.execute(query, params)
            return True
        except Exception as e:
            logger.warning("Failed to store interaction in Neo4j", id=interaction.id, error=str(e))
            return False

    async def update_approval(self, interaction_id: str, approved: bool) -> bool:
        """Set approval only where it is still unset."""
        if not self._driver:
            return False

        query = """
        MATCH (i:Interaction {id: $id})
        WHERE i.approved IS NULL
        SET i.approved = $approved
        RETURN i.id AS id
        """
        try:
            result = await self.execute(query, {"id": interaction_id, "approved": approved})
            return result.count > 0
        except Exception as e:
            logger.warning("Failed to update approval in Neo4j", id=interaction_id, error=str(e))
            return False

    # =========================================================================
    # InteractionGraph
    # =========================================================================

    async def get_related_interactions(
        self, concepts: list[str], repo: str, limit: int = 5
    ) -> list[RetrievedPattern]:
        """Decided interactions sharing the most concepts."""
        if not self._driver or not concepts:
            return []

        query = """
        MATCH (c:Concept)<-[:RELATES_TO]-(i:Interaction)-[:BELONGS_TO]->(r:Repo {name: $repo})
        WHERE c.name IN $concepts
          AND i.approved IS NOT NULL
        WITH i, count(c) AS relevance
        ORDER BY relevance DESC
        LIMIT $limit
        MATCH (i)-[:REVIEWED]->(f:File)
        RETURN i.reviewComment AS reviewComment, i.diffContext AS diffContext,
               i.approved AS approved, i.category AS category, f.path AS filePath,
               i.pullNumber AS pullNumber, i.source AS source, relevance
        """
        try:
            result = await self.execute(query, {"concepts": concepts, "repo": repo, "limit": limit})
            return [self._to_pattern(r, float(r.get("relevance") or 0)) for r in result.records]
        except Exception as e:
            logger.warning("Failed to query related interactions", repo=repo, error=str(e))
            return []

    async def get_file_history(self, file_path: str, repo: str, limit: int = 5) -> list[RetrievedPattern]:
        """Decided interactions on a file, matched by path or by name.

        Name matching through ``stem:`` concepts catches renamed or moved
        files that share a basename.
        """
        if not self._driver:
            return []

        stem = file_stem(file_path)
        branches = [
            """
            MATCH (f0:File {path: $filePath})<-[:REVIEWED]-(i:Interaction)-[:BELONGS_TO]->(r:Repo {name: $repo})
            WHERE i.approved IS NOT NULL
            MATCH (i)-[:REVIEWED]->(f:File)
            """
            + _PATTERN_RETURN,
            """
            MATCH (fc:Concept {name: $fileConcept})<-[:RELATES_TO]-(i:Interaction)-[:BELONGS_TO]->(r:Repo {name: $repo})
            WHERE i.approved IS NOT NULL
            MATCH (i)-[:REVIEWED]->(f:File)
            """
            + _PATTERN_RETURN,
        ]
        params: dict[str, Any] = {
            "filePath": file_path,
            "fileConcept": f"file:{file_path}",
            "repo": repo,
            "limit": limit,
        }
        if stem:
            branches.append(
                """
                MATCH (sc:Concept {name: $stemConcept})<-[:RELATES_TO]-(i:Interaction)-[:BELONGS_TO]->(r:Repo {name: $repo})
                WHERE i.approved IS NOT NULL
                MATCH (i)-[:REVIEWED]->(f:File)
                """
                + _PATTERN_RETURN
            )
            params["stemConcept"] = f"stem:{stem}"

        query = f"""
        CALL {{
            {" UNION ".join(branches)}
        }}
        RETURN reviewComment, diffContext, approved, category, filePath, pullNumber, source, ts
        ORDER BY ts DESC
        LIMIT $limit
        """
        try:
            result = await self.execute(query, params)
            return [self._to_pattern(r, 1.0) for r in result.records]
        except Exception as e:
            logger.warning("Failed to query file history", file=file_path, error=str(e))
            return []

    async def get_concept_approval_rates(self, repo: str) -> list[ConceptStat]:
        """Approval rate per concept with at least three decided interactions."""
        if not self._driver:
            return []

        query = """
        MATCH (c:Concept)<-[:RELATES_TO]-(i:Interaction)-[:BELONGS_TO]->(r:Repo {name: $repo})
        WHERE i.approved IS NOT NULL
        WITH c.name AS concept,
             count(i) AS total,
             sum(CASE WHEN i.approved = true THEN 1 ELSE 0 END) AS approved
        WHERE total >= $minSamples
        RETURN concept, total, approved, toFloat(approved) / total AS rate
        ORDER BY rate DESC
        """
        try:
            result = await self.execute(query, {"repo": repo, "minSamples": MIN_CONCEPT_SAMPLES})
            return [
                ConceptStat(
                    concept=r["concept"],
                    total=int(r["total"]),
                    approved=int(r["approved"]),
                    rate=float(r["rate"]),
                )
                for r in result.records
            ]
        except Exception as e:
            logger.warning("Failed to query concept approval rates", repo=repo, error=str(e))
            return []

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def clear_repo(self, repo: str) -> int:
        """Delete a repo's interactions; returns how many were removed."""
        if not self._driver:
            return 0

        query = """
        MATCH (i:Interaction)-[:BELONGS_TO]->(r:Repo {name: $repo})
        DETACH DELETE i
        RETURN count(i) AS total
        """
        try:
            result = await self.execute(query, {"repo": repo})
            deleted = int(result.records[0]["total"]) if result.records else 0
            logger.info("Cleared repo from Neo4j", repo=repo, deleted=deleted)
            return deleted
        except Exception as e:
            logger.warning("Failed to clear repo in Neo4j", repo=repo, error=str(e))
            return 0

    async def get_stats(self, repo: Optional[str] = None) -> KnowledgeStats:
        """Interaction counts by approval state."""
        if not self._driver:
            return KnowledgeStats()

        if repo:
            match = "MATCH (i:Interaction)-[:BELONGS_TO]->(r:Repo {name: $repo})"
        else:
            match = "MATCH (i:Interaction)"
        query = f"""
        {match}
        RETURN count(i) AS total,
               sum(CASE WHEN i.approved = true THEN 1 ELSE 0 END) AS approved,
               sum(CASE WHEN i.approved = false THEN 1 ELSE 0 END) AS rejected,
               sum(CASE WHEN i.approved IS NULL THEN 1 ELSE 0 END) AS pending
        """
        try:
            result = await self.execute(query, {"repo": repo} if repo else {})
            if not result.records:
                return KnowledgeStats()
            r = result.records[0]
            return KnowledgeStats(
                total=int(r["total"] or 0),
                approved=int(r["approved"] or 0),
                rejected=int(r["rejected"] or 0),
                pending=int(r["pending"] or 0),
            )
        except Exception as e:
            logger.warning("Failed to query knowledge stats", error=str(e))
            return KnowledgeStats()

    @staticmethod
    def _to_pattern(record: dict[str, Any], score: float) -> RetrievedPattern:
        pull_number = record.get("pullNumber")
        return RetrievedPattern(
            diff_snippet=record.get("diffContext") or "",
            review_comment=record.get("reviewComment") or "",
            file_path=record.get("filePath") or "",
            category=record.get("category") or "",
            score=score,
            approved=record.get("approved"),
            pull_number=int(pull_number) if pull_number is not None else None,
            source=record.get("source"),
        )
