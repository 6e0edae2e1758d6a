"""
Batch ingestion of statute articles into the Defense Builder statute store.

Reads a JSON array or JSONL file of articles:
    {"article_number": "27", "category": "labor_law", "content": "...", "source_url": "..."}

- Embeddings: Voyage AI (voyage-multilingual-2 by default) or Cohere
- Storage: PostgreSQL + pgvector (legal_docs table)

Usage:
    python ingest_statutes.py --file labor_law.jsonl
    python ingest_statutes.py --file labor_law.json --category labor_law --init-schema
    python ingest_statutes.py --file labor_law.jsonl --dry-run
"""

import sys
import json
import time
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def load_articles(path: Path, default_category: str = None) -> list:
    """Load articles from a .json (array) or .jsonl file."""
    from execution.defense_builder.statute_store import StatuteArticle

    text = path.read_text(encoding="utf-8")
    if path.suffix == ".jsonl":
        raw = [json.loads(line) for line in text.splitlines() if line.strip()]
    else:
        raw = json.loads(text)
        if not isinstance(raw, list):
            raise ValueError(f"{path} must contain a JSON array of articles")

    articles = []
    for idx, item in enumerate(raw):
        content = (item.get("content") or "").strip()
        category = item.get("category") or default_category
        if not content or not category:
            logger.warning(f"Skipping entry #{idx + 1}: missing content or category")
            continue
        kwargs = {}
        if item.get("id"):
            kwargs["id"] = str(item["id"])
        article_number = item.get("article_number")
        articles.append(StatuteArticle(
            category=category,
            content=content,
            source_url=item.get("source_url") or "",
            article_number=str(article_number) if article_number not in (None, "") else None,
            **kwargs,
        ))
    return articles


def ingest(articles: list, embedding_service, store, batch_size: int = 64) -> int:
    """Embed and insert articles in batches. Returns rows written."""
    written = 0
    for start in range(0, len(articles), batch_size):
        batch = articles[start:start + batch_size]
        embeddings = embedding_service.embed_documents([a.content for a in batch])
        written += store.insert_statutes(batch, embeddings)
        logger.info(f"  [{start + len(batch)}/{len(articles)}] articles ingested")
    return written


def main():
    arg_parser = argparse.ArgumentParser(description="Ingest statute articles for the Defense Builder")
    arg_parser.add_argument(
        "--file",
        type=str,
        required=True,
        help="JSON array or JSONL file of articles",
    )
    arg_parser.add_argument(
        "--category",
        type=str,
        default=None,
        help="Category for entries that do not set one",
    )
    arg_parser.add_argument(
        "--batch-size",
        type=int,
        default=64,
        help="Articles embedded and inserted per batch",
    )
    arg_parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Create the statute table and indexes first",
    )
    arg_parser.add_argument(
        "--hnsw",
        action="store_true",
        help="Build the HNSW vector index after ingestion",
    )
    arg_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse the file and report counts without embedding or writing",
    )
    args = arg_parser.parse_args()

    path = Path(args.file).expanduser().resolve()
    if not path.is_file():
        logger.error(f"File not found: {path}")
        sys.exit(1)

    articles = load_articles(path, default_category=args.category)
    categories = sorted({a.category for a in articles})
    logger.info(f"Loaded {len(articles)} articles from {path.name} ({', '.join(categories)})")

    if args.dry_run or not articles:
        return

    from execution.defense_builder.config import DefenseBuilderConfig
    from execution.defense_builder.embeddings import get_embedding_service
    from execution.defense_builder.statute_store import StatuteStore, StatuteStoreConfig

    config = DefenseBuilderConfig.from_env()
    embedding_service = get_embedding_service(builder_config=config)
    if not embedding_service.is_configured:
        logger.error("Embedding credentials missing. Set VOYAGE_API_KEY or COHERE_API_KEY.")
        sys.exit(1)

    store = StatuteStore(StatuteStoreConfig(embedding_dimensions=config.embedding_dimensions))
    store.connect()
    try:
        if args.init_schema:
            store.initialize_schema()

        start = time.time()
        written = ingest(articles, embedding_service, store, batch_size=args.batch_size)
        logger.info(f"Ingested {written} articles in {time.time() - start:.1f}s")

        if args.hnsw:
            store.create_hnsw_index()

        logger.info(f"Statute table now holds {store.count_statutes()} articles")
    finally:
        store.close()


if __name__ == "__main__":
    main()
