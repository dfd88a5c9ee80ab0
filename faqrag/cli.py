"""Command-line entry point.

Usage:
    faqrag ingest data/faqs.json              # Build the index from a file
    faqrag ingest data/faqs.json --rebuild    # Clear the index first
    faqrag query "How many vacation days do I get?"
    faqrag stats                              # Show persisted index stats

The composition root lives here: settings are read once, then every
component receives its collaborators explicitly.
"""
import argparse
import asyncio
import dataclasses
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import structlog

from faqrag import config
from faqrag.config import Settings
from faqrag.errors import InvalidParameter, RAGError
from faqrag.llm_client import (
    EmbeddingGateway,
    GenerativeGateway,
    OllamaClient,
    OllamaEmbedder,
    OllamaGenerator,
)
from faqrag.logging_setup import configure_logging
from faqrag.rag.answer import AnswerSynthesizer
from faqrag.rag.chunker import TextChunker
from faqrag.rag.index import VectorIndex
from faqrag.rag.ingest import IngestPipeline
from faqrag.rag.retriever import Retriever
from faqrag.rag.store_faiss import FAISSVectorIndex
from faqrag.rag.store_memory import InMemoryVectorIndex

logger = structlog.get_logger()

BACKENDS = ("memory", "faiss")


def build_index(settings: Settings) -> VectorIndex:
    """Pick the vector index implementation for this run."""
    if settings.vector_backend == "faiss":
        index = FAISSVectorIndex(
            index_dir=settings.data_dir,
            embedding_model=settings.embedding_model,
        )
        index.init_or_load()
        return index
    if settings.vector_backend == "memory":
        return InMemoryVectorIndex()
    raise InvalidParameter(
        f"Unknown vector backend {settings.vector_backend!r}; "
        f"expected one of {', '.join(BACKENDS)}",
        operation="build_index",
    )


def build_gateways(settings: Settings) -> Tuple[EmbeddingGateway, GenerativeGateway]:
    client = OllamaClient(
        base_url=settings.ollama_base_url,
        timeout=settings.provider_timeout,
        max_retries=settings.provider_max_retries,
    )
    embedder = OllamaEmbedder(client, model=settings.embedding_model)
    generator = OllamaGenerator(
        client,
        model=settings.chat_model,
        temperature=settings.generation_temperature,
    )
    return embedder, generator


def build_pipeline(
    settings: Settings, index: VectorIndex, embedder: EmbeddingGateway
) -> IngestPipeline:
    chunker = TextChunker(
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
    return IngestPipeline(
        index=index,
        embedder=embedder,
        chunker=chunker,
        concurrency=settings.embed_concurrency,
    )


def print_section(title: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}\n")


def print_ingest_summary(stats: dict, elapsed_seconds: float) -> None:
    if stats["skipped"]:
        print("  Index already populated; nothing ingested (use --rebuild).\n")
        return

    print(f"  Records processed:      {stats['records_processed']}")
    print(f"  Chunks created:         {stats['chunks_created']}")
    print(f"  Embeddings generated:   {stats['embeddings_generated']}")
    print(f"  Time elapsed:           {elapsed_seconds:.1f}s")
    if stats["chunks_created"] > 0 and elapsed_seconds > 0:
        rate = stats["chunks_created"] / elapsed_seconds
        print(f"  Indexing rate:          {rate:.1f} chunks/sec")
    print()


async def cmd_ingest(args: argparse.Namespace, settings: Settings) -> int:
    index = build_index(settings)
    embedder, _ = build_gateways(settings)
    pipeline = build_pipeline(settings, index, embedder)

    print_section(f"{'Rebuilding' if args.rebuild else 'Ingesting'} {args.path}")
    started = datetime.now()

    stats = await pipeline.ingest_file(args.path, rebuild=args.rebuild)

    if isinstance(index, FAISSVectorIndex) and stats["chunks_created"] > 0:
        index.save()
        index.record_ingestion_run(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            total_chunks=stats["chunks_created"],
            total_records=stats["records_processed"],
            source_path=str(args.path),
            metadata={"embeddings_generated": stats["embeddings_generated"]},
        )
        print(f"  Index ready at: {index.index_path}")

    print_ingest_summary(stats, (datetime.now() - started).total_seconds())

    if settings.vector_backend == "memory":
        print("  Note: the memory backend does not persist; 'query' re-ingests --data.\n")
    return 0


async def cmd_query(args: argparse.Namespace, settings: Settings) -> int:
    question = " ".join(args.text).strip()
    if not question:
        print("Please provide a query.", file=sys.stderr)
        return 2

    index = build_index(settings)
    embedder, generator = build_gateways(settings)

    if settings.vector_backend == "memory":
        # Nothing persists between runs: ingest, then serve
        pipeline = build_pipeline(settings, index, embedder)
        await pipeline.ingest_file(args.data or settings.faq_path)
    elif index.count() == 0:
        logger.warning("empty_index_no_results", index_dir=str(settings.data_dir))

    retriever = Retriever(index=index, embedder=embedder, top_k=settings.top_k)
    results = await retriever.retrieve_for_query(question, k=args.top_k)

    synthesizer = AnswerSynthesizer(
        generator=generator,
        domain=settings.assistant_domain,
        timeout=settings.generation_timeout,
    )
    answer = await synthesizer.answer(
        question,
        [result.chunk for result in results],
        timeout=args.timeout,
    )

    print("Answer:")
    print(answer)

    if args.show_sources and results:
        print("\nSources:")
        for result in results:
            print(f"  [{result.score:.3f}] {result.source}")
    return 0


async def cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    if settings.vector_backend != "faiss":
        print("The memory backend keeps nothing between runs.")
        return 0

    index = build_index(settings)
    print(json.dumps(index.get_stats(), indent=2, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="faqrag",
        description="Answer questions from an FAQ file with retrieval-augmented generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default=None,
        help=f"Vector index backend (default: {config.VECTOR_BACKEND})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Human-readable debug logs instead of JSON",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Populate the index from a file")
    ingest.add_argument("path", type=Path, help="NDJSON or JSON array of records")
    ingest.add_argument(
        "--rebuild",
        action="store_true",
        help="Clear the existing index before ingesting",
    )
    ingest.set_defaults(handler=cmd_ingest)

    query = subparsers.add_parser("query", help="Answer a question against the index")
    query.add_argument("text", nargs="+", help="Question text")
    query.add_argument("--top-k", type=int, default=None, help="Chunks to retrieve")
    query.add_argument(
        "--timeout",
        type=float,
        default=None,
        help=f"Generation timeout in seconds (default: {config.GENERATION_TIMEOUT})",
    )
    query.add_argument(
        "--data",
        type=Path,
        default=None,
        help=f"Records file for the memory backend (default: {config.FAQ_PATH})",
    )
    query.add_argument(
        "--show-sources",
        action="store_true",
        help="Print the retrieved records and their scores",
    )
    query.set_defaults(handler=cmd_query)

    stats = subparsers.add_parser("stats", help="Show persisted index statistics")
    stats.set_defaults(handler=cmd_stats)

    return parser


async def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    """Parse arguments, run one command and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = settings or Settings.from_env()
    if args.backend:
        settings = dataclasses.replace(settings, vector_backend=args.backend)

    configure_logging(
        "DEBUG" if args.verbose else settings.log_level,
        json_output=not args.verbose,
    )

    try:
        return await args.handler(args, settings)

    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        return 1

    except RAGError as e:
        logger.error(
            "command_failed",
            command=args.command,
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\n❌ {type(e).__name__}: {e}\n", file=sys.stderr)
        return 1

    except Exception as e:
        logger.error(
            "command_failed",
            command=args.command,
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        return 1


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n\n⚠️  Cancelled by user.\n", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
