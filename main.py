#!/usr/bin/env python3
"""CLI entry point for the hybrid question answering engine."""

import argparse
import asyncio
import logging
import mimetypes
from pathlib import Path

import chromadb
from chromadb.config import Settings as ChromaSettings
from dotenv import load_dotenv

from knowledge_router.classifier import IntentClassifier
from knowledge_router.config import Settings
from knowledge_router.cost_tracker import QueryTelemetry
from knowledge_router.database import BusinessDatabase
from knowledge_router.documents import DocumentStore
from knowledge_router.embeddings import LocalEmbeddings, LocalReranker
from knowledge_router.indexer import DocumentIndexer
from knowledge_router.knowledge_client import KnowledgeRetrievalClient
from knowledge_router.knowledge_service import ChromaKnowledgeService
from knowledge_router.llm_client import OpenAIClient
from knowledge_router.models import ImageInput, Query
from knowledge_router.orchestrator import QueryOrchestrator
from knowledge_router.retriever import DocumentRetriever
from knowledge_router.sql_executor import StructuredQueryExecutor

# Load environment variables from .env file
load_dotenv()


def build_orchestrator(settings: Settings) -> QueryOrchestrator:
    """Construct every client once and wire the components together."""
    gateway = OpenAIClient(
        api_key=settings.openai_api_key,
        model=settings.model,
        vision_model=settings.vision_model,
    )
    chroma = chromadb.PersistentClient(
        path=str(settings.index_path), settings=ChromaSettings(anonymized_telemetry=False)
    )
    embeddings = LocalEmbeddings(model=settings.embedding_model)
    document_store = DocumentStore(settings.documents_dir)

    service = ChromaKnowledgeService(
        retriever=DocumentRetriever(chroma, embeddings),
        gateway=gateway,
        reranker=LocalReranker(model=settings.rerank_model),
    )
    knowledge_client = KnowledgeRetrievalClient(
        service=service,
        documents=document_store,
        knowledge_source_id=settings.knowledge_source_id,
        model=settings.model,
        telemetry=QueryTelemetry(settings.telemetry_path),
    )
    indexer = DocumentIndexer(
        client=chroma,
        embeddings=embeddings,
        documents_dir=settings.documents_dir,
        knowledge_source_id=settings.knowledge_source_id,
        gateway=gateway,
    )

    return QueryOrchestrator(
        gateway=gateway,
        classifier=IntentClassifier(gateway),
        sql_executor=StructuredQueryExecutor(
            gateway, BusinessDatabase.from_url(settings.database_url)
        ),
        knowledge_client=knowledge_client,
        document_store=document_store,
        indexer=indexer,
    )


def load_image(path: Path) -> ImageInput:
    media_type, _ = mimetypes.guess_type(path.name)
    return ImageInput(data=path.read_bytes(), media_type=media_type or "image/png")


async def index_command(settings: Settings) -> None:
    """Sync the documents directory into the knowledge index."""
    print(f"Indexing documents from {settings.documents_dir}...")
    chroma = chromadb.PersistentClient(
        path=str(settings.index_path), settings=ChromaSettings(anonymized_telemetry=False)
    )
    indexer = DocumentIndexer(
        client=chroma,
        embeddings=LocalEmbeddings(model=settings.embedding_model),
        documents_dir=settings.documents_dir,
        knowledge_source_id=settings.knowledge_source_id,
        gateway=OpenAIClient(
            api_key=settings.openai_api_key,
            model=settings.model,
            vision_model=settings.vision_model,
        ),
    )
    count = await indexer.sync()
    print(f"Indexed {count} chunks successfully.")


async def ask_command(
    settings: Settings,
    question: str,
    images: list[Path],
    session: str | None,
) -> None:
    """Answer one question and print the result."""
    orchestrator = build_orchestrator(settings)
    query = Query(
        question=question,
        images=[load_image(p) for p in images],
        session=session,
    )

    try:
        result = await orchestrator.execute(query)
    finally:
        await orchestrator.shutdown()

    print(f"\n{result.answer}")
    if result.citations:
        print("\nReferences:")
        for citation in result.citations:
            print(f"  [{citation.number}] {citation.title} ({citation.filename})")
    if result.session:
        print(f"\nSession: {result.session}")


async def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Hybrid question answering over a business database and a document knowledge base",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(
        dest="command", help="Command to execute"
    )

    subparsers.add_parser("index", help="Sync the documents directory into the knowledge index")

    ask_parser = subparsers.add_parser("ask", help="Ask a question")
    ask_parser.add_argument(
        "question",
        type=str,
        nargs="?",
        default="",
        help="Question text (may be empty when an image is attached)",
    )
    ask_parser.add_argument(
        "--image",
        type=Path,
        action="append",
        default=[],
        help="Image file to attach (repeatable)",
    )
    ask_parser.add_argument(
        "--session",
        type=str,
        default=None,
        help="Session token returned by a previous answer",
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.command == "index":
        await index_command(settings)
    elif args.command == "ask":
        if not args.question and not args.image:
            parser.error("Provide a question or at least one --image")
        await ask_command(settings, args.question, args.image, args.session)


if __name__ == "__main__":
    asyncio.run(main())
