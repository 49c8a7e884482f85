import argparse
import asyncio
import logging
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from course_rag.config import settings
from course_rag.db import VectorStore, make_engine, make_session_factory
from course_rag.documents.service import DocumentService
from course_rag.embeddings.embedder import Embedder
from course_rag.llm.client import LLMClient
from course_rag.retrieval.pipeline import DocumentRetriever
from course_rag.retrieval.query_variations import QueryVariationGenerator


def parse_args():
    parser = argparse.ArgumentParser(description="Ingest a plain-text course document and optionally query it.")
    parser.add_argument("path", help="Path to a UTF-8 text file")
    parser.add_argument("--user", required=True, help="Owner user id")
    parser.add_argument("--course", default=None, help="Course id")
    parser.add_argument("--type", default="other", choices=["syllabus", "notes", "other"])
    parser.add_argument("--name", default=None, help="Document name (defaults to the file name)")
    parser.add_argument("--query", default=None, help="Run a retrieval query after ingesting")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    return parser.parse_args()


async def main():
    args = parse_args()
    logging.basicConfig(level=settings.log_level)

    with open(args.path, encoding="utf-8") as f:
        text = f.read()

    engine = make_engine(args.database_url)
    store = VectorStore(make_session_factory(engine))
    embedder = Embedder()
    service = DocumentService(store, embedder)

    try:
        await run(args, text, store, embedder, service)
    finally:
        await engine.dispose()


async def run(args, text, store, embedder, service):
    print(f"Ingesting {args.path}...")
    result = await service.save_text_document(
        user_id=args.user,
        text=text,
        document_name=args.name or os.path.basename(args.path),
        course_id=args.course,
        document_type=args.type,
    )
    print(result.message)
    print(f"Stored as: {result.file_name}")

    if not args.query:
        return

    retriever = DocumentRetriever(store, embedder, QueryVariationGenerator(LLMClient()))
    response = await retriever.search(args.query, user_id=args.user, course_id=args.course)

    print(f"Strategy: {response.strategy}, queries: {response.query_variations}")
    for hit in response.results:
        preview = hit.content[:80].replace("\n", " ")
        print(f"  [{hit.chunk_index}] {hit.similarity:.3f} {hit.file_name}: {preview}")


if __name__ == "__main__":
    asyncio.run(main())
