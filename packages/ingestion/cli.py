from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import click

from agents.react_agent import AgentExecutor
from agents.tools import Calculator, Tool, WebSearch
from rag_core.chunking import RecursiveTextSplitter
from rag_core.embeddings import BGEM3Embeddings, EmbeddingClient
from rag_core.exceptions import RagError, StepBudgetExceededError
from rag_core.llm import GroqLLM, LanguageModel
from rag_core.models import Document
from rag_core.retrieval import RetrievalChain
from rag_core.vectorstore import MANIFEST_FILE, VectorStore

from .config import DocQASettings, get_settings
from .loaders import DirectoryLoader, PdfLoader, TextFileLoader, WebPageLoader

_log = logging.getLogger(__name__)


def _make_embeddings(settings: DocQASettings) -> EmbeddingClient:
    return BGEM3Embeddings(
        model_name=settings.embedding_model,
        batch_size=settings.embedding_batch_size,
        max_length=settings.embedding_max_length,
    )


def _make_llm(settings: DocQASettings) -> LanguageModel:
    api_key = settings.groq_api_key.get_secret_value() if settings.groq_api_key else None
    return GroqLLM(
        api_key=api_key,
        model=settings.llm_model,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        system_prompt=settings.system_prompt,
    )


def _make_tools(settings: DocQASettings) -> List[Tool]:
    tools: List[Tool] = [Calculator()]
    if settings.searchapi_api_key:
        tools.append(
            WebSearch(
                api_key=settings.searchapi_api_key.get_secret_value(),
                engine=settings.search_engine,
            )
        )
    else:
        _log.warning("No SearchApi key configured; WebSearch tool disabled")
    return tools


def _collect_documents(
    texts: Tuple[Path, ...],
    pdfs: Tuple[Path, ...],
    urls: Tuple[str, ...],
    source_dir: Optional[Path],
) -> List[Document]:
    documents: List[Document] = []
    for path in texts:
        documents.extend(TextFileLoader(path).load())
    for path in pdfs:
        documents.extend(PdfLoader(path).load())
    for url in urls:
        documents.extend(WebPageLoader(url).load())
    if source_dir is not None:
        documents.extend(DirectoryLoader(source_dir).load())
    return documents


@click.group()
@click.pass_context
def main(ctx: click.Context) -> None:
    """CLI entrypoint for docqa: build a store, ask questions, run the agent."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        ctx.obj = get_settings()
    except RagError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command("ingest")
@click.option("--text", "texts", multiple=True, type=click.Path(path_type=Path), help="Text or markdown file.")
@click.option("--pdf", "pdfs", multiple=True, type=click.Path(path_type=Path), help="PDF file (Docling).")
@click.option("--url", "urls", multiple=True, help="Web page URL.")
@click.option("--source-dir", type=click.Path(path_type=Path), default=None, help="Directory of .txt/.md/.pdf files.")
@click.option("--store", "store_dir", type=click.Path(path_type=Path), default=None, help="Store directory.")
@click.option("--append", is_flag=True, help="Add to an existing store instead of replacing it.")
@click.pass_obj
def ingest(
    settings: DocQASettings,
    texts: Tuple[Path, ...],
    pdfs: Tuple[Path, ...],
    urls: Tuple[str, ...],
    source_dir: Optional[Path],
    store_dir: Optional[Path],
    append: bool,
) -> None:
    """
    Load documents, chunk and embed them, and save the vector store.

    With no sources given the configured source directory is used.
    """
    store_dir = store_dir or settings.store_dir
    if not (texts or pdfs or urls or source_dir):
        source_dir = settings.source_dir

    try:
        documents = _collect_documents(texts, pdfs, urls, source_dir)
        splitter = RecursiveTextSplitter(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            separators=settings.separators,
        )
        chunks = splitter.split_documents(documents)
        embeddings = _make_embeddings(settings)

        if append and (store_dir / MANIFEST_FILE).exists():
            store = VectorStore.load(store_dir)
            store.add_documents(
                chunks,
                embeddings,
                batch_size=settings.embedding_batch_size,
                max_workers=settings.embedding_workers,
            )
        else:
            store = VectorStore.build(
                chunks,
                embeddings,
                batch_size=settings.embedding_batch_size,
                max_workers=settings.embedding_workers,
            )
        store.save(store_dir)
    except (RagError, OSError, UnicodeDecodeError) as exc:
        _log.error("Ingestion failed: %s", exc)
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Indexed {len(chunks)} chunks from {len(documents)} documents into {store_dir} (total {len(store)})")


@main.command("ask")
@click.argument("question")
@click.option("--store", "store_dir", type=click.Path(path_type=Path), default=None, help="Store directory.")
@click.option("-k", "k", type=int, default=None, help="Number of chunks to retrieve.")
@click.option("--no-stream", is_flag=True, help="Print the answer only once it is complete.")
@click.pass_obj
def ask(settings: DocQASettings, question: str, store_dir: Optional[Path], k: Optional[int], no_stream: bool) -> None:
    """Answer QUESTION from the documents in the vector store."""
    store_dir = store_dir or settings.store_dir
    try:
        store = VectorStore.load(store_dir)
        chain = RetrievalChain(_make_embeddings(settings), _make_llm(settings), k=settings.retrieval_k)
        on_token = None if no_stream else (lambda token: click.echo(token, nl=False))
        answer = chain.answer(question, store, k=k, on_token=on_token)
    except RagError as exc:
        _log.error("Question answering failed: %s", exc)
        raise click.ClickException(str(exc)) from exc

    if no_stream:
        click.echo(answer.text)
    else:
        click.echo()

    if answer.source_chunks:
        click.echo("\nSources:")
        for chunk, score in zip(answer.source_chunks, answer.scores):
            source = chunk.metadata.get("source", f"document {chunk.source_index}")
            click.echo(f"  [{score:.3f}] {source} @ {chunk.start_offset}")


@main.command("agent")
@click.argument("question")
@click.option("--max-steps", type=int, default=None, help="Thinking calls before giving up.")
@click.pass_context
def agent(ctx: click.Context, question: str, max_steps: Optional[int]) -> None:
    """Answer QUESTION with the tool-using agent."""
    settings: DocQASettings = ctx.obj
    try:
        executor = AgentExecutor(
            _make_llm(settings),
            _make_tools(settings),
            max_steps=max_steps if max_steps is not None else settings.agent_max_steps,
        )
        run = executor.run(question)
    except StepBudgetExceededError as exc:
        click.echo(str(exc), err=True)
        for idx, step in enumerate(exc.trajectory, start=1):
            click.echo(f"  {idx}. {step.action}({step.action_input!r}) -> {step.observation}", err=True)
        ctx.exit(1)
    except RagError as exc:
        _log.error("Agent run failed: %s", exc)
        raise click.ClickException(str(exc)) from exc

    click.echo(run.answer)


if __name__ == "__main__":
    main()
