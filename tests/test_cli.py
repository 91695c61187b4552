"""
Tests for the docqa command-line interface.

Validates:
1. ingest builds and appends to a store on disk
2. ask streams an answer and lists its sources
3. agent prints the answer, or the trajectory when the budget runs out
"""

import pytest
from click.testing import CliRunner

from conftest import FakeEmbeddings, ScriptedLLM
from ingestion import cli
from rag_core.vectorstore import MANIFEST_FILE, VectorStore

AGENT_ACTION = 'Action:\n```\n{"action": "Calculator", "action_input": "2+2"}\n```'
AGENT_FINAL = 'Action:\n```\n{"action": "Final Answer", "action_input": "The answer is 4"}\n```'


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Point settings at a temp project and replace the model adapters with fakes."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DOCQA_PROJECT_ROOT", str(tmp_path))
    monkeypatch.delenv("SEARCHAPI_API_KEY", raising=False)
    monkeypatch.delenv("DOCQA_SEARCHAPI_API_KEY", raising=False)
    embeddings = FakeEmbeddings()
    monkeypatch.setattr(cli, "_make_embeddings", lambda settings: embeddings)
    return tmp_path


def _use_llm(monkeypatch, llm):
    monkeypatch.setattr(cli, "_make_llm", lambda settings: llm)


@pytest.fixture
def runner():
    return CliRunner()


class TestIngest:
    """Building stores from the command line."""

    def test_ingest_text_file(self, env, runner):
        # Arrange
        source = env / "doc.txt"
        source.write_text("Paris is the capital of France. " * 20, encoding="utf-8")
        store_dir = env / "store"

        # Act
        result = runner.invoke(cli.main, ["ingest", "--text", str(source), "--store", str(store_dir)])

        # Assert
        assert result.exit_code == 0, result.output
        assert "Indexed" in result.output
        assert (store_dir / MANIFEST_FILE).exists()
        assert len(VectorStore.load(store_dir)) > 1

    def test_ingest_uses_configured_source_dir(self, env, runner):
        sources = env / "data" / "sources"
        sources.mkdir(parents=True)
        (sources / "a.md").write_text("alpha", encoding="utf-8")

        result = runner.invoke(cli.main, ["ingest"])

        assert result.exit_code == 0, result.output
        assert len(VectorStore.load(env / "data" / "store")) == 1

    def test_append_adds_to_existing_store(self, env, runner):
        first = env / "one.txt"
        second = env / "two.txt"
        first.write_text("first", encoding="utf-8")
        second.write_text("second", encoding="utf-8")
        store_dir = env / "store"

        runner.invoke(cli.main, ["ingest", "--text", str(first), "--store", str(store_dir)])
        result = runner.invoke(cli.main, ["ingest", "--text", str(second), "--store", str(store_dir), "--append"])

        assert result.exit_code == 0, result.output
        assert [r.chunk.text for r in VectorStore.load(store_dir).records()] == ["first", "second"]

    def test_missing_file_fails(self, env, runner):
        result = runner.invoke(cli.main, ["ingest", "--text", str(env / "missing.txt")])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_undecodable_text_file_fails_cleanly(self, env, runner):
        source = env / "binary.txt"
        source.write_bytes(b"\xff\xfe\x00bad")

        result = runner.invoke(cli.main, ["ingest", "--text", str(source)])

        assert result.exit_code == 1
        assert "can't decode" in result.output
        assert not isinstance(result.exception, UnicodeDecodeError)

    def test_invalid_settings_fail(self, env, runner, monkeypatch):
        monkeypatch.setenv("DOCQA_CHUNK_SIZE", "0")

        result = runner.invoke(cli.main, ["ingest"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestAsk:
    """Answering questions from a saved store."""

    def test_streams_answer_and_sources(self, env, runner, monkeypatch):
        # Arrange
        source = env / "doc.txt"
        source.write_text("Paris is the capital of France.", encoding="utf-8")
        store_dir = env / "store"
        runner.invoke(cli.main, ["ingest", "--text", str(source), "--store", str(store_dir)])
        _use_llm(monkeypatch, ScriptedLLM([], tokens=["It ", "is ", "Paris."]))

        # Act
        result = runner.invoke(cli.main, ["ask", "Capital of France?", "--store", str(store_dir), "-k", "1"])

        # Assert
        assert result.exit_code == 0, result.output
        assert "It is Paris." in result.output
        assert "Sources:" in result.output
        assert str(source) in result.output

    def test_no_stream(self, env, runner, monkeypatch):
        source = env / "doc.txt"
        source.write_text("Paris is the capital of France.", encoding="utf-8")
        store_dir = env / "store"
        runner.invoke(cli.main, ["ingest", "--text", str(source), "--store", str(store_dir)])
        _use_llm(monkeypatch, ScriptedLLM(["Paris."]))

        result = runner.invoke(cli.main, ["ask", "Capital?", "--store", str(store_dir), "--no-stream"])

        assert result.exit_code == 0, result.output
        assert "Paris." in result.output

    def test_missing_store(self, env, runner, monkeypatch):
        _use_llm(monkeypatch, ScriptedLLM([]))

        result = runner.invoke(cli.main, ["ask", "anything", "--store", str(env / "nope")])

        assert result.exit_code == 1
        assert "manifest" in result.output


class TestAgent:
    """Running the tool-using agent."""

    def test_prints_final_answer(self, env, runner, monkeypatch):
        _use_llm(monkeypatch, ScriptedLLM([AGENT_ACTION, AGENT_FINAL]))

        result = runner.invoke(cli.main, ["agent", "What is 2+2?"])

        assert result.exit_code == 0, result.output
        assert "The answer is 4" in result.output

    def test_budget_exhaustion_exits_non_zero(self, env, runner, monkeypatch):
        _use_llm(monkeypatch, ScriptedLLM([AGENT_ACTION]))

        result = runner.invoke(cli.main, ["agent", "What is 2+2?", "--max-steps", "1"])

        assert result.exit_code == 1
        assert "within 1 steps" in result.output
        assert "Calculator('2+2') -> 4" in result.output
