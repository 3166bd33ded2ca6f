import json
import textwrap

import pytest
from typer.testing import CliRunner

from tagette import cli
from tagette.engine import registry as engine_registry

from conftest import FakeEndpoint

runner = CliRunner()

SCHEMAS = textwrap.dedent(
    """
    schemas:
      - name: tagging
        fields:
          - name: sentiment
            type: enum
            values: [happy, neutral, sad]
          - name: aggressiveness
            type: int
            min: 1
            max: 5
          - name: language
            type: enum
            values: [spanish, english, french, german, italian]
    """
)


@pytest.fixture
def schema_file(tmp_path):
    path = tmp_path / "schemas.yml"
    path.write_text(SCHEMAS)
    return path


@pytest.fixture
def fake_cli_engine(monkeypatch, tmp_path):
    """Make ``--engines`` register a 'fake' engine backed by a FakeEndpoint."""
    engines_file = tmp_path / "engines.yml"
    engines_file.write_text("[]\n")
    holder = {}

    def _use(*replies):
        holder["endpoint"] = FakeEndpoint(*replies)

        def _load(path):
            return [engine_registry.register_engine("fake", factory=lambda cfg: holder["endpoint"])]

        monkeypatch.setattr(cli, "load_engines_from_yaml", _load)
        return engines_file, holder["endpoint"]

    return _use


def test_schemas_command(schema_file):
    result = runner.invoke(cli.app, ["schemas", str(schema_file)])
    assert result.exit_code == 0, result.output
    assert "sentiment" in result.output
    assert "[1, 5]" in result.output


def test_prompt_command(schema_file):
    result = runner.invoke(cli.app, ["prompt", str(schema_file), "tagging", "Estoy muy enojado con vos!"])
    assert result.exit_code == 0, result.output
    assert "Estoy muy enojado con vos!" in result.output
    assert "aggressiveness (required): integer from 1 to 5" in result.output


def test_prompt_empty_document(schema_file):
    result = runner.invoke(cli.app, ["prompt", str(schema_file), "tagging", "  "])
    assert result.exit_code == 1
    assert "EmptyDocumentError" in result.output


def test_unknown_schema(schema_file):
    result = runner.invoke(cli.app, ["prompt", str(schema_file), "nope", "hi"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_invalid_schema_file(tmp_path):
    bad = tmp_path / "bad.yml"
    bad.write_text("schemas:\n  - name: s\n    fields:\n      - name: n\n        type: int\n        min: 5\n        max: 1\n")
    result = runner.invoke(cli.app, ["schemas", str(bad)])
    assert result.exit_code == 1
    assert "Invalid schema" in result.output


def test_engines_command_empty():
    result = runner.invoke(cli.app, ["engines"])
    assert result.exit_code == 0
    assert "No engines registered" in result.output


def test_extract_single_text(schema_file, fake_cli_engine):
    engines_file, endpoint = fake_cli_engine(
        json.dumps({"sentiment": "sad", "aggressiveness": 5, "language": "spanish"})
    )
    result = runner.invoke(
        cli.app,
        ["extract", str(schema_file), "tagging", "Te voy a dar tu merecido!", "--engines", str(engines_file), "--engine", "fake"],
    )
    assert result.exit_code == 0, result.output
    assert '"aggressiveness": 5' in result.output
    assert len(endpoint.calls) == 1
    assert endpoint.closed


def test_extract_validation_failure(schema_file, fake_cli_engine):
    engines_file, _ = fake_cli_engine(json.dumps({"sentiment": "furious", "aggressiveness": 5, "language": "spanish"}))
    result = runner.invoke(
        cli.app,
        ["extract", str(schema_file), "tagging", "Grr", "--engines", str(engines_file), "--engine", "fake"],
    )
    assert result.exit_code == 1
    assert "ValidationFailed" in result.output
    assert "Violations" in result.output


def test_extract_batch(schema_file, fake_cli_engine, tmp_path):
    engines_file, endpoint = fake_cli_engine(
        json.dumps({"sentiment": "happy", "aggressiveness": 1, "language": "english"})
    )
    inputs = tmp_path / "inputs.jsonl"
    inputs.write_text(
        "\n".join(json.dumps(r) for r in [{"id": "a", "text": "nice"}, {"id": "b", "text": ""}, {"id": "c", "text": "great"}])
    )
    out_dir = tmp_path / "out"
    result = runner.invoke(
        cli.app,
        [
            "extract", str(schema_file), "tagging",
            "--engines", str(engines_file), "--engine", "fake",
            "--input", str(inputs), "--output-dir", str(out_dir),
        ],
    )
    assert result.exit_code == 0, result.output
    rows = [json.loads(line) for line in (out_dir / "tagging.jsonl").read_text().splitlines()]
    assert [(r["row_id"], r["ok"]) for r in rows] == [("a", True), ("b", False), ("c", True)]
    assert rows[1]["error_type"] == "EmptyDocumentError"
    assert len(endpoint.calls) == 2
    assert json.loads((out_dir / "metadata.json").read_text())["counts"]["ok"] == 2


def test_extract_unknown_engine(schema_file, fake_cli_engine):
    engines_file, _ = fake_cli_engine("{}")
    result = runner.invoke(
        cli.app,
        ["extract", str(schema_file), "tagging", "hi", "--engines", str(engines_file), "--engine", "other"],
    )
    assert result.exit_code == 1
    assert "not found" in result.output


def test_extract_batch_with_retries(schema_file, fake_cli_engine, tmp_path):
    engines_file, endpoint = fake_cli_engine(
        json.dumps({"sentiment": "sad", "aggressiveness": 2, "language": "french"})
    )
    inputs = tmp_path / "inputs.jsonl"
    inputs.write_text("\n".join(json.dumps(r) for r in [{"id": 7, "text": "triste"}, {"text": "bof"}]))
    out_dir = tmp_path / "out"
    result = runner.invoke(
        cli.app,
        [
            "extract", str(schema_file), "tagging",
            "--engines", str(engines_file), "--engine", "fake",
            "--input", str(inputs), "--output-dir", str(out_dir),
            "--retries", "2", "--max-workers", "2",
        ],
    )
    assert result.exit_code == 0, result.output
    rows = [json.loads(line) for line in (out_dir / "tagging.jsonl").read_text().splitlines()]
    assert [(r["row_id"], r["ok"]) for r in rows] == [("7", True), ("1", True)]
    assert len(endpoint.calls) == 2
