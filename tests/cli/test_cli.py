"""VERISM CLI and Configuration Tests — CLI-001 through CLI-006.

Tests for:
  - compile: text and JSON output, -o, --concurrent
  - check: JSON status and collected errors
  - ir: classified machine as JSON
  - smt: SMT-LIB2 export of every generated declaration
  - .verismrc discovery and precedence of command-line flags
"""

import json
import logging

import pytest

from verism.cli import main, build_parser
from verism.config import VerismConfig, find_config, load_config
from verism.pipeline import compile_source


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


@pytest.fixture
def spec_file(tmp_path, example_source):
    path = tmp_path / "counter.vsm"
    path.write_text(example_source)
    return path


# ===========================================================================
# CLI-001: compile
# ===========================================================================

class TestCLI001:
    """CLI-001: The compile command."""

    def test_text_output(self, spec_file, capsys):
        assert _run(["compile", str(spec_file)]) == 0
        out = capsys.readouterr().out
        assert out.startswith("// state machine X\n")
        assert "spec fn tr_inc_a(&self, post: X) -> bool {" in out
        assert "exchange fn" not in out

    def test_concurrent(self, spec_file, capsys):
        assert _run(["compile", str(spec_file), "--concurrent"]) == 0
        out = capsys.readouterr().out
        assert "struct X_counter { instance: X_Instance, counter: int }" in out
        assert "exchange fn X_tr_inc_a(" in out

    def test_json_output(self, spec_file, capsys):
        assert _run(["compile", str(spec_file), "--format", "json"]) == 0
        (module,) = json.loads(capsys.readouterr().out)
        assert module["machine"] == "X"
        names = [d["name"] for d in module["declarations"] if d["decl"] == "spec_fn"]
        assert "tr_inc_a_strong" in names
        assert any(h.startswith("#[invariant]") for h in module["helpers"])

    def test_output_file(self, spec_file, tmp_path, capsys):
        target = tmp_path / "out.txt"
        assert _run(["compile", str(spec_file), "-o", str(target)]) == 0
        status = json.loads(capsys.readouterr().out)
        assert status == {"status": "ok", "output": str(target), "machines": ["X"]}
        assert target.read_text().startswith("// state machine X")

    def test_compile_error(self, tmp_path, capsys):
        path = tmp_path / "bad.vsm"
        path.write_text("state machine X { fields { n: int } #[transition] fn t(&self) { update(m, 1); } }")
        assert _run(["compile", str(path)]) == 1
        (err,) = json.loads(capsys.readouterr().out)
        assert err["kind"] == "reference_error"
        assert err["location"]["file"] == str(path)

    def test_missing_file(self, tmp_path, capsys):
        assert _run(["compile", str(tmp_path / "nope.vsm")]) == 1
        assert "File not found" in json.loads(capsys.readouterr().out)["error"]


# ===========================================================================
# CLI-002: check
# ===========================================================================

class TestCLI002:
    """CLI-002: The check command."""

    def test_ok(self, spec_file, capsys):
        assert _run(["check", str(spec_file)]) == 0
        assert json.loads(capsys.readouterr().out) == {"status": "ok", "file": str(spec_file)}

    def test_reports_every_error(self, tmp_path, capsys):
        path = tmp_path / "bad.vsm"
        path.write_text(
            "state machine X { fields { n: int } "
            "#[transition] fn a(&self) { update(m, 1); } "
            "#[transition] fn b(&self) { require(self.n, 2); } }"
        )
        assert _run(["check", str(path)]) == 1
        result = json.loads(capsys.readouterr().out)
        assert result["status"] == "error"
        assert [e["kind"] for e in result["errors"]] == ["reference_error", "arity_error"]

    def test_syntax_error(self, tmp_path, capsys):
        path = tmp_path / "bad.vsm"
        path.write_text("state machine X { fields { n int } }")
        assert _run(["check", str(path)]) == 1
        result = json.loads(capsys.readouterr().out)
        assert result["errors"][0]["kind"] == "syntax_error"


# ===========================================================================
# CLI-003: ir
# ===========================================================================

class TestCLI003:
    """CLI-003: The ir command."""

    def test_ir(self, spec_file, capsys):
        assert _run(["ir", str(spec_file)]) == 0
        (sm,) = json.loads(capsys.readouterr().out)
        assert [t["kind"] for t in sm["transitions"]] == ["init", "transition", "transition", "readonly"]
        assert sm["transitions"][1]["body"] == (
            "{ require(!self.inc_a); update(counter, self.counter + 1); update(inc_a, true); }"
        )


# ===========================================================================
# CLI-004: Configuration files
# ===========================================================================

class TestCLI004:
    """CLI-004: .verismrc discovery and parsing."""

    def test_empty_file(self, tmp_path):
        path = tmp_path / ".verismrc.yml"
        path.write_text("")
        config = load_config(str(path))
        assert config.concurrent is False
        assert config.format == "text"
        assert config.source == str(path)

    def test_yaml(self, tmp_path):
        path = tmp_path / ".verismrc.yml"
        path.write_text("concurrent: true\nformat: json\nlog_level: INFO\n")
        config = load_config(str(path))
        assert config.concurrent is True
        assert config.format == "json"
        assert config.log_level == "info"
        assert config.source == str(path)

    def test_json(self, tmp_path):
        path = tmp_path / ".verismrc.json"
        path.write_text(json.dumps({"collect_errors": True}))
        assert load_config(str(path)).collect_errors is True

    def test_walks_up(self, tmp_path):
        (tmp_path / ".verismrc.yaml").write_text("concurrent: true\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(str(nested)) == str(tmp_path / ".verismrc.yaml")
        assert load_config(start_dir=str(nested)).concurrent is True

    def test_yml_preferred_over_json(self, tmp_path):
        (tmp_path / ".verismrc.json").write_text("{}")
        (tmp_path / ".verismrc.yml").write_text("{}")
        assert find_config(str(tmp_path)).endswith(".verismrc.yml")

    def test_invalid_values_ignored(self, tmp_path, caplog):
        path = tmp_path / ".verismrc.yml"
        path.write_text("format: xml\nlog_level: loud\n")
        config = load_config(str(path))
        assert config.format == "text"
        assert config.log_level == "warning"
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2

    def test_unparsable_file(self, tmp_path, caplog):
        path = tmp_path / ".verismrc.yml"
        path.write_text("concurrent: [true\n")
        config = load_config(str(path))
        assert config == VerismConfig()
        assert "cannot parse config" in caplog.text

    def test_non_mapping(self, tmp_path):
        path = tmp_path / ".verismrc.yml"
        path.write_text("- concurrent\n")
        assert load_config(str(path)).concurrent is False


# ===========================================================================
# CLI-005: Configuration and flags together
# ===========================================================================

class TestCLI005:
    """CLI-005: The CLI honours the nearest config file; flags win."""

    def test_config_enables_concurrent(self, spec_file, tmp_path, capsys):
        (tmp_path / ".verismrc.yml").write_text("concurrent: true\n")
        assert _run(["compile", str(spec_file)]) == 0
        assert "exchange fn X_tr_inc_a(" in capsys.readouterr().out

    def test_flag_overrides_format(self, spec_file, tmp_path, capsys):
        (tmp_path / ".verismrc.yml").write_text("format: json\n")
        assert _run(["compile", str(spec_file), "--format", "text"]) == 0
        assert capsys.readouterr().out.startswith("// state machine X")

    def test_explicit_config(self, spec_file, tmp_path, capsys):
        other = tmp_path / "custom.json"
        other.write_text(json.dumps({"format": "json"}))
        assert _run(["compile", str(spec_file), "--config", str(other)]) == 0
        assert json.loads(capsys.readouterr().out)[0]["machine"] == "X"

    def test_no_command(self, capsys):
        assert _run([]) == 1

    def test_parser_commands(self):
        parser = build_parser()
        args = parser.parse_args(["check", "f.vsm", "--concurrent", "-vv"])
        assert args.command == "check"
        assert args.concurrent is True
        assert args.verbose == 2


# ===========================================================================
# CLI-006: smt
# ===========================================================================

class TestCLI006:
    """CLI-006: The smt command exports queries through the Z3 adapter."""

    def test_bundle(self, spec_file, example_source, capsys):
        assert _run(["smt", str(spec_file)]) == 0
        out = capsys.readouterr().out
        (module,) = compile_source(example_source)
        assert out.startswith("; VERISM SMT-LIB2 bundle: state machine X\n")
        assert out.count("(check-sat)") == len(module.spec_fns) + len(module.proofs)
        assert "; --- Obligation 1: relation initialize ---" in out
        assert "; --- Obligation 2: relation tr_inc_a ---" in out
        assert "inductive lemma tr_inc_a_inductive ---\n; unsat means valid" in out
        assert "post.counter" in out
        assert "exchange X_" not in out

    def test_concurrent(self, spec_file, capsys):
        assert _run(["smt", str(spec_file), "--concurrent"]) == 0
        out = capsys.readouterr().out
        assert "exchange X_tr_inc_a ---\n; sat means satisfiable" in out

    def test_output_file(self, spec_file, tmp_path, capsys):
        target = tmp_path / "x.smt2"
        assert _run(["smt", str(spec_file), "-o", str(target)]) == 0
        assert json.loads(capsys.readouterr().out)["machines"] == ["X"]
        assert "(reset)" in target.read_text()

    def test_translation_error(self, tmp_path, capsys):
        path = tmp_path / "map.vsm"
        path.write_text(
            "state machine M { fields { m: Map<int, bool> } "
            "#[transition] fn t(&self) { require(self.m == self.m); } }"
        )
        assert _run(["smt", str(path)]) == 1
        (err,) = json.loads(capsys.readouterr().out)
        assert err["kind"] == "translation_error"
