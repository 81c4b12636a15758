"""VERISM Spec Parser Tests — SPEC-001 through SPEC-006.

Tests for:
  - Classification of fields, transitions, invariants, lemmas and helpers
  - Grouping of extension blocks by machine name
  - Annotation conflicts and misplaced declarations
  - Error collection across machines
"""

import pytest

from verism.errors import CompileError, ErrorKind
from verism.parser import parse
from verism.smir import TransitionKind, LemmaKind, VariableShard
from verism.spec_parser import parse_program


FIELDS = """
    fields {
        #[sharding(variable)]
        counter: int,
    }
"""


def _sms(source: str, collect_errors: bool = False):
    return parse_program(parse(source), collect_errors=collect_errors)


def _sm(body: str, extension: str = ""):
    source = f"state machine X {{ {FIELDS} {body} }}"
    if extension:
        source += f" state machine X {{ {extension} }}"
    (sm,) = _sms(source)
    return sm


def _error(body: str, extension: str = ""):
    with pytest.raises(CompileError) as exc:
        _sm(body, extension)
    return exc.value.first


# ===========================================================================
# SPEC-001: Example machine
# ===========================================================================

class TestSPEC001:
    """SPEC-001: The example machine classifies completely."""

    def test_fields(self, example_sm):
        assert example_sm.name == "X"
        assert example_sm.field_names == ["counter", "inc_a", "inc_b"]
        counter = example_sm.get_field("counter")
        assert isinstance(counter.shard, VariableShard)
        assert str(counter.type_annotation) == "int"

    def test_transitions(self, example_sm):
        kinds = {t.name: t.kind for t in example_sm.transitions}
        assert kinds == {
            "initialize": TransitionKind.INIT,
            "tr_inc_a": TransitionKind.TRANSITION,
            "tr_inc_b": TransitionKind.TRANSITION,
            "finalize": TransitionKind.READONLY,
        }
        assert example_sm.get_transition("initialize").is_init

    def test_invariants_and_lemmas(self, example_sm):
        assert [i.name for i in example_sm.invariants] == ["main_inv"]
        purposes = [(l.name, l.purpose.kind, l.purpose.transition) for l in example_sm.lemmas]
        assert purposes == [
            ("initialize_inductive", LemmaKind.INDUCTIVE, "initialize"),
            ("tr_inc_a_inductive", LemmaKind.INDUCTIVE, "tr_inc_a"),
            ("tr_inc_b_inductive", LemmaKind.INDUCTIVE, "tr_inc_b"),
            ("finalize_safety", LemmaKind.SAFETY, "finalize"),
        ]

    def test_ir_json(self, example_sm):
        d = example_sm.to_dict()
        assert d["name"] == "X"
        assert d["fields"][0] == {"name": "counter", "shard": "variable", "type": "int"}
        assert example_sm.to_json() == example_sm.to_json()


# ===========================================================================
# SPEC-002: Helpers and defaults
# ===========================================================================

class TestSPEC002:
    """SPEC-002: Opaque items pass through; shard kind defaults."""

    def test_unannotated_and_unknown_annotation_are_helpers(self):
        sm = _sm("fn plain(&self) -> bool { true } #[spec] fn s(&self) -> int { 1 }")
        assert [h.name for h in sm.helpers] == ["plain", "s"]
        assert sm.transitions == ()

    def test_default_shard_kind(self):
        (sm,) = _sms("state machine Y { fields { n: int } }")
        assert isinstance(sm.fields[0].shard, VariableShard)

    def test_extension_block_lemma(self):
        sm = _sm(
            "#[transition] fn t(&self) { update(counter, 1); }",
            "#[inductive(t)] fn t_ok(&self, post: X) { }",
        )
        assert sm.lemmas[0].func.name == "t_ok"

    def test_separate_machines(self):
        sms = _sms(f"state machine A {{ {FIELDS} }} state machine B {{ {FIELDS} }}")
        assert [sm.name for sm in sms] == ["A", "B"]


# ===========================================================================
# SPEC-003: Annotation errors
# ===========================================================================

class TestSPEC003:
    """SPEC-003: Annotation conflicts and placement."""

    def test_conflicting_annotations(self):
        err = _error("#[transition] #[readonly] fn t(&self) { }")
        assert err.kind == ErrorKind.ANNOTATION_ERROR
        assert "Conflicting" in err.message

    def test_transition_outside_primary_body(self):
        err = _error("", "#[transition] fn t(&self) { }")
        assert err.kind == ErrorKind.ANNOTATION_ERROR

    def test_two_fields_blocks(self):
        err = _error("fields { b: bool }")
        assert err.kind == ErrorKind.ANNOTATION_ERROR

    def test_two_primary_bodies(self):
        err = _error("", FIELDS)
        assert err.kind == ErrorKind.ANNOTATION_ERROR
        assert "primary" in err.message

    def test_arguments_on_transition(self):
        assert _error("#[transition(x)] fn t(&self) { }").kind == ErrorKind.ANNOTATION_ERROR

    def test_inductive_without_argument(self):
        assert _error("#[inductive] fn l(&self, post: X) { }").kind == ErrorKind.ANNOTATION_ERROR

    def test_unknown_shard_kind(self):
        with pytest.raises(CompileError) as exc:
            _sms("state machine Y { fields { #[sharding(map)] m: int } }")
        assert exc.value.first.kind == ErrorKind.ANNOTATION_ERROR
        assert "map" in exc.value.first.message

    def test_unknown_field_attribute(self):
        with pytest.raises(CompileError) as exc:
            _sms("state machine Y { fields { #[ghost] m: int } }")
        assert exc.value.first.kind == ErrorKind.ANNOTATION_ERROR


# ===========================================================================
# SPEC-004: Reference and shape errors
# ===========================================================================

class TestSPEC004:
    """SPEC-004: Duplicates and invariant signatures."""

    def test_duplicate_field(self):
        with pytest.raises(CompileError) as exc:
            _sms("state machine Y { fields { n: int, n: bool } }")
        assert exc.value.first.kind == ErrorKind.REFERENCE_ERROR
        assert exc.value.first.details == {"name": "n"}

    def test_duplicate_transition(self):
        err = _error("#[transition] fn t(&self) { } #[transition] fn t(&self) { }")
        assert err.kind == ErrorKind.REFERENCE_ERROR

    def test_invariant_with_params(self):
        err = _error("#[invariant] fn inv(&self, n: int) -> bool { true }")
        assert err.kind == ErrorKind.GRAMMAR_ERROR

    def test_invariant_without_receiver(self):
        assert _error("#[invariant] fn inv() -> bool { true }").kind == ErrorKind.GRAMMAR_ERROR


# ===========================================================================
# SPEC-005: Error collection
# ===========================================================================

class TestSPEC005:
    """SPEC-005: collect_errors reports every independent failure."""

    def test_fail_fast_by_default(self):
        with pytest.raises(CompileError) as exc:
            _sm("#[transition] fn a(&self) { update(nope, 1); } #[transition] fn b(&self) { require(1); require(2, 3); }")
        assert len(exc.value.errors) == 1

    def test_collects_across_items(self):
        source = (
            f"state machine X {{ {FIELDS} "
            "#[transition] fn a(&self) { update(nope, 1); } "
            "#[transition] #[init] fn b(&self) { } "
            "#[transition] fn c(&self) { update(counter, 1); } }"
        )
        with pytest.raises(CompileError) as exc:
            _sms(source, collect_errors=True)
        kinds = [e.kind for e in exc.value.errors]
        assert kinds == [ErrorKind.REFERENCE_ERROR, ErrorKind.ANNOTATION_ERROR]

    def test_collects_across_machines(self):
        source = (
            "state machine A { fields { n: int, n: int } } "
            "state machine B { fields { #[sharding(map)] m: int } }"
        )
        with pytest.raises(CompileError) as exc:
            _sms(source, collect_errors=True)
        assert len(exc.value.errors) == 2


# ===========================================================================
# SPEC-006: Transition metadata
# ===========================================================================

class TestSPEC006:
    """SPEC-006: Transitions keep their parameters and locations."""

    def test_params_and_location(self):
        sm = _sm("#[transition] fn add(&self, n: int) { update(counter, self.counter + n); }")
        (t,) = sm.transitions
        assert [(p.name, str(p.type_annotation)) for p in t.params] == [("n", "int")]
        assert t.location.line == 1
