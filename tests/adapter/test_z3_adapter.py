"""VERISM Z3 Adapter Tests — Z3-001 through Z3-006.

Tests for:
  - Validity of the example machine's lemma contracts
  - Semantic equivalence of exchange contracts and transition relations
  - Detection of a transition that breaks the invariant
  - Translation errors for unsupported shapes
  - SMT-LIB2 export of every obligation
"""

import pytest
import z3

from verism.errors import CompileError, ErrorKind
from verism.parser import parse
from verism.pipeline import compile_sm
from verism.spec_parser import parse_program
from verism.z3_adapter import Z3Adapter, VerifierAdapter


def _adapter(source: str, concurrent: bool = True) -> Z3Adapter:
    (sm,) = parse_program(parse(source))
    return Z3Adapter(compile_sm(sm, concurrent=concurrent), sm)


def _valid(formula, *assumptions) -> bool:
    solver = z3.Solver()
    solver.add(*assumptions)
    solver.add(z3.Not(formula))
    return solver.check() == z3.unsat


@pytest.fixture
def adapter(example_source):
    return _adapter(example_source)


# ===========================================================================
# Z3-001: Lemma validity
# ===========================================================================

class TestZ3001:
    """Z3-001: The example machine's lemma contracts are valid."""

    def test_is_verifier_adapter(self, adapter):
        assert isinstance(adapter, VerifierAdapter)

    def test_init_inductive(self, adapter):
        assert _valid(adapter.translate_lemma("initialize_inductive"))

    def test_transition_inductive(self, adapter):
        assert _valid(adapter.translate_lemma("tr_inc_a_inductive"))
        assert _valid(adapter.translate_lemma("tr_inc_b_inductive"))

    def test_safety(self, adapter):
        assert _valid(adapter.translate_lemma("finalize_safety"))


# ===========================================================================
# Z3-002: Relations
# ===========================================================================

class TestZ3002:
    """Z3-002: Relations constrain post exactly."""

    def test_relation_determines_post(self, adapter):
        relation = adapter.translate_transition("tr_inc_a")
        post_counter = adapter.translate_field("counter", "post")
        self_counter = adapter.translate_field("counter", "self")
        assert _valid(z3.Implies(relation, post_counter == self_counter + 1))

    def test_relation_requires_disabled_flag(self, adapter):
        relation = adapter.translate_transition("tr_inc_a")
        self_inc_a = adapter.translate_field("inc_a", "self")
        assert _valid(z3.Implies(relation, z3.Not(self_inc_a)))

    def test_invariant_over_post(self, adapter):
        inv = adapter.translate_invariant("post")
        assert "post.counter" in str(inv)


# ===========================================================================
# Z3-003: Token contract equivalence
# ===========================================================================

class TestZ3003:
    """Z3-003: Exchange contracts plus frame equal the relation."""

    def _frame(self, adapter, op_name):
        op = adapter.module.get_exchange_op(op_name)
        written = {t.name[len("t_input_"):] for t in op.tokens if t.mutable}
        return [
            adapter.translate_field(f, "post") == adapter.translate_field(f, "self")
            for f in adapter.sm.field_names
            if f not in written
        ]

    def test_example_transitions(self, adapter):
        for name in ("tr_inc_a", "tr_inc_b"):
            relation = adapter.translate_transition(name)
            op = adapter.translate_exchange_op(f"X_{name}")
            frame = self._frame(adapter, f"X_{name}")
            assert _valid(relation == z3.And(op, *frame))

    def test_branching_with_params(self):
        source = """
state machine M {
    fields { a: int, b: u32, c: bool }
    #[transition]
    fn t(&self, n: int) {
        let m = n + 1;
        require(self.a < m);
        if self.c { update(a, self.a + m); } else { update(b, self.b + 1); update(b, self.b + 2); }
    }
}
"""
        adapter = _adapter(source)
        relation = adapter.translate_transition("t")
        op = adapter.translate_exchange_op("M_t")
        frame = self._frame(adapter, "M_t")
        assert _valid(relation == z3.And(op, *frame))


# ===========================================================================
# Z3-004: Broken machines
# ===========================================================================

class TestZ3004:
    """Z3-004: An invariant-breaking transition yields an invalid lemma."""

    def test_counterexample(self, example_source):
        source = example_source.replace(
            "update(counter, self.counter + 1);\n        update(inc_a, true);",
            "update(counter, self.counter + 2);\n        update(inc_a, true);",
        )
        adapter = _adapter(source)
        assert not _valid(adapter.translate_lemma("tr_inc_a_inductive"))
        assert _valid(adapter.translate_lemma("tr_inc_b_inductive"))

    def test_unsigned_domain(self):
        adapter = _adapter("state machine M { fields { n: u8 } }")
        n = adapter.translate_field("n")
        assert _valid(n >= 0, *adapter.domain_constraints())
        assert not _valid(n >= 0)


# ===========================================================================
# Z3-005: Translation errors
# ===========================================================================

class TestZ3005:
    """Z3-005: Unsupported shapes fail with translation errors."""

    def test_unsupported_field_type(self):
        adapter = _adapter("state machine M { fields { m: Map<int, bool> } }")
        with pytest.raises(CompileError) as exc:
            adapter.translate_field("m")
        assert exc.value.first.kind == ErrorKind.TRANSLATION_ERROR

    def test_unknown_helper(self):
        source = """
state machine M {
    fields { n: int }
    #[transition]
    fn t(&self) { require(helper(self.n)); }
}
"""
        adapter = _adapter(source, concurrent=False)
        with pytest.raises(CompileError) as exc:
            adapter.translate_transition("t")
        err = exc.value.first
        assert err.kind == ErrorKind.TRANSLATION_ERROR
        assert err.details == {"shape": "FunctionCall"}

    def test_ill_sorted(self):
        source = """
state machine M {
    fields { n: int, b: bool }
    #[transition]
    fn t(&self) { require(self.n && self.b); }
}
"""
        adapter = _adapter(source, concurrent=False)
        with pytest.raises(CompileError) as exc:
            adapter.translate_transition("t")
        assert exc.value.first.kind == ErrorKind.TRANSLATION_ERROR

    def test_unknown_lemma(self, adapter):
        with pytest.raises(CompileError):
            adapter.translate_lemma("nope")


# ===========================================================================
# Z3-006: SMT-LIB2 export
# ===========================================================================

class TestZ3006:
    """Z3-006: Obligations cover every declaration; lemma queries are negated."""

    def test_obligations(self, adapter):
        obligations = adapter.obligations()
        module = adapter.module
        assert len(obligations) == len(module.spec_fns) + len(module.exchange_ops) + len(module.proofs)
        kinds = [(o.kind, o.name) for o in obligations]
        assert ("strong", "tr_inc_a_strong") in kinds
        assert ("exchange", "X_tr_inc_b") in kinds
        assert ("safety lemma", "finalize_safety") in kinds

    def test_lemma_obligations_valid(self, adapter):
        lemmas = [o for o in adapter.obligations() if o.negated]
        assert [o.name for o in lemmas] == [
            "initialize_inductive", "tr_inc_a_inductive", "tr_inc_b_inductive", "finalize_safety",
        ]
        assert all(_valid(o.formula) for o in lemmas)

    def test_query_text(self, adapter):
        (lemma,) = [o for o in adapter.obligations() if o.name == "tr_inc_a_inductive"]
        query = lemma.to_smtlib2([])
        assert "(declare-fun" in query
        assert "(check-sat)" in query

    def test_unsigned_assumptions(self):
        adapter = _adapter("state machine M { fields { n: u8 } }")
        text = adapter.to_smtlib2_bundle("m.vsm")
        assert "; Source: m.vsm" in text
        assert "; Total obligations: 1" in text
        assert "self.n" in text and "post.n" in text
