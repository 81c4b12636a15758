"""Shared fixtures: the two-counter example machine."""

import pytest

from verism.parser import parse
from verism.pipeline import compile_source
from verism.spec_parser import parse_program


EXAMPLE_SOURCE = """
state machine X {
    fields {
        #[sharding(variable)]
        counter: int,
        #[sharding(variable)]
        inc_a: bool,
        #[sharding(variable)]
        inc_b: bool,
    }

    #[invariant]
    fn main_inv(&self) -> bool {
        self.counter == (if self.inc_a { 1 } else { 0 }) + (if self.inc_b { 1 } else { 0 })
    }

    #[init]
    fn initialize(&self) {
        update(counter, 0);
        update(inc_a, false);
        update(inc_b, false);
    }

    #[transition]
    fn tr_inc_a(&self) {
        require(!self.inc_a);
        update(counter, self.counter + 1);
        update(inc_a, true);
    }

    #[transition]
    fn tr_inc_b(&self) {
        require(!self.inc_b);
        update(counter, self.counter + 1);
        update(inc_b, true);
    }

    #[readonly]
    fn finalize(&self) {
        require(self.inc_a);
        require(self.inc_b);
        assert(self.counter == 2);
    }
}

state machine X {
    #[inductive(initialize)]
    fn initialize_inductive(post: X) { }

    #[inductive(tr_inc_a)]
    fn tr_inc_a_inductive(&self, post: X) { }

    #[inductive(tr_inc_b)]
    fn tr_inc_b_inductive(&self, post: X) { }

    #[safety(finalize)]
    fn finalize_safety(&self) { }
}
"""


@pytest.fixture
def example_source():
    return EXAMPLE_SOURCE


@pytest.fixture
def example_sm():
    (sm,) = parse_program(parse(EXAMPLE_SOURCE))
    return sm


@pytest.fixture
def example_module():
    (module,) = compile_source(EXAMPLE_SOURCE, concurrent=True)
    return module
