"""Tests for depth-first rule expansion and termination."""

import logging
from itertools import islice

import numpy as np
import pytest
from numpy.testing import assert_allclose

from rulemesh.errors import ValidationError
from rulemesh.expander import (
    DEFAULT_MAX_DEPTH,
    TerminationPolicy,
    expand,
    expand_parallel,
)
from rulemesh.rules import RuleGraph, RuleRef, ShapeRef, step
from rulemesh.transforms import Hue, RotateZ, TranslateX, TranslateY, TranslateZ


def _origins(instances):
    return [tuple(np.round(inst.matrix[:3, 3], 9)) for inst in instances]


class TestTerminationPolicy:
    def test_defaults(self):
        policy = TerminationPolicy()
        assert policy.max_depth == DEFAULT_MAX_DEPTH == 10
        assert policy.rule_limits == {}

    def test_negative_depth_rejected(self):
        with pytest.raises(ValidationError, match="max_depth"):
            TerminationPolicy(max_depth=-1)

    def test_negative_limit_rejected(self):
        with pytest.raises(ValidationError, match="Rule limit"):
            TerminationPolicy(rule_limits={"a": -1})

    def test_admits(self):
        policy = TerminationPolicy(max_depth=3, rule_limits={"a": 1})
        assert policy.admits("b", 3, ("b", "b"))
        assert not policy.admits("b", 4, ("b", "b", "b"))
        assert policy.admits("a", 2, ("b",))
        assert not policy.admits("a", 2, ("a",))


class TestExpandBasics:
    def test_single_replicated_step(self):
        graph = RuleGraph()
        graph.define("line", step(ShapeRef("point"), TranslateX(1.0), count=4))
        instances = list(expand(graph, "line"))
        assert [i.shape_id for i in instances] == ["point"] * 4
        assert_allclose([i.matrix[0, 3] for i in instances], [1, 2, 3, 4])
        assert all(i.path == ("line",) for i in instances)

    def test_nested_rule(self, fan_graph):
        instances = list(expand(fan_graph, "fan", TerminationPolicy(max_depth=2)))
        assert len(instances) == 6
        assert_allclose(
            [inst.matrix[:3, 3] for inst in instances],
            [(0, 1, 0), (0, 2, 0), (0, 3, 0), (-1, 0, 0), (-2, 0, 0), (-3, 0, 0)],
            atol=1e-12,
        )
        assert all(i.path == ("fan", "row") for i in instances)

    def test_depth_one_prunes_children(self, fan_graph):
        expansion = expand(fan_graph, "fan", TerminationPolicy(max_depth=1))
        assert list(expansion) == []
        assert expansion.pruned == 2

    def test_depth_zero_expands_nothing(self, grow_graph):
        assert list(expand(grow_graph, "grow", TerminationPolicy(max_depth=0))) == []

    def test_depth_irrelevant_without_rule_refs(self):
        graph = RuleGraph()
        graph.define("flat", step(ShapeRef("point"), TranslateY(2.0), count=3))
        shallow = list(expand(graph, "flat", TerminationPolicy(max_depth=1)))
        deep = list(expand(graph, "flat", TerminationPolicy(max_depth=50)))
        assert _origins(shallow) == _origins(deep)

    def test_steps_in_listed_order(self):
        graph = RuleGraph()
        graph.define(
            "r",
            step(ShapeRef("b"), count=2),
            step(ShapeRef("a")),
            step(ShapeRef("c"), count=0),
            step(ShapeRef("d")),
        )
        assert [i.shape_id for i in expand(graph, "r")] == ["b", "b", "a", "d"]

    def test_depth_first_order(self):
        graph = RuleGraph()
        graph.define("root", step(RuleRef("child"), TranslateZ(1.0), count=2), step(ShapeRef("z")))
        graph.define("child", step(ShapeRef("x")), step(ShapeRef("y")))
        assert [i.shape_id for i in expand(graph, "root")] == ["x", "y", "x", "y", "z"]

    def test_empty_rule(self):
        graph = RuleGraph()
        graph.define("nothing")
        assert list(expand(graph, "nothing")) == []


class TestRecursion:
    @pytest.mark.parametrize("depth", [1, 2, 5, 10])
    def test_self_reference_bounded_by_depth(self, grow_graph, depth):
        instances = list(expand(grow_graph, "grow", TerminationPolicy(max_depth=depth)))
        assert len(instances) == depth
        assert_allclose([i.matrix[0, 3] for i in instances], range(depth))

    def test_growth_is_monotonic(self, grow_graph):
        counts = [
            len(list(expand(grow_graph, "grow", TerminationPolicy(max_depth=d))))
            for d in range(8)
        ]
        assert counts == sorted(counts)

    def test_paths_grow_with_depth(self, grow_graph):
        instances = list(expand(grow_graph, "grow", TerminationPolicy(max_depth=3)))
        assert [len(i.path) for i in instances] == [1, 2, 3]
        assert instances[-1].path == ("grow", "grow", "grow")

    def test_pruned_reference_counted(self, grow_graph):
        expansion = expand(grow_graph, "grow", TerminationPolicy(max_depth=3))
        list(expansion)
        assert expansion.pruned == 1

    def test_replicated_root_into_recursive_rule(self):
        graph = RuleGraph()
        graph.define("fan", step(RuleRef("s"), RotateZ(90.0), count=2))
        graph.define(
            "s",
            step(ShapeRef("point"), TranslateX(1.0), count=3),
            step(RuleRef("s"), TranslateX(1.0), count=3),
        )
        expansion = expand(graph, "fan", TerminationPolicy(max_depth=2))
        instances = list(expansion)
        assert len(instances) == 6
        assert all(i.path == ("fan", "s") for i in instances)
        assert expansion.pruned == 6

    def test_rule_limits(self):
        graph = RuleGraph()
        graph.define("a", step(ShapeRef("p")), step(RuleRef("b"), TranslateX(1.0)))
        graph.define("b", step(ShapeRef("q")), step(RuleRef("a"), TranslateX(1.0)))
        policy = TerminationPolicy(max_depth=10, rule_limits={"b": 2})
        shapes = [i.shape_id for i in expand(graph, "a", policy)]
        assert shapes == ["p", "q", "p", "q", "p"]

    def test_rule_limit_zero_blocks_rule(self, fan_graph):
        policy = TerminationPolicy(rule_limits={"row": 0})
        assert list(expand(fan_graph, "fan", policy)) == []

    def test_color_accumulates_along_path(self):
        graph = RuleGraph()
        graph.define("r", step(ShapeRef("p")), step(RuleRef("r"), Hue(100.0)))
        instances = list(expand(graph, "r", TerminationPolicy(max_depth=4)))
        assert [i.color.hue for i in instances] == pytest.approx([0.0, 100.0, 200.0, 300.0])

    def test_lazy_on_exponential_graph(self):
        graph = RuleGraph()
        graph.define("tree", step(ShapeRef("leaf")), step(RuleRef("tree"), RotateZ(10.0), count=3))
        expansion = expand(graph, "tree", TerminationPolicy(max_depth=40))
        first = list(islice(expansion, 5))
        assert [i.shape_id for i in first] == ["leaf"] * 5
        assert [len(i.path) for i in first] == [1, 2, 3, 4, 5]


class TestExpansionObject:
    def test_restartable(self, fan_graph):
        expansion = expand(fan_graph, "fan")
        assert _origins(expansion) == _origins(expansion)

    def test_unknown_root(self, fan_graph):
        with pytest.raises(ValidationError, match="Unknown root rule"):
            expand(fan_graph, "missing")

    def test_dangling_reference(self):
        graph = RuleGraph()
        graph.define("r", step(RuleRef("ghost")))
        with pytest.raises(ValidationError, match="unknown rule 'ghost'"):
            expand(graph, "r")

    def test_large_replication_product(self):
        graph = RuleGraph()
        graph.define("outer", step(RuleRef("inner"), RotateZ(10.0), count=36))
        graph.define("inner", step(ShapeRef("p"), TranslateZ(0.1), count=36))
        assert sum(1 for _ in expand(graph, "outer")) == 1296

    def test_pruning_logged(self, grow_graph, caplog):
        with caplog.at_level(logging.DEBUG, logger="rulemesh.expander"):
            list(expand(grow_graph, "grow", TerminationPolicy(max_depth=2)))
        assert "1 rule references pruned" in caplog.text


class TestParallel:
    def _graph(self):
        graph = RuleGraph()
        graph.define(
            "root",
            step(ShapeRef("hub")),
            step(RuleRef("arm"), RotateZ(45.0), Hue(30.0), count=8),
            step(ShapeRef("cap"), TranslateZ(1.0)),
        )
        graph.define(
            "arm",
            step(ShapeRef("p"), TranslateX(0.5), count=3),
            step(RuleRef("arm"), TranslateZ(0.2)),
        )
        return graph

    @pytest.mark.parametrize("workers", [1, 2, 8])
    def test_matches_sequential(self, workers):
        graph = self._graph()
        policy = TerminationPolicy(max_depth=4)
        sequential = list(expand(graph, "root", policy))
        parallel = expand_parallel(graph, "root", policy, workers=workers)
        assert [i.shape_id for i in parallel] == [i.shape_id for i in sequential]
        assert [i.path for i in parallel] == [i.path for i in sequential]
        assert [i.color for i in parallel] == [i.color for i in sequential]
        for a, b in zip(parallel, sequential):
            assert_allclose(a.matrix, b.matrix)

    def test_zero_depth(self):
        assert expand_parallel(self._graph(), "root", TerminationPolicy(max_depth=0)) == []

    def test_workers_validated(self):
        with pytest.raises(ValueError, match="workers"):
            expand_parallel(self._graph(), "root", workers=0)
