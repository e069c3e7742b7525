"""Frame stack tracking and graph assembly over whole logs."""

import pytest

from apexlog import parse_apex_log_to_graph
from apexlog.parser import (
    BareIdentifier,
    MatchedSignature,
    Unrecoverable,
    class_name_from_signature,
    decide_method_exit,
    describe_unit,
    normalize_finished_unit_name,
    resolve_unit_label,
)
from tests.utils import (
    MS,
    build_log,
    event,
    method_entry,
    method_exit,
    trigger_finish,
    trigger_start,
)


@pytest.fixture
def nested_log():
    """Trigger -> AccountHandler.run -> AccountService.load, all properly closed."""
    return build_log(
        trigger_start(0),
        method_entry(1 * MS, "AccountHandler.run()"),
        method_entry(2 * MS, "AccountService.load(Id)", line=5),
        method_exit(6 * MS, "AccountService.load(Id)", line=5),
        event(8 * MS, "METHOD_EXIT", "[1]", "AccountHandler"),
        trigger_finish(10 * MS),
    )


def assert_well_formed(graph):
    for span in graph.flow:
        assert span.end is not None and span.end >= span.start + 1
    for frame in graph.nested:
        assert frame.end is not None and frame.end >= frame.start + 1
        if frame.profile is not None and frame.profile.time_ms is not None:
            assert frame.profile.time_ms >= 0


class TestLabelHelpers:
    """Test unit and method label resolution."""

    def test_trigger_path_prefers_human_label(self):
        payload = "[EXTERNAL]|01q|MyTrigger on Account trigger event BeforeInsert|__sfdc_trigger/MyTrigger"

        assert resolve_unit_label(payload) == "MyTrigger on Account trigger event BeforeInsert"

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("Flow:Account_Update", ("Flow", "Account_Update")),
            ("flow:", ("Flow", "Flow")),
            ("Class.Batch.execute", ("Class", "Batch")),
            ("Class.Batch", ("Class", "Batch")),
            ("MyTrigger on Account trigger event BeforeInsert", ("Trigger", "MyTrigger")),
            ("execute_anonymous_apex", ("Other", "execute_anonymous_apex")),
            ("", ("Other", "CodeUnit")),
        ],
    )
    def test_describe_unit(self, label, expected):
        assert describe_unit(label) == expected

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("Flow:Account_Update", "Account_Update"),
            ("Class.Batch.execute", "Batch"),
            ("Class.Batch", "Batch"),
            ("MyTrigger on Account trigger event BeforeInsert", "MyTrigger"),
            ("execute_anonymous_apex", "execute_anonymous_apex"),
        ],
    )
    def test_normalize_finished_unit_name(self, label, expected):
        assert normalize_finished_unit_name(label) == expected

    @pytest.mark.parametrize(
        "signature,expected",
        [
            ("MyClass.myMethod(String)", "MyClass"),
            ("ns__MyClass.handler(Map<Id,SObject>)", "ns__MyClass"),
            ("Outer.Inner.run()", "Outer.Inner"),
            ("System.debug(ANY)", None),
            ("System.List<String>.add(Object)", None),
            ("MyClass", None),
            ("", None),
        ],
    )
    def test_class_name_from_signature(self, signature, expected):
        assert class_name_from_signature(signature) == expected


class TestExitDecision:
    """Test the tagged METHOD_EXIT attribution decision."""

    def test_full_signature(self):
        assert decide_method_exit("MyClass.run()") == MatchedSignature("MyClass")

    def test_bare_class_name(self):
        assert decide_method_exit(" MyClass ") == BareIdentifier("MyClass")

    def test_system_signature_is_unrecoverable_and_system_like(self):
        decision = decide_method_exit("System.debug(ANY)")

        assert isinstance(decision, Unrecoverable)
        assert decision.system_like

    def test_empty_payload_is_unrecoverable_but_not_system_like(self):
        decision = decide_method_exit("")

        assert isinstance(decision, Unrecoverable)
        assert not decision.system_like


class TestParseGraph:
    """Test graph, sequence and frame output for whole logs."""

    def test_round_trip_scenario(self):
        text = (
            "64.0 APEX_CODE,FINEST;\n"
            "12:00:00.000 (0)|CODE_UNIT_STARTED|[EXTERNAL]|MyTrigger on Account trigger event BeforeInsert\n"
            "12:00:00.001 (1)|METHOD_ENTRY|MyClass.myMethod"
        )
        graph = parse_apex_log_to_graph(text)

        ids = {node.id for node in graph.nodes}
        assert {"Trigger:MyTrigger", "Class:MyClass"} <= ids

        issues = {issue.code: issue for issue in graph.issues}
        assert issues["frames.unit.unclosed"].severity == "warning"
        assert issues["frames.method.unclosed"].severity == "info"
        assert issues["events.methods.unbalanced"].severity == "info"
        assert_well_formed(graph)

    def test_nodes_edges_and_sequence(self, nested_log):
        graph = parse_apex_log_to_graph(nested_log)

        assert [node.id for node in graph.nodes] == [
            "Trigger:AccountTrigger",
            "Class:AccountHandler",
            "Class:AccountService",
        ]
        assert [(e.from_id, e.to_id, e.count) for e in graph.edges] == [
            ("Trigger:AccountTrigger", "Class:AccountHandler", 1),
            ("Class:AccountHandler", "Class:AccountService", 1),
        ]
        assert [(s.from_id, s.to_id) for s in graph.sequence] == [
            (None, "Trigger:AccountTrigger"),
            ("Trigger:AccountTrigger", "Class:AccountHandler"),
            ("Class:AccountHandler", "Class:AccountService"),
        ]
        assert graph.sequence[0].label == "CODE_UNIT_STARTED"
        assert graph.sequence[2].label == "AccountService.load(Id)"
        assert graph.sequence[1].nanos == str(1 * MS)

    def test_node_lookup(self, nested_log):
        graph = parse_apex_log_to_graph(nested_log)

        assert graph.node("Class:AccountHandler").kind == "Class"
        assert graph.node("Trigger:AccountTrigger").label == "AccountTrigger"
        assert graph.node("Class:Missing") is None

    def test_nested_frames_follow_global_stack(self, nested_log):
        graph = parse_apex_log_to_graph(nested_log)

        frames = [(f.actor, f.kind, f.start, f.end, f.depth) for f in graph.nested]
        assert frames == [
            ("Trigger:AccountTrigger", "unit", 0, 3, 0),
            ("Class:AccountHandler", "method", 1, 3, 1),
            ("Class:AccountService", "method", 2, 3, 2),
        ]
        handler, service = graph.nested[1], graph.nested[2]
        assert (service.start_ns, service.end_ns) == (2 * MS, 6 * MS)
        assert service.profile.time_ms == 4
        assert handler.profile.time_ms == 7
        assert graph.nested[0].profile.time_ms == 10

    def test_closed_log_has_no_frame_issues(self, nested_log):
        codes = parse_apex_log_to_graph(nested_log).issue_codes()

        assert "frames.unit.unclosed" not in codes
        assert "frames.method.unclosed" not in codes
        assert "events.methods.unbalanced" not in codes

    def test_nodes_carry_header_levels(self, nested_log):
        graph = parse_apex_log_to_graph(nested_log)

        assert graph.levels["APEX_CODE"] == "FINEST"
        assert all(node.levels == graph.levels for node in graph.nodes)

    def test_flow_span_depth_is_per_lane(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "Foo.outer()"),
                method_entry(2, "Bar.middle()"),
                method_entry(3, "Foo.inner()"),
            )
        )

        foo_spans = [span for span in graph.flow if span.actor == "Class:Foo"]
        assert [span.depth for span in foo_spans] == [0, 1]
        assert [frame.depth for frame in graph.nested] == [0, 1, 2, 3]
        assert_well_formed(graph)

    def test_self_calls_add_sequence_but_no_edge(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "Foo.a()"),
                method_entry(2, "Foo.b()"),
            )
        )

        assert [(e.from_id, e.to_id) for e in graph.edges] == [("Trigger:AccountTrigger", "Class:Foo")]
        assert graph.sequence[-1].from_id == "Class:Foo"
        assert graph.sequence[-1].to_id == "Class:Foo"

    def test_repeated_calls_count_edges(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "Foo.a()"),
                method_exit(2, "Foo.a()"),
                method_entry(3, "Foo.a()"),
                method_exit(4, "Foo.a()"),
                trigger_finish(5),
            )
        )

        assert graph.edges[0].count == 2

    def test_system_method_entries_are_skipped(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "System.debug(ANY)"),
                method_exit(2, "System.debug(ANY)"),
                trigger_finish(3),
            )
        )

        assert [node.id for node in graph.nodes] == ["Trigger:AccountTrigger"]
        assert len(graph.sequence) == 1
        # Counted as a balanced entry/exit pair even though nothing was tracked
        assert "events.methods.unbalanced" not in graph.issue_codes()

    def test_flow_and_class_units(self):
        graph = parse_apex_log_to_graph(
            build_log(
                event(0, "CODE_UNIT_STARTED", "[EXTERNAL]", "Flow:Account_Update"),
                event(1, "CODE_UNIT_STARTED", "[EXTERNAL]", "01p", "Class.Batch.execute"),
                event(2, "CODE_UNIT_FINISHED", "Class.Batch.execute"),
                event(3, "CODE_UNIT_FINISHED", "Flow:Account_Update"),
            )
        )

        assert [node.id for node in graph.nodes] == ["Flow:Account_Update", "Class:Batch"]
        assert graph.sequence[1].from_id == "Flow:Account_Update"
        assert [(f.start, f.end) for f in graph.nested] == [(0, 2), (1, 2)]
        assert "frames.unit.unclosed" not in graph.issue_codes()


class TestMethodExitHandling:
    """Test unwinding, fallback and ignored exits."""

    def test_exit_unwinds_intermediate_frames(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "Outer.run()"),
                method_entry(2, "Middle.step()"),
                method_entry(3, "Inner.leaf()"),
                method_exit(4, "Outer.run()"),
                trigger_finish(5),
            )
        )

        assert all(frame.end_ns == 4 for frame in graph.nested if frame.kind == "method")
        assert "frames.method.unclosed" not in graph.issue_codes()

    def test_unknown_class_exit_is_ignored(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "Foo.a()"),
                event(2, "METHOD_EXIT", "[1]", "Stranger"),
            )
        )

        assert graph.nested[1].end_ns == 2  # closed only by the end-of-input sweep
        assert "frames.method.unclosed" in graph.issue_codes()
        assert "methods.exit.fallback" not in graph.issue_codes()

    def test_system_exit_is_ignored(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "Foo.a()"),
                method_exit(2, "System.debug(ANY)"),
            )
        )

        assert "frames.method.unclosed" in graph.issue_codes()
        assert "methods.exit.fallback" not in graph.issue_codes()

    def test_unrecoverable_exit_pops_one_frame(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "Foo.a()"),
                method_entry(2, "Bar.b()"),
                event(3, "METHOD_EXIT", "[1]", ""),
            )
        )

        bar = graph.nested[2]
        foo = graph.nested[1]
        assert bar.end_ns == 3
        assert foo.actor == "Class:Foo"
        issues = {issue.code: issue for issue in graph.issues}
        assert issues["methods.exit.fallback"].message.startswith("Closed 1 method(s)")
        assert issues["frames.method.unclosed"].message.startswith("1 method frame(s)")

    def test_exit_with_empty_method_stack_is_ignored(self):
        graph = parse_apex_log_to_graph(
            build_log(trigger_start(0), method_exit(1, "Foo.a()"), trigger_finish(2))
        )

        assert len(graph.nested) == 1
        assert "methods.exit.fallback" not in graph.issue_codes()


class TestUnitFinish:
    """Test unit finish matching and method stack clearing."""

    def test_mismatched_finish_pops_to_matching_unit(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0, "Outer"),
                trigger_start(1, "Inner"),
                trigger_finish(2, "Outer"),
                event(3, "USER_DEBUG", "[1]", "DEBUG", "after"),
            )
        )

        outer, inner = graph.nested
        assert outer.end_ns == 2
        # Skipped units stay open until the end-of-input sweep
        assert inner.end_ns == 3
        assert "frames.unit.unclosed" not in graph.issue_codes()

    def test_unit_finish_clears_method_stack(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0),
                method_entry(1, "Foo.a()"),
                trigger_finish(2),
                trigger_start(3, "Second"),
                method_entry(4, "Bar.b()"),
            )
        )

        # Bar is owned by the new unit, not by the still-open Foo frame
        assert graph.sequence[-1].from_id == "Trigger:Second"
        assert "frames.method.unclosed" in graph.issue_codes()

    def test_unit_starts_match_unit_frames(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(0, "A"),
                trigger_start(1, "B"),
                trigger_finish(2, "A"),
                trigger_start(3, "C"),
            )
        )

        starts = [s for s in graph.sequence if s.label == "CODE_UNIT_STARTED"]
        units = [f for f in graph.nested if f.kind == "unit"]
        assert len(starts) == len(units) == 3
        assert_well_formed(graph)


class TestTruncation:
    """Test the max_lines cap."""

    def test_lines_past_the_cap_are_not_scanned(self, nested_log):
        graph = parse_apex_log_to_graph(nested_log, max_lines=3)

        assert [node.id for node in graph.nodes] == ["Trigger:AccountTrigger", "Class:AccountHandler"]
        assert all(frame.end_ns == 1 * MS for frame in graph.nested)
        assert "frames.unit.unclosed" in graph.issue_codes()
        assert_well_formed(graph)

    def test_cap_is_clamped_to_one_line(self, nested_log):
        graph = parse_apex_log_to_graph(nested_log, max_lines=0)

        assert graph.nodes == []
        assert "events.code_unit.missing" in graph.issue_codes()

    def test_levels_are_read_even_when_truncated(self, nested_log):
        graph = parse_apex_log_to_graph(nested_log, max_lines=1)

        assert graph.levels["DB"] == "INFO"


class TestMalformedInput:
    """Test the parser never raises and stays well formed."""

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "garbage",
            "\r\n\r\n",
            "|METHOD_EXIT|",
            "12:00:00.0 (5)|CODE_UNIT_FINISHED|Nothing",
            "12:00:00.0 (5)|METHOD_ENTRY|A.b()\n12:00:00.0 (1)|METHOD_ENTRY|C.d()",
            "12:00:00.0 (1)|SOQL_EXECUTE_END|[1]\n12:00:00.0 (2)|DML_END|[1]",
        ],
    )
    def test_odd_inputs(self, text):
        graph = parse_apex_log_to_graph(text)

        assert all(issue.severity != "error" for issue in graph.issues)
        assert_well_formed(graph)

    def test_negative_durations_are_clamped(self):
        graph = parse_apex_log_to_graph(
            build_log(
                trigger_start(5 * MS),
                method_entry(6 * MS, "Foo.a()"),
                method_exit(1 * MS, "Foo.a()"),
                trigger_finish(2 * MS),
            )
        )

        assert [frame.profile.time_ms for frame in graph.nested] == [0, 0]
        assert "timestamps.non_monotonic" in graph.issue_codes()

    def test_crlf_line_endings(self, nested_log):
        graph = parse_apex_log_to_graph(nested_log.replace("\n", "\r\n"))

        assert len(graph.nodes) == 3
        assert graph.levels is not None
