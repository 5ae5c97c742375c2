import pytest

from delve.layout.checks import analyze_graph
from delve.layout.config import GraphConfig
from delve.layout.errors import OverlapResolutionError, ProtocolError
from delve.layout.geometry import step
from delve.layout.incremental import (
    IncrementalGraphSession,
    PathComplete,
    SegmentProposal,
    SessionComplete,
    SessionFailed,
    SessionState,
    Verdict,
)
from delve.layout.validators import BoxValidator

GOALS = [(150.0, 0.0, 150.0)]


def _session(**opts):
    opts.setdefault("seed", "abc123")
    return IncrementalGraphSession(GraphConfig(**opts))


def _drive(session, verdict_for):
    events = session.start(goals=GOALS)
    seen = list(events)
    while session.state is SessionState.AWAITING_VALIDATION:
        events = session.submit(verdict_for(events[-1]))
        seen.extend(events)
    return seen


def test_start_emits_first_proposal():
    session = _session()
    events = session.start(goals=GOALS)
    assert len(events) == 1
    proposal = events[0]
    assert isinstance(proposal, SegmentProposal)
    assert proposal.from_id == 1 and proposal.attempt == 1
    assert proposal.from_pos == (0.0, 0.0, 0.0)
    assert session.state is SessionState.AWAITING_VALIDATION
    assert session.pending == proposal
    # the tentative end point is not part of the finalized graph yet
    assert len(session.graph().points) == 1


def test_reject_shifts_by_overlap_plus_unit():
    session = _session()
    first = session.start(goals=GOALS)[0]
    events = session.submit({"ok": False, "overlapAmount": 5})
    assert len(events) == 1
    retry = events[0]
    assert retry.to_id == first.to_id
    assert retry.attempt == 2
    assert retry.direction == first.direction
    assert retry.to_pos == step(first.to_pos, first.direction, 20)


def test_reject_without_amount_shifts_two_units():
    session = _session()
    first = session.start(goals=GOALS)[0]
    retry = session.submit(Verdict(False))[0]
    assert retry.to_pos == step(first.to_pos, first.direction, 30)


def test_verdict_without_pending_is_ignored():
    session = _session()
    assert session.submit({"ok": True}) == []
    assert session.violations == 1
    assert session.state is SessionState.IDLE


def test_malformed_verdict_keeps_pending():
    session = _session()
    first = session.start(goals=GOALS)[0]
    assert session.submit("yes") == []
    assert session.submit({"ok": False, "overlap_amount": "lots"}) == []
    assert session.violations == 2
    assert session.pending == first


@pytest.mark.parametrize("amount", ["nan", "inf", "-inf", float("nan")])
def test_non_finite_overlap_is_malformed(amount):
    session = _session()
    first = session.start(goals=GOALS)[0]
    assert session.submit({"ok": False, "overlapAmount": amount}) == []
    assert session.submit(Verdict(False, float("inf"))) == []
    assert session.violations == 2
    assert session.pending == first
    assert session.state is SessionState.AWAITING_VALIDATION


@pytest.mark.parametrize("amount", [-15, -100])
def test_negative_overlap_still_moves_outward(amount):
    session = _session()
    first = session.start(goals=GOALS)[0]
    retry = session.submit({"ok": False, "overlap_amount": amount})[0]
    assert retry.attempt == 2
    assert retry.to_pos == step(first.to_pos, first.direction, 15)
    again = session.submit({"ok": False, "overlap_amount": amount})[0]
    assert again.to_pos == step(first.to_pos, first.direction, 30)


def test_violations_are_recorded_not_raised():
    session = _session()
    session.submit({"ok": True})
    session.start(goals=GOALS)
    session.submit("yes")
    assert session.violations == 2
    assert all(isinstance(e, ProtocolError) for e in session.protocol_errors)
    assert [str(e) for e in session.protocol_errors] == ["verdict_without_pending", "malformed_verdict"]


def test_start_twice_is_a_violation():
    session = _session()
    session.start(goals=GOALS)
    assert session.start(goals=GOALS) == []
    assert session.violations == 1
    assert session.state is SessionState.AWAITING_VALIDATION


def test_retry_ceiling_fails_session():
    session = _session(max_overlap_retries=3)
    first = session.start(goals=GOALS)[0]
    assert session.submit({"ok": False, "overlap_amount": 1})[0].attempt == 2
    assert session.submit({"ok": False, "overlap_amount": 1})[0].attempt == 3
    events = session.submit({"ok": False, "overlap_amount": 1})
    assert events == [SessionFailed(first.to_id, 3, "overlap_unresolved")]
    assert session.state is SessionState.FAILED
    assert session.pending is None
    assert len(session.graph().points) == 1
    assert session.submit({"ok": True}) == []
    assert session.violations == 1


def test_run_raises_when_overlap_never_resolves():
    session = _session()
    with pytest.raises(OverlapResolutionError) as exc:
        session.run(lambda proposal: Verdict(False, 3.0), goals=GOALS)
    assert exc.value.attempts == session.config.max_overlap_retries
    assert session.state is SessionState.FAILED


def test_accept_all_completes_with_sound_graph():
    session = _session()
    events = _drive(session, lambda proposal: {"ok": True})
    assert session.state is SessionState.COMPLETE
    done = events[-1]
    assert isinstance(done, SessionComplete)
    graph = session.graph()
    assert done.total_points == len(graph.points)
    assert done.total_segments == len(graph.segments)
    assert done.seed == "abc123"
    assert analyze_graph(graph) == []
    assert len(graph.segments) <= session.config.max_segments
    main = [s for s in graph.segments if s.walk == 1]
    assert len(main) <= session.config.max_segments_per_path
    indexes = [e.path_index for e in events if isinstance(e, PathComplete)]
    assert indexes == sorted(indexes) and indexes[0] == 1


def test_same_seed_same_session_graph():
    a = _session()
    b = _session()
    ga = a.run(lambda p: {"ok": True}, goals=GOALS)
    gb = b.run(lambda p: {"ok": True}, goals=GOALS)
    assert ga.to_dict() == gb.to_dict()


def test_goal_reached_on_main_path():
    session = _session(
        goal_bias=1.0,
        vertical_chance=0.0,
        allow_up=False,
        allow_down=False,
        spur_count=(0, 0),
        max_segments_per_path=30,
    )
    graph = session.run(lambda p: {"ok": True}, goals=GOALS)
    assert len(graph.goal_ids) == 1
    end = graph.get(graph.goal_ids[0]).position
    assert abs(end[0] - 150) <= 30 and abs(end[2] - 150) <= 30


def test_rejected_then_accepted_point_is_kept_apart():
    seen = []

    def validator(proposal):
        seen.append(proposal)
        if len(seen) <= 2:
            return {"ok": False, "overlap_amount": 0}
        return {"ok": True}

    graph = _session().run(validator, goals=GOALS)
    first, accepted = seen[0], seen[2]
    assert accepted.to_id == first.to_id and accepted.attempt == 3
    assert accepted.to_pos == step(first.to_pos, first.direction, 30)
    assert graph.get(first.to_id).position == accepted.to_pos
    assert analyze_graph(graph) == []


def test_box_validator_reports_worst_overlap():
    v = BoxValidator(15)
    assert v(SegmentProposal(1, 2, (0.0, 0.0, 0.0), (15.0, 0.0, 0.0), "E")).ok
    assert v(SegmentProposal(2, 3, (15.0, 0.0, 0.0), (30.0, 0.0, 0.0), "E")).ok
    verdict = v(SegmentProposal(3, 4, (30.0, 0.0, 0.0), (5.0, 0.0, 0.0), "W"))
    assert verdict == Verdict(False, 10.0)
    assert v.checked == 3 and v.rejected == 1
    assert 4 not in v.boxes


def test_box_validator_drives_full_session():
    validator = BoxValidator(15)
    session = _session(seed="boxes")
    graph = session.run(validator, goals=GOALS)
    assert session.state is SessionState.COMPLETE
    assert validator.rejected == 0
    assert set(validator.boxes) == set(graph.points)
    assert analyze_graph(graph) == []


def test_event_dicts_are_tagged():
    session = _session()
    proposal = session.start(goals=GOALS)[0]
    data = proposal.to_dict()
    assert data["type"] == "segment_proposal"
    assert data["from_pos"] == [0.0, 0.0, 0.0]
    assert PathComplete(2).to_dict() == {"type": "path_complete", "path_index": 2}
    assert SessionFailed(5, 8, "overlap_unresolved").to_dict()["type"] == "session_failed"
