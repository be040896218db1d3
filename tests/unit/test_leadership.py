"""Unit tests for leadership scoring and quorum elections."""

import pytest

from swarm_engine.coordination import (
    LeaderElection,
    consensus_proposal,
    leadership_score,
    quorum_size,
    select_backup_leaders,
)
from swarm_engine.core import (
    AgentCategory,
    AgentStatus,
    MessageType,
    SwarmMessage,
)


@pytest.fixture
def candidates(make_agent):
    """Three agents with clearly ordered leadership scores."""
    return [
        make_agent("a", battery=100.0),
        make_agent("b", battery=50.0),
        make_agent("c", battery=20.0),
    ]


class TestLeadershipScore:
    """Tests for the weighted leadership score."""

    def test_full_multi_role(self, make_agent):
        """Test a fresh multi-role agent at full battery and signal."""
        assert leadership_score(make_agent("a")) == pytest.approx(0.8)

    def test_experience_saturates(self, make_agent):
        """Test mission experience caps at 100 missions."""
        veteran = make_agent("a", mission_count=100)
        legend = make_agent("b", mission_count=500)

        assert leadership_score(veteran) == pytest.approx(1.0)
        assert leadership_score(legend) == pytest.approx(1.0)

    def test_category_weight(self, make_agent):
        """Test transport agents score lower than multi-role."""
        transport = make_agent("t", category=AgentCategory.TRANSPORT, battery=50.0)

        assert leadership_score(transport) == pytest.approx(0.2 + 0.2 + 0.1)

    def test_quorum(self):
        """Test quorum is ceil(0.51 * active agents)."""
        assert quorum_size(5) == 3
        assert quorum_size(4) == 3
        assert quorum_size(2) == 2
        assert quorum_size(1) == 1

    def test_backup_leaders(self, candidates, make_agent):
        """Test backups are the next best available agents."""
        agents = candidates + [make_agent("z", status=AgentStatus.OFFLINE, mission_count=100)]

        assert select_backup_leaders(agents, "a") == ("b", "c")
        assert select_backup_leaders(agents, "a", count=1) == ("b",)


class TestLeaderElection:
    """Tests for election terms, votes and tallies."""

    @pytest.fixture
    def election(self, clock):
        return LeaderElection("alpha", clock=clock)

    def test_best_candidate_wins(self, election, candidates):
        """Test the highest scoring agent collects every vote."""
        result, messages = election.run(candidates)

        assert result.winner == "a"
        assert not result.failed
        assert result.votes == {"a": 3, "b": 2, "c": 1}
        assert result.quorum == 2
        assert len(messages) == 3 + 9

    def test_message_flow(self, election, candidates):
        """Test candidacies are broadcast before votes."""
        _, messages = election.run(candidates)

        assert [m.message_type for m in messages[:3]] == [MessageType.LEADER_ELECTION] * 3
        assert all(m.message_type == MessageType.CONSENSUS_VOTE for m in messages[3:])
        assert all(m.payload["term"] == election.term for m in messages)
        assert messages[0].is_broadcast

    def test_tie_goes_to_smaller_id(self, election, make_agent):
        """Test equal scores elect the lexicographically smaller id."""
        result, _ = election.run([make_agent("y"), make_agent("x")])

        assert result.winner == "x"
        assert result.votes == {"y": 1, "x": 2}

    def test_offline_agents_do_not_vote(self, election, candidates, make_agent):
        """Test only available agents vote and count toward quorum."""
        agents = candidates + [make_agent("d", status=AgentStatus.MAINTENANCE)]

        result, _ = election.run(agents)

        assert "d" not in result.votes
        assert result.quorum == 2

    def test_no_quorum_fails(self, election, candidates):
        """Test an election with no votes has no winner."""
        election.new_term()
        election.announce(candidates[0])
        election.announce(candidates[1])

        result = election.tally(active_count=4)

        assert result.failed
        assert result.quorum == 3

    def test_terms_strictly_increase(self, election):
        """Test a frozen clock still yields increasing terms."""
        first = election.new_term()
        second = election.new_term()

        assert second > first

    def test_stale_vote_ignored(self, election, candidates):
        """Test votes for an older term are not counted."""
        old_term = election.new_term()
        election.new_term()
        election.announce(candidates[0])

        stale = SwarmMessage(
            message_type=MessageType.CONSENSUS_VOTE,
            sender_id="b",
            payload={"candidate_id": "a", "vote": True, "term": old_term},
        )

        assert not election.record_vote(stale)
        assert election.tally(active_count=1).failed

    def test_duplicate_votes_count_once(self, election, candidates):
        """Test a voter voting twice counts once."""
        election.new_term()
        election.announce(candidates[0])
        election.vote(candidates[1], "a")
        election.vote(candidates[1], "a")

        result = election.tally(active_count=3)

        assert result.votes["a"] == 1
        assert result.failed

    def test_unknown_candidate_rejected(self, election):
        """Test votes for a candidate that never stood are rejected."""
        term = election.new_term()
        vote = SwarmMessage(
            message_type=MessageType.CONSENSUS_VOTE,
            sender_id="b",
            payload={"candidate_id": "ghost", "vote": True, "term": term},
        )

        assert not election.record_vote(vote)

    def test_consensus_proposal(self):
        """Test proposals are acknowledged prepare-phase broadcasts."""
        message = consensus_proposal("a", "alpha", "change_formation", 7.0, value="vee")

        assert message.ack_required
        assert message.is_broadcast
        assert message.payload["phase"] == "prepare"
        assert message.payload["value"] == "vee"
        assert message.ttl == 60.0
