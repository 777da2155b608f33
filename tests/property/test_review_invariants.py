"""
Property-based tests for grouping and result normalization.

Property 5: Heuristic grouping partitions the hunks
Property 6: Normalized notes only reference known hunks and owning groups
Property 7: Finding merge is idempotent and order-preserving
"""

from hypothesis import given, settings, strategies as st

from ai_diff_reviewer.config import ReviewConfig
from ai_diff_reviewer.models.review import ChangeUnit, ContextNote, Evidence, Finding, ReviewGroup
from ai_diff_reviewer.review.grouping import HeuristicGrouper
from ai_diff_reviewer.review.normalizer import ResultNormalizer, merge_findings

from conftest import NOTE_BODY


TAGS = ["feature", "api", "ui", "data", "config", "refactor", "tests", "docs", "other"]


@st.composite
def change_units(draw):
    count = draw(st.integers(min_value=0, max_value=8))
    units = []
    for index in range(count):
        hunk_count = draw(st.integers(min_value=0, max_value=4))
        units.append(ChangeUnit(
            id=f"file{index}.py",
            file_path=f"file{index}.py",
            hunk_ids=[f"file{index}.py:{n},1:{n},1" for n in range(1, hunk_count + 1)],
            tags=draw(st.lists(st.sampled_from(TAGS), min_size=1, max_size=3)),
        ))
    return units


KNOWN_HUNKS = [f"src/m{n}.py:1,1:1,1" for n in range(6)]
FABRICATED_HUNKS = [f"ghost/m{n}.py:9,9:9,9" for n in range(3)]
NOTE_GROUPS = [
    ReviewGroup(id="g0", title="G0", rationale="r", risk="low", hunk_ids=KNOWN_HUNKS[:3]),
    ReviewGroup(id="g1", title="G1", rationale="r", risk="high", hunk_ids=KNOWN_HUNKS[3:]),
]


@st.composite
def candidate_notes(draw):
    count = draw(st.integers(min_value=0, max_value=10))
    return [
        ContextNote(
            id=f"n{index}",
            title="Explicit configuration changes the runner contract",
            body_markdown=NOTE_BODY,
            confidence=0.5,
            group_id=draw(st.sampled_from(["g0", "g1", "unknown"])),
            hunk_ids=draw(st.lists(st.sampled_from(KNOWN_HUNKS + FABRICATED_HUNKS), max_size=4)),
        )
        for index in range(count)
    ]


@st.composite
def distinct_findings(draw):
    titles = draw(st.lists(
        st.text(alphabet="abcdefghij ", min_size=1, max_size=12), max_size=20, unique=True
    ))
    return [
        Finding(
            id=f"f{index}",
            kind=draw(st.sampled_from(["bug", "flag"])),
            confidence=0.5,
            title=title,
            detail_markdown="detail",
            evidence=[Evidence(file_path="src/app.py", hunk_id=draw(st.sampled_from(KNOWN_HUNKS)))],
        )
        for index, title in enumerate(titles)
    ]


class TestGroupingProperties:
    """Property tests for heuristic grouping."""

    @given(units=change_units())
    @settings(max_examples=75)
    def test_groups_partition_hunks(self, units):
        """
        Property: Every hunk lands in exactly one group.

        Given: Change units with tags and unique hunk ids
        When: The units are grouped heuristically
        Then: The groups' hunk ids are exactly the units' hunk ids, each once
        """
        groups = HeuristicGrouper().group(units)

        grouped = [hunk_id for group in groups for hunk_id in group.hunk_ids]
        expected = [hunk_id for unit in units for hunk_id in unit.hunk_ids]
        assert sorted(grouped) == sorted(expected)
        assert len(grouped) == len(set(grouped))
        assert len({group.id for group in groups}) == len(groups)

    @given(units=change_units())
    @settings(max_examples=50)
    def test_grouping_deterministic(self, units):
        """
        Property: Grouping is a pure function of its input.

        Given: Any list of change units
        When: The units are grouped twice
        Then: Both results are identical
        """
        grouper = HeuristicGrouper()

        assert grouper.group(units) == grouper.group(units)


class TestNormalizationProperties:
    """Property tests for result normalization."""

    @given(notes=candidate_notes(), max_count=st.integers(min_value=0, max_value=12))
    @settings(max_examples=75)
    def test_notes_reference_known_hunks(self, notes, max_count):
        """
        Property: Normalized notes never reference fabricated hunks.

        Given: Candidate notes with a mix of known and fabricated hunk ids
        When: The notes are normalized against the groups
        Then: Every surviving hunk id is known and owned by the note's group
        """
        result = ResultNormalizer(ReviewConfig()).normalize_notes(notes, NOTE_GROUPS, max_count)
        group_index = {group.id: group for group in NOTE_GROUPS}

        assert len(result) <= max_count
        for note in result:
            assert note.hunk_ids
            assert set(note.hunk_ids) <= set(KNOWN_HUNKS)
            assert any(hunk_id in group_index[note.group_id].hunk_ids for hunk_id in note.hunk_ids)

        survivors = [note.id for note in result]
        assert survivors == [note.id for note in notes if note.id in survivors]

    @given(findings=distinct_findings())
    @settings(max_examples=50)
    def test_merge_idempotent(self, findings):
        """
        Property: Merging a finding list with itself changes nothing.

        Given: Findings with distinct titles (at most the cap)
        When: The list is merged with itself
        Then: The result equals the input
        """
        assert merge_findings(findings, findings) == findings

    @given(primary=distinct_findings(), secondary=distinct_findings())
    @settings(max_examples=50)
    def test_merge_keeps_primary_first(self, primary, secondary):
        """
        Property: Primary findings come first and signatures are unique.

        Given: Two finding lists
        When: They are merged
        Then: The result starts with the primary list and has no duplicate signature
        """
        merged = merge_findings(primary, secondary)

        assert merged[:len(primary)] == primary
        assert len({finding.signature for finding in merged}) == len(merged)
        assert len(merged) <= ReviewConfig().max_findings
