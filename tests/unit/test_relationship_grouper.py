import pytest

from app.features.partner_suggestions.pipeline.grouping import RelationshipGrouper


@pytest.mark.asyncio
async def test_groups_entries_by_relationship_with_full_roster(fakes):
    rosters = fakes.Rosters([fakes.make_roster("R-42", "A", "B", "C")])
    entries = [fakes.make_entry("e1", "A"), fakes.make_entry("e2", "B")]

    result = await RelationshipGrouper(rosters).group(entries)

    assert result.failures == []
    assert len(result.work_items) == 1
    item = result.work_items[0]
    assert item.relationship_id == "R-42"
    assert [member.member_id for member in item.members] == ["A", "B", "C"]
    assert item.entry_ids == ["e1", "e2"]
    assert [member.member_id for member in item.recipients] == ["C"]


@pytest.mark.asyncio
async def test_each_item_only_carries_its_own_entries(fakes):
    rosters = fakes.Rosters(
        [fakes.make_roster("R-1", "A", "B"), fakes.make_roster("R-2", "A", "D")]
    )
    entries = [
        fakes.make_entry("e1", "A", relationship_id="R-1"),
        fakes.make_entry("e2", "A", relationship_id="R-2"),
        fakes.make_entry("e3", "B", relationship_id="R-1"),
    ]

    result = await RelationshipGrouper(rosters).group(entries)

    by_id = {item.relationship_id: item for item in result.work_items}
    assert by_id["R-1"].entry_ids == ["e1", "e3"]
    assert by_id["R-2"].entry_ids == ["e2"]
    assert rosters.calls == [["R-1", "R-2"]]


@pytest.mark.asyncio
async def test_missing_roster_becomes_relationship_failure(fakes):
    rosters = fakes.Rosters([fakes.make_roster("R-1", "A", "B")])
    entries = [
        fakes.make_entry("e1", "A", relationship_id="R-1"),
        fakes.make_entry("e2", "A", relationship_id="R-gone"),
    ]

    result = await RelationshipGrouper(rosters).group(entries)

    assert [item.relationship_id for item in result.work_items] == ["R-1"]
    assert len(result.failures) == 1
    assert result.failures[0].relationship_id == "R-gone"
    assert result.failures[0].error == "Relationship not found"
    assert result.relationship_count == 2


@pytest.mark.asyncio
async def test_roster_lookup_error_fails_every_relationship(fakes):
    rosters = fakes.Rosters(error=RuntimeError("db down"))
    entries = [
        fakes.make_entry("e1", "A", relationship_id="R-1"),
        fakes.make_entry("e2", "B", relationship_id="R-2"),
    ]

    result = await RelationshipGrouper(rosters).group(entries)

    assert result.work_items == []
    assert {failure.relationship_id for failure in result.failures} == {"R-1", "R-2"}
    assert all("Membership lookup failed" in failure.error for failure in result.failures)


@pytest.mark.asyncio
async def test_solo_relationship_has_no_recipients(fakes):
    rosters = fakes.Rosters([fakes.make_roster("R-solo", "A")])

    result = await RelationshipGrouper(rosters).group(
        [fakes.make_entry("e1", "A", relationship_id="R-solo")]
    )

    assert result.work_items[0].recipients == []


@pytest.mark.asyncio
async def test_duplicate_members_are_collapsed(fakes):
    rosters = fakes.Rosters([fakes.make_roster("R-42", "A", "B", "B")])

    result = await RelationshipGrouper(rosters).group([fakes.make_entry("e1", "A")])

    assert [member.member_id for member in result.work_items[0].members] == ["A", "B"]


@pytest.mark.asyncio
async def test_empty_input_makes_no_lookup(fakes):
    rosters = fakes.Rosters()

    result = await RelationshipGrouper(rosters).group([])

    assert result.relationship_count == 0
    assert rosters.calls == []
