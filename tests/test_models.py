from datetime import datetime

import pytest

from power_scale.power_scale.models import Item, Status, ComparisonPair, RankingCategory
from power_scale.power_scale.logging import InvalidStatusError

from conftest import make_item


class TestStatus:
    def test_labels_differ_per_media(self):
        assert Status.IN_PROGRESS.label(True) == "Currently Watching"
        assert Status.IN_PROGRESS.label(False) == "Currently Reading"
        assert Status.PLANNED.label(False) == "Want to Read"
        assert Status.DROPPED.label(True) == "Lost Interest"

    @pytest.mark.parametrize("text,expected", [
        ("on_hold", Status.ON_HOLD),
        ("ON_HOLD", Status.ON_HOLD),
        ("in progress", Status.IN_PROGRESS),
        ("Lost Interest", Status.DROPPED),
        ("want to read", Status.PLANNED),
        (Status.COMPLETED, Status.COMPLETED),
    ])
    def test_parse(self, text, expected):
        assert Status.parse(text) is expected

    @pytest.mark.parametrize("bad", ["watching-ish", "", None, 3])
    def test_parse_rejects_unknown(self, bad):
        with pytest.raises(InvalidStatusError):
            Status.parse(bad)


class TestItem:
    def test_with_changes_builds_new_value(self):
        item = make_item(1, rank=2)
        moved = item.with_changes(status=Status.ON_HOLD)
        assert moved.status == Status.ON_HOLD
        assert item.status == Status.COMPLETED
        assert moved.rank == 2

    def test_keys(self):
        rewatch = make_item(5, is_anime=False, is_rewatch=True, rewatch_count=2)
        assert rewatch.identity == (5, False)
        assert rewatch.record_key == (5, False, True, 2)

    def test_composite_score(self):
        item = make_item(1, score=8.0, rank=1)
        assert item.composite_score == pytest.approx(8.0 * 10 * 0.7 + 100 * 0.3)

        far = make_item(2, score=5.0, rank=15)
        assert far.composite_score == pytest.approx(35.0)

    def test_start_and_complete_rewatch(self):
        started = datetime(2024, 3, 1)
        item = make_item(9, score=9.0, rank=1, progress=12, end_date=datetime(2023, 1, 1))

        rewatch = Item.start_rewatch_from(item, 1, started)
        assert rewatch.is_rewatch and rewatch.rewatch_count == 1
        assert rewatch.status == Status.IN_PROGRESS
        assert (rewatch.progress, rewatch.rank, rewatch.end_date) == (0, 0, None)
        assert rewatch.start_date == started

        done = Item.completed_rewatch(rewatch, datetime(2024, 3, 9), 12)
        assert done.status == Status.COMPLETED
        assert done.rewatch_count == 1
        assert done.start_date == started
        assert done.progress == 12

    def test_dict_round_trip_tolerates_extra_keys(self):
        item = make_item(3, start_date=datetime(2024, 1, 2), genres=["Drama"], total_units=24)
        data = item.to_dict()
        data["timestamp"] = "2024-01-03T00:00:00"

        assert data["status"] == "completed"
        assert Item.from_dict(data) == item

    def test_display_name(self):
        assert make_item(1, title="Mushishi").display_name() == "Mushishi"
        assert make_item(1, title="Mushishi", is_rewatch=True, rewatch_count=3).display_name() == "Mushishi (Rewatch #3)"


class TestPairsAndCategories:
    def test_pair_contains(self):
        pair = ComparisonPair(make_item(1), make_item(2))
        assert pair.ids == (1, 2)
        assert pair.contains(2)
        assert not pair.contains(3)

    def test_category_round_trip(self):
        category = RankingCategory(False, Status.ON_HOLD)
        assert RankingCategory.from_dict(category.to_dict()) == category
        assert RankingCategory(True).status == Status.COMPLETED
        assert RankingCategory(True).label == "Anime"
