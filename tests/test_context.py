import random
from unittest.mock import MagicMock

import pytest

from power_scale.power_scale.config import setup_config
from power_scale.power_scale.context import LibraryContext, build_context
from power_scale.power_scale.metadata import TitleMetadata
from power_scale.power_scale.models import RankingCategory, Status
from power_scale.power_scale.session import MemorySessionStore
from power_scale.power_scale.logging import InvalidStatusError, NotEnoughItemsError, RewatchError

from conftest import make_item


@pytest.fixture
def metadata():
    client = MagicMock()
    client.fetch_title_metadata.side_effect = lambda media_id, is_anime: TitleMetadata(
        media_id=media_id, is_anime=is_anime, title=f"Show {media_id}", genres=["Drama"], total_units=12
    )
    return client


@pytest.fixture
def ctx(sync, metadata):
    return LibraryContext(sync, session_store=MemorySessionStore(), metadata=metadata, rng=random.Random(3), strict=True)


class TestAddItem:
    def test_new_title_gets_metadata(self, ctx, metadata):
        item = ctx.add_item(1, True, "planned")

        assert item.title == "Show 1"
        assert item.total_units == 12
        assert ctx.bucket(True, Status.PLANNED) == [item]
        metadata.fetch_title_metadata.assert_called_once_with(1, True)

    def test_existing_title_is_not_refetched(self, ctx, metadata):
        ctx.add_item(1, True, Status.PLANNED)
        ctx.add_item(1, True, Status.IN_PROGRESS)
        assert metadata.fetch_title_metadata.call_count == 1

    def test_missing_metadata_files_unknown(self, sync):
        ctx = LibraryContext(sync, metadata=None)
        assert ctx.add_item(5, False, "Want to Read").title == "Unknown"

    def test_completing_sets_dates_and_progress(self, ctx, day):
        item = ctx.add_item(1, True, "completed", start_date=day(1), end_date=day(4))
        assert item.start_date == day(1)
        assert item.end_date == day(4)
        assert item.progress == 12

    def test_status_change_clears_rank_and_repairs_old_bucket(self, ctx):
        for media_id in (1, 2, 3):
            ctx.add_item(media_id, True, "completed")
        ctx.library.move_item(True, Status.COMPLETED, 0, 0)

        moved = ctx.add_item(2, True, "on_hold")

        assert moved.rank == 0
        assert [i.rank for i in ctx.bucket(True, "completed")] == [1, 2]

    def test_invalid_status(self, ctx):
        with pytest.raises(InvalidStatusError):
            ctx.add_item(1, True, "binging")

    def test_rewatch_intent_starts_and_completes(self, ctx, day):
        ctx.add_item(1, True, "completed")

        started = ctx.add_item(1, True, "in_progress", start_date=day(2), is_rewatch=True)
        assert started.rewatch_count == 1
        assert ctx.library.find_current_status(1, True) == Status.COMPLETED

        done = ctx.add_item(1, True, "completed", end_date=day(5), is_rewatch=True)
        assert done.rewatch_count == 1
        assert done.end_date == day(5)
        assert ctx.has_rewatches(1, True)

    def test_completed_rewatch_without_current_is_recorded_as_past(self, ctx, day):
        ctx.add_item(1, True, "completed")
        past = ctx.add_item(1, True, "completed", start_date=day(1), end_date=day(2), is_rewatch=True)
        assert past.rewatch_count == 1
        assert [r.rewatch_count for r in ctx.completed_rewatches(1, True)] == [1]

    def test_redating_a_completed_rewatch(self, ctx, day):
        ctx.add_item(1, True, "completed")
        ctx.add_item(1, True, "completed", end_date=day(2), is_rewatch=True)

        ctx.add_item(1, True, "completed", end_date=day(9), is_rewatch=True, rewatch_count=1)

        [only] = ctx.completed_rewatches(1, True)
        assert only.end_date == day(9)

    def test_rewatch_of_unknown_title(self, ctx):
        with pytest.raises(RewatchError):
            ctx.add_item(99, True, "in_progress", is_rewatch=True)

    def test_rewatch_cannot_be_planned(self, ctx):
        ctx.add_item(1, True, "completed")
        with pytest.raises(InvalidStatusError):
            ctx.add_item(1, True, "planned", is_rewatch=True)


class TestOtherOperations:
    def test_progress_and_rating(self, ctx):
        ctx.add_item(1, True, "in_progress")
        assert ctx.update_progress(1, True, 7).progress == 7
        assert ctx.update_rating(1, True, 8.5).score == 8.5

    def test_remove_repairs_ranks(self, ctx):
        for media_id in (1, 2, 3):
            ctx.add_item(media_id, True, "completed")
        ctx.library.move_item(True, Status.COMPLETED, 0, 0)

        assert ctx.remove_item(1, True)
        assert sorted(i.rank for i in ctx.bucket(True, "completed")) == [1, 2]
        assert ctx.remove_item(1, True) is False

    def test_open_item_detail_repairs_numbering(self, ctx):
        ctx.add_item(1, True, "completed")
        ctx.library.add_item(make_item(1, is_rewatch=True, rewatch_count=4))

        detail = ctx.open_item_detail(1, True)

        assert detail.renumbered == 1
        assert [r.rewatch_count for r in detail.completed_rewatches] == [1]
        assert ctx.open_item_detail(99, True) is None

    def test_tournament_surface(self, ctx):
        with pytest.raises(NotEnoughItemsError):
            ctx.start_tournament(RankingCategory(True))

        for media_id in (1, 2, 3):
            ctx.add_item(media_id, True, "completed")
        run = ctx.start_tournament(RankingCategory(True))
        ctx.record_choice(run.pairs[0].first.media_id)
        assert ctx.save_for_later()

        resumed = ctx.resume()
        assert resumed.cursor == 1
        while ctx.tournament.current_pair() is not None:
            ctx.skip_current_pair()
        assert sorted(i.rank for i in ctx.bucket(True, "completed")) == [1, 2, 3]

    def test_verify_storage(self, ctx):
        ctx.add_item(1, True, "completed")
        assert ctx.verify_storage().consistent


class TestBuildContext:
    def test_build_and_reload_from_disk(self, tmp_path):
        config = setup_config(data_dir=tmp_path)
        config.jikan.rate_limit_delay = 0

        first = build_context(config)
        first.metadata = None
        first.add_item(1, True, "completed")
        first.add_item(2, False, "planned")

        second = build_context(config)

        assert second.library.find_current_status(1, True) == Status.COMPLETED
        assert second.library.find_current_status(2, False) == Status.PLANNED
        assert config.storage.primary_path.exists()
        assert config.storage.backup_path.exists()
        assert second.verify_storage().consistent

    def test_backup_heals_lost_primary(self, tmp_path):
        config = setup_config(data_dir=tmp_path)
        first = build_context(config)
        first.metadata = None
        first.add_item(1, True, "completed")
        first.sync.primary.engine.dispose()
        config.storage.primary_path.unlink()

        second = build_context(config)

        assert second.library.find_item(1, True) is not None
        assert [i.media_id for i in second.sync.primary.all()] == [1]

    def test_corrupt_primary_is_rebuilt_from_backup(self, tmp_path):
        config = setup_config(data_dir=tmp_path)
        first = build_context(config)
        first.metadata = None
        first.add_item(1, True, "completed")
        first.add_item(2, False, "planned")
        first.sync.primary.engine.dispose()
        config.storage.primary_path.write_bytes(b"\x00garbage" * 512)

        second = build_context(config)

        assert second.library.find_current_status(1, True) == Status.COMPLETED
        assert second.library.find_current_status(2, False) == Status.PLANNED
        assert sorted(i.media_id for i in second.sync.primary.all()) == [1, 2]
        assert second.verify_storage().consistent
        assert list(tmp_path.glob(f"{config.storage.primary_path.name}.corrupt-*"))
