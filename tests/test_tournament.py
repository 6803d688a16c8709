import random

import pytest

from power_scale.power_scale.models import RankingCategory, Status
from power_scale.power_scale.session import MemorySessionStore, SessionStore
from power_scale.power_scale.tournament import (
    TournamentEngine,
    TournamentState,
    first_appearance_order,
    generate_pairs,
)
from power_scale.power_scale.logging import NotEnoughItemsError

from conftest import make_item

ANIME = RankingCategory(True)


def fill(library, count, status=Status.COMPLETED):
    for media_id in range(1, count + 1):
        library.add_item(make_item(media_id, status=status))


@pytest.fixture
def engine(library):
    return TournamentEngine(library, MemorySessionStore(), rng=random.Random(11))


def ranks(library, status=Status.COMPLETED):
    return {i.media_id: i.rank for i in library.bucket(True, status)}


class TestGeneratePairs:
    @pytest.mark.parametrize("count", [2, 3, 4, 5, 7, 8, 13, 32])
    def test_every_item_takes_part(self, count):
        items = [make_item(i) for i in range(count)]
        pairs = generate_pairs(items, random.Random(count))

        seen = {media_id for pair in pairs for media_id in pair.ids}
        assert seen == set(range(count))
        assert all(pair.first.media_id != pair.second.media_id for pair in pairs)

    def test_two_items_make_one_pair(self):
        assert len(generate_pairs([make_item(1), make_item(2)], random.Random(0))) == 1

    def test_schedule_size_for_power_of_two(self):
        # Rounds of 4 singleton merges, 2 merges of runs of 2, 1 merge of runs of 4
        pairs = generate_pairs([make_item(i) for i in range(8)], random.Random(1))
        assert len(pairs) == 4 + 2 * 2 + 4

    def test_same_seed_same_schedule(self):
        items = [make_item(i) for i in range(6)]
        first = [p.ids for p in generate_pairs(items, random.Random(5))]
        second = [p.ids for p in generate_pairs(items, random.Random(5))]
        assert first == second

    def test_fewer_than_two_items(self):
        assert generate_pairs([make_item(1)], random.Random(0)) == []
        assert generate_pairs([], random.Random(0)) == []

    def test_first_appearance_order(self):
        pairs = generate_pairs([make_item(i) for i in range(5)], random.Random(2))
        order = first_appearance_order(pairs)
        assert sorted(order) == list(range(5))
        assert order[:2] == list(pairs[0].ids)


class TestRun:
    def test_not_enough_items(self, library, engine):
        library.add_item(make_item(1))
        with pytest.raises(NotEnoughItemsError):
            engine.start(ANIME)
        assert engine.state == TournamentState.IDLE

    @pytest.mark.parametrize("count", [2, 3, 6, 9])
    def test_terminates_after_schedule_length(self, library, engine, count):
        fill(library, count)
        run = engine.start(ANIME)
        total = run.total

        recorded = 0
        result = None
        while engine.current_pair() is not None:
            pair = engine.current_pair()
            if recorded % 3 == 0:
                result = engine.skip_current_pair()
            else:
                result = engine.record_win(pair.first.media_id)
            recorded += 1

        assert recorded == total
        assert engine.state == TournamentState.IDLE
        assert engine.last_ranking == result
        assert sorted(i.rank for i in result) == list(range(1, count + 1))

    def test_new_run_can_start_right_after_commit(self, library, engine):
        fill(library, 2)
        engine.start(ANIME)
        engine.record_win(engine.current_pair().first.media_id)

        assert engine.state == TournamentState.IDLE
        assert engine.current_pair() is None
        assert engine.save_for_later() is False

        engine.start(ANIME)
        assert engine.state == TournamentState.ACTIVE

    def test_rank_follows_wins(self, library, engine):
        fill(library, 6)
        engine.start(ANIME)

        while engine.current_pair() is not None:
            pair = engine.current_pair()
            # Lower id always wins
            engine.record_win(min(pair.ids))

        wins = {}
        for pair in engine.run.pairs:
            winner = min(pair.ids)
            wins[winner] = wins.get(winner, 0) + 1
        final = ranks(library)
        for a in final:
            for b in final:
                if wins.get(a, 0) > wins.get(b, 0):
                    assert final[a] < final[b]

    def test_ties_follow_first_appearance(self, library, engine):
        fill(library, 3)
        run = engine.start(ANIME)
        order = first_appearance_order(run.pairs)

        # A beats B, C beats A, B beats C: one win each
        engine.record_win(run.pairs[0].first.media_id)
        engine.record_win(run.pairs[1].second.media_id)
        engine.record_win(run.pairs[2].first.media_id)

        assert ranks(library) == {order[0]: 1, order[1]: 2, order[2]: 3}

    def test_winner_must_be_in_pair(self, library, engine):
        fill(library, 3)
        engine.start(ANIME)
        outsider = ({1, 2, 3} - set(engine.current_pair().ids)).pop()
        with pytest.raises(ValueError):
            engine.record_win(outsider)

    def test_record_without_run(self, engine):
        with pytest.raises(ValueError):
            engine.record_win(1)

    def test_progress(self, library, engine):
        fill(library, 4)
        run = engine.start(ANIME)
        assert engine.progress == (0, run.total)
        engine.skip_current_pair()
        assert engine.progress == (1, run.total)

    def test_other_bucket(self, library, engine):
        fill(library, 3, status=Status.PLANNED)
        library.add_item(make_item(10))
        run = engine.start(RankingCategory(True, Status.PLANNED))
        assert sorted(c.media_id for c in run.candidates) == [1, 2, 3]

    def test_rewatches_are_not_candidates(self, library, engine):
        fill(library, 2)
        library.add_item(make_item(1, is_rewatch=True, rewatch_count=1))
        run = engine.start(ANIME)
        assert all(not c.is_rewatch for c in run.candidates)
        assert len(run.candidates) == 2


class TestSaveAndResume:
    def test_resume_restores_exact_state(self, library):
        store = MemorySessionStore()
        fill(library, 5)
        engine = TournamentEngine(library, store, rng=random.Random(4))
        run = engine.start(ANIME)
        schedule = [p.ids for p in run.pairs]
        for _ in range(3):
            engine.record_win(engine.current_pair().second.media_id)
        tally = dict(run.win_counts)

        assert engine.save_for_later()
        assert engine.state == TournamentState.IDLE
        assert engine.current_pair() is None

        fresh = TournamentEngine(library, store, rng=random.Random(99))
        resumed = fresh.resume()

        assert [p.ids for p in resumed.pairs] == schedule
        assert resumed.cursor == 3
        assert resumed.win_counts == tally
        assert fresh.current_pair().ids == schedule[3]

    def test_resume_without_session(self, engine):
        assert engine.resume() is None
        assert not engine.has_saved_session()

    def test_autosave_after_each_pair(self, library):
        store = MemorySessionStore()
        fill(library, 4)
        engine = TournamentEngine(library, store, rng=random.Random(1), autosave=True)
        engine.start(ANIME)
        engine.skip_current_pair()

        assert store.load().cursor == 1

    def test_commit_clears_session(self, library, engine):
        fill(library, 2)
        engine.start(ANIME)
        engine.skip_current_pair()
        assert not engine.has_saved_session()

    def test_resume_drops_pairs_of_removed_items(self, library):
        store = MemorySessionStore()
        fill(library, 6)
        engine = TournamentEngine(library, store, rng=random.Random(8))
        run = engine.start(ANIME)
        while engine.progress[0] < 4:
            engine.skip_current_pair()
        engine.save_for_later()

        gone = run.pairs[0].first
        library.remove_item(library.find_item(gone.media_id, True))

        resumed = TournamentEngine(library, store).resume()

        assert all(not p.contains(gone.media_id) for p in resumed.pairs)
        passed = sum(1 for p in run.pairs[:4] if not p.contains(gone.media_id))
        assert resumed.cursor == passed
        assert gone.media_id not in resumed.win_counts

    def test_discard(self, library, engine):
        fill(library, 3)
        engine.start(ANIME)
        engine.save_for_later()

        assert engine.discard_saved_session()
        assert engine.resume() is None

    def test_file_session_store(self, library, tmp_path):
        store = SessionStore(tmp_path / "session.json")
        fill(library, 3)
        engine = TournamentEngine(library, store, rng=random.Random(2))
        engine.start(ANIME)
        engine.skip_current_pair()
        engine.save_for_later()

        resumed = TournamentEngine(library, SessionStore(tmp_path / "session.json")).resume()
        assert resumed.cursor == 1
        assert resumed.category == ANIME

    def test_corrupt_session_file(self, library, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("garbage", encoding="utf-8")
        assert TournamentEngine(library, SessionStore(path)).resume() is None
