"""Tests for the SQLModel habit store: atomic mutations, versions and events."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

import pytest
from sqlmodel import select

from active.errors import Conflict, InvalidInput, NotFound
from active.infra.events import ChangeKind
from active.infra.repositories import SQLModelHabitRepository
from active.models import Challenge, Day, Habit, HabitColor, HabitReminder
from active.services import habits as habit_rules
from tests.conftest import FRIDAY, MONDAY, WEDNESDAY


def row_counts(session_factory):
    with session_factory() as session:
        return {
            "habits": len(session.exec(select(Habit)).all()),
            "challenges": len(session.exec(select(Challenge)).all()),
            "days": len(session.exec(select(Day)).all()),
            "reminders": len(session.exec(select(HabitReminder)).all()),
        }


class TestCreateAndRead:
    def test_create_persists_whole_aggregate(self, habit_factory, session_factory):
        habit = habit_factory(fire_times=[time(9, 0)])

        assert habit.id is not None
        assert habit.version == 1
        assert habit.color is HabitColor.BLUE
        assert [d.scheduled_on for d in habit.challenges[0].days] == [MONDAY, WEDNESDAY, FRIDAY]
        assert row_counts(session_factory) == {"habits": 1, "challenges": 1, "days": 3, "reminders": 1}

    def test_get_by_id_is_scoped_to_user(self, habit_factory, habit_repo, user, other_user):
        habit = habit_factory()

        assert habit_repo.get_by_id(habit.id, user_id=user.id).name == "Read"
        assert habit_repo.get_by_id(habit.id, user_id=other_user.id) is None
        with pytest.raises(NotFound):
            habit_repo.require(habit.id, user_id=other_user.id)

    def test_create_for_missing_user_is_not_found(self, habit_repo):
        draft = habit_rules.create("Read", HabitColor.BLUE, [MONDAY])

        with pytest.raises(NotFound):
            habit_repo.create(draft, user_id=4242)

    def test_list_page_orders_newest_first(self, habit_factory, habit_repo, user):
        base = datetime(2026, 10, 1, tzinfo=timezone.utc)
        for offset, name in enumerate(["first", "second", "third"]):
            habit_factory(name=name, created_at=base + timedelta(days=offset))

        page = habit_repo.list_page(user_id=user.id, offset=0, limit=2)
        rest = habit_repo.list_page(user_id=user.id, offset=2, limit=2)

        assert [h.name for h in page] == ["third", "second"]
        assert [h.name for h in rest] == ["first"]
        assert habit_repo.count(user_id=user.id) == 3

    def test_list_page_continues_after_cursor(self, habit_factory, habit_repo, user):
        base = datetime(2026, 10, 1, tzinfo=timezone.utc)
        for offset, name in enumerate(["first", "second", "third"]):
            habit_factory(name=name, created_at=base + timedelta(days=offset))

        newest = habit_repo.list_page(user_id=user.id, limit=1)[0]
        rest = habit_repo.list_page(user_id=user.id, limit=5, after=(newest.created_at, newest.id))

        assert newest.name == "third"
        assert [h.name for h in rest] == ["second", "first"]

    def test_cursor_breaks_created_at_ties_by_id(self, habit_factory, habit_repo, user):
        same_moment = datetime(2026, 10, 1, tzinfo=timezone.utc)
        ids = [habit_factory(name=f"habit {n}", created_at=same_moment).id for n in range(3)]

        batches = list(habit_repo.iter_batches(user_id=user.id, batch_size=1))

        assert [b[0].id for b in batches] == list(reversed(ids))

    def test_iter_batches_covers_every_habit(self, habit_factory, habit_repo, user):
        for n in range(5):
            habit_factory(name=f"habit {n}")

        batches = list(habit_repo.iter_batches(user_id=user.id, batch_size=2))

        assert [len(b) for b in batches] == [2, 2, 1]

    def test_loaded_challenges_are_newest_first(self, habit_factory, habit_repo, user):
        habit = habit_factory(days=[MONDAY])
        habit_repo.add_challenge(habit.id, [FRIDAY], user_id=user.id)

        loaded = habit_repo.require(habit.id, user_id=user.id)

        assert [c.start_date for c in loaded.challenges] == [FRIDAY, MONDAY]


class TestMutations:
    def test_edit_bumps_version_and_publishes(self, habit_factory, habit_repo, user, feed):
        habit = habit_factory()
        events = []
        feed.subscribe(events.append)

        edited = habit_repo.edit(habit.id, user_id=user.id, today=MONDAY, name="Read daily")

        assert edited.name == "Read daily"
        assert edited.version == 2
        assert [(e.kind, e.habit_id) for e in events] == [(ChangeKind.UPDATED, habit.id)]

    def test_edit_regenerates_days(self, habit_factory, habit_repo, user, session_factory):
        habit = habit_factory()
        tuesday = MONDAY + timedelta(days=1)

        edited = habit_repo.edit(habit.id, user_id=user.id, today=MONDAY, days=[MONDAY, tuesday])

        assert [d.scheduled_on for d in edited.challenges[0].days] == [MONDAY, tuesday]
        assert row_counts(session_factory)["days"] == 2

    def test_failed_edit_commits_nothing(self, habit_factory, habit_repo, user, feed):
        habit = habit_factory(days=[MONDAY, WEDNESDAY])
        habit_repo.add_challenge(habit.id, [FRIDAY], user_id=user.id)
        events = []
        feed.subscribe(events.append)

        with pytest.raises(InvalidInput):
            habit_repo.edit(habit.id, user_id=user.id, today=MONDAY, name="Renamed", days=[MONDAY, FRIDAY])

        stored = habit_repo.require(habit.id, user_id=user.id)
        assert stored.name == "Read"
        assert stored.version == 2
        assert events == []

    def test_stale_expected_version_is_a_conflict(self, habit_factory, habit_repo, user):
        habit = habit_factory()
        habit_repo.edit(habit.id, user_id=user.id, today=MONDAY, name="Newer", expected_version=1)

        with pytest.raises(Conflict):
            habit_repo.edit(habit.id, user_id=user.id, today=MONDAY, name="Older", expected_version=1)

        assert habit_repo.require(habit.id, user_id=user.id).name == "Newer"

    def test_concurrent_writer_between_read_and_write_is_a_conflict(
        self, habit_factory, session_factory, user
    ):
        habit = habit_factory()
        interloper = SQLModelHabitRepository(session_factory)

        class RacingRepository(SQLModelHabitRepository):
            def _check_version(self, loaded, expected_version):
                super()._check_version(loaded, expected_version)
                # Another writer commits after our read but before our write
                interloper.edit(loaded.id, user_id=user.id, today=MONDAY, name="Interloper")

        racer = RacingRepository(session_factory)

        with pytest.raises(Conflict):
            racer.edit(habit.id, user_id=user.id, today=MONDAY, name="Racer")

        stored = interloper.require(habit.id, user_id=user.id)
        assert stored.name == "Interloper"
        assert stored.version == 2

    def test_mark_executed_is_idempotent(self, habit_factory, habit_repo, user, feed):
        habit = habit_factory()
        events = []
        feed.subscribe(events.append)
        first = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)

        day = habit_repo.mark_executed(habit.id, MONDAY, user_id=user.id, now=first)
        again = habit_repo.mark_executed(habit.id, MONDAY, user_id=user.id, now=first + timedelta(hours=5))

        assert day.executed and again.executed
        assert again.executed_at.replace(tzinfo=None) == first.replace(tzinfo=None)
        assert len(events) == 1
        assert habit_repo.require(habit.id, user_id=user.id).version == 2

    def test_mark_executed_unscheduled_day_is_not_found(self, habit_factory, habit_repo, user):
        habit = habit_factory()

        with pytest.raises(NotFound):
            habit_repo.mark_executed(habit.id, MONDAY + timedelta(days=1), user_id=user.id)

    def test_delete_challenge_with_executed_day_is_a_conflict(self, habit_factory, habit_repo, user):
        habit = habit_factory()
        habit_repo.mark_executed(habit.id, MONDAY, user_id=user.id)

        with pytest.raises(Conflict):
            habit_repo.delete_challenge(habit.id, habit.challenges[0].id, user_id=user.id)

        assert len(habit_repo.require(habit.id, user_id=user.id).challenges) == 1

    def test_delete_challenge_without_executed_days(self, habit_factory, habit_repo, user, session_factory):
        habit = habit_factory(days=[MONDAY])
        with_future = habit_repo.add_challenge(habit.id, [FRIDAY], user_id=user.id)
        future = with_future.challenges[0]

        remaining = habit_repo.delete_challenge(habit.id, future.id, user_id=user.id)

        assert [c.start_date for c in remaining.challenges] == [MONDAY]
        assert row_counts(session_factory)["days"] == 1

    def test_delete_unknown_challenge_is_not_found(self, habit_factory, habit_repo, user):
        habit = habit_factory()

        with pytest.raises(NotFound):
            habit_repo.delete_challenge(habit.id, 999, user_id=user.id)

    def test_set_reminders_replaces_rows(self, habit_factory, habit_repo, user, session_factory):
        habit = habit_factory(fire_times=[time(9, 0), time(21, 0)])

        updated = habit_repo.set_reminders(habit.id, [time(9, 0), time(12, 30)], user_id=user.id)

        assert habit_rules.fire_times(updated) == [time(9, 0), time(12, 30)]
        assert row_counts(session_factory)["reminders"] == 2

    def test_delete_removes_everything(self, habit_factory, habit_repo, user, session_factory, feed):
        habit = habit_factory(fire_times=[time(9, 0)])
        habit_repo.mark_executed(habit.id, MONDAY, user_id=user.id)
        events = []
        feed.subscribe(events.append)

        habit_repo.delete(habit.id, user_id=user.id)

        assert row_counts(session_factory) == {"habits": 0, "challenges": 0, "days": 0, "reminders": 0}
        assert [e.kind for e in events] == [ChangeKind.DELETED]

    def test_delete_missing_habit_is_not_found(self, habit_repo, user):
        with pytest.raises(NotFound):
            habit_repo.delete(12345, user_id=user.id)

    def test_delete_with_stale_version_is_a_conflict(self, habit_factory, habit_repo, user):
        habit = habit_factory()
        habit_repo.mark_executed(habit.id, MONDAY, user_id=user.id)

        with pytest.raises(Conflict):
            habit_repo.delete(habit.id, user_id=user.id, expected_version=1)

        assert habit_repo.get_by_id(habit.id, user_id=user.id) is not None
