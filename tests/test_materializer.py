from __future__ import annotations

from datetime import datetime, timedelta

from taskcycle.domain.entities import RecurringTaskStats
from taskcycle.domain.rules import DailyRule, MonthlyRule, WeeklyRule
from taskcycle.services.cleanup import ExpirationCleaner
from taskcycle.services.materializer import InstanceMaterializer

from conftest import NOW


def _due_dates(store, template) -> list[datetime]:
    return [instance.due_date for instance in store.instances_of(template.id)]


def test_first_instance_is_next_occurrence_not_now(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1))

    created = materializer.materialize_for_user("user-1", 7)

    assert created == 7
    dates = _due_dates(store, template)
    assert dates[0] == datetime(2026, 3, 5, 10, 0)
    assert dates[-1] == datetime(2026, 3, 11, 10, 0)


def test_materializing_twice_creates_no_duplicates(store, materializer, add_template) -> None:
    template = add_template(WeeklyRule(interval=1, days_of_week=(1, 3, 5)))

    first = materializer.materialize_for_user("user-1", 30)
    snapshot = _due_dates(store, template)
    second = materializer.materialize_for_user("user-1", 30)

    assert first > 0
    assert second == 0
    assert _due_dates(store, template) == snapshot
    assert len({d.date() for d in snapshot}) == len(snapshot)


def test_monthly_rule_anchored_after_pinned_day_starts_next_month(store, add_template) -> None:
    anchor = datetime(2026, 3, 20, 9, 0)
    template = add_template(MonthlyRule(interval=1, day_of_month=15), due_date=anchor)
    materializer = InstanceMaterializer(store, clock=lambda: anchor)

    materializer.materialize_for_user("user-1", 60)

    assert _due_dates(store, template) == [datetime(2026, 4, 15, 9, 0), datetime(2026, 5, 15, 9, 0)]


def test_occurrence_limit_holds_across_calls_and_horizons(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1, occurrences=3))

    assert materializer.materialize_for_user("user-1", 30) == 3
    assert materializer.materialize_for_user("user-1", 365) == 0
    assert len(store.instances_of(template.id)) == 3


def test_occurrence_limit_survives_cleanup_of_overdue_instances(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1, occurrences=3))
    assert materializer.materialize_for_user("user-1", 30) == 3

    later = datetime(2026, 3, 20, 10, 0)
    assert ExpirationCleaner(store, clock=lambda: later).cleanup_expired_instances(7) == 3
    again = InstanceMaterializer(store, clock=lambda: later).materialize_for_user("user-1", 30)

    assert again == 0
    assert store.instances_of(template.id) == []
    assert store.template(template.id).occurrences_generated == 3


def test_occurrence_counter_only_grows_by_created_instances(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1, occurrences=5), occurrences_generated=2)

    assert materializer.materialize_for_user("user-1", 30) == 3
    assert store.template(template.id).occurrences_generated == 5


def test_walk_is_capped_for_templates_anchored_far_in_the_past(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1), due_date=NOW - timedelta(days=400))

    assert materializer.materialize_for_user("user-1", 30) == 0
    assert store.instances_of(template.id) == []


def test_weekly_rule_resumes_after_long_overdue_instance(store, materializer, add_template) -> None:
    template = add_template(WeeklyRule(interval=1, days_of_week=(1,)))
    store.create_task({
        "user_id": "user-1",
        "due_date": datetime(2025, 9, 1, 10, 0),
        "original_task_id": template.id,
    })

    created = materializer.materialize_for_user("user-1", 30)

    assert created == 4
    assert _due_dates(store, template)[1:] == [
        datetime(2026, 3, 9, 10, 0),
        datetime(2026, 3, 16, 10, 0),
        datetime(2026, 3, 23, 10, 0),
        datetime(2026, 3, 30, 10, 0),
    ]


def test_template_due_date_is_first_instance_even_off_rule(store, materializer, add_template) -> None:
    template = add_template(WeeklyRule(interval=1, days_of_week=(1,)), due_date=datetime(2026, 3, 11, 10, 0))

    materializer.materialize_for_user("user-1", 30)

    assert [d.day for d in _due_dates(store, template)] == [11, 16, 23, 30]



def test_end_date_tomorrow_yields_nothing_after_tomorrow(store, materializer, add_template) -> None:
    template = add_template('{"type": "daily", "interval": 1, "endDate": "2026-03-05"}')

    materializer.materialize_for_user("user-1", 30)

    assert _due_dates(store, template) == [datetime(2026, 3, 5, 10, 0)]


def test_resumes_after_newest_open_instance(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1))
    store.create_task({
        "user_id": "user-1",
        "title": template.title,
        "due_date": datetime(2026, 3, 8, 10, 0),
        "original_task_id": template.id,
    })

    created = materializer.materialize_for_user("user-1", 7)

    assert created == 3
    assert _due_dates(store, template) == [
        datetime(2026, 3, 8, 10, 0),
        datetime(2026, 3, 9, 10, 0),
        datetime(2026, 3, 10, 10, 0),
        datetime(2026, 3, 11, 10, 0),
    ]


def test_completed_instance_date_is_not_materialized_again(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1), due_date=NOW)
    done = store.create_task({
        "user_id": "user-1",
        "due_date": datetime(2026, 3, 5, 10, 0),
        "original_task_id": template.id,
    })
    store.complete_task(done.id)

    created = materializer.materialize_for_user("user-1", 7)

    assert created == 6
    assert [d.day for d in _due_dates(store, template)] == [5, 6, 7, 8, 9, 10, 11]


def test_instances_copy_template_fields_and_time_of_day(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1), due_time=datetime(2026, 1, 1, 8, 30), sort_order=4)

    materializer.materialize_for_user("user-1", 2)

    instance = store.instances_of(template.id)[0]
    assert instance.title == "Water plants"
    assert instance.description == "Balcony and kitchen"
    assert int(instance.priority) == 3
    assert instance.tags == "home"
    assert instance.sort_order == 4
    assert instance.is_recurring is False
    assert instance.recurring_rule is None
    assert instance.due_time == datetime(2026, 3, 5, 8, 30)


def test_bad_templates_are_skipped_without_stopping_the_batch(store, materializer, add_template) -> None:
    add_template("not json")
    add_template('{"type": "daily", "interval": 0}')
    broken = add_template(DailyRule(interval=1))
    healthy = add_template(DailyRule(interval=1))
    store.failing_templates.add(broken.id)

    created = materializer.materialize_for_user("user-1", 3)

    assert created == 3
    assert len(store.instances_of(healthy.id)) == 3
    assert store.instances_of(broken.id) == []


def test_materialize_all_survives_a_failing_user(store, materializer, add_template) -> None:
    add_template(DailyRule(interval=1), user_id="alice")
    add_template(DailyRule(interval=1), user_id="bob")
    add_template(DailyRule(interval=2), user_id="carol")
    store.failing_users.add("bob")

    assert materializer.materialize_all(4) == 4 + 2


def test_ensure_user_tasks_generated_swallows_store_failures(store, materializer, add_template) -> None:
    add_template(DailyRule(interval=1), user_id="bob")
    store.failing_users.add("bob")

    assert materializer.ensure_user_tasks_generated("bob") == 0


def test_stats_count_templates_and_instances(store, materializer, add_template) -> None:
    template = add_template(DailyRule(interval=1))
    for day in (1, 2, 6):
        store.create_task({
            "user_id": "user-1",
            "due_date": datetime(2026, 3, day, 10, 0),
            "original_task_id": template.id,
        })
    store.complete_task(store.tasks[2].id)

    stats = materializer.get_recurring_task_stats("user-1")

    assert stats == RecurringTaskStats(
        total_recurring=1,
        total_instances=3,
        upcoming_instances=1,
        overdue_instances=1,
    )


def test_stats_fall_back_to_zeros() -> None:
    class BrokenStore:
        def count_active_templates(self, user_id: str) -> int:
            raise RuntimeError("database is down")

    materializer = InstanceMaterializer(BrokenStore(), clock=lambda: NOW)

    assert materializer.get_recurring_task_stats("user-1") == RecurringTaskStats()
