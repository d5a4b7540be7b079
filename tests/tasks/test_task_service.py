from __future__ import annotations

from datetime import timedelta

import pytest

from hr_tasks.core.constants import ASSIGNEES_ADDED_REMARK, CREATED_REMARK
from hr_tasks.core.enums import ChangedByType, NotificationType, Priority, Status
from hr_tasks.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from hr_tasks.tasks.document import task_to_document
from hr_tasks.tasks.model import PerUserStatus, StatusHistoryEntry


def _create(service, now, *, direct=("u1", "u2"), groups=(), due=timedelta(hours=1), **kwargs):
    return service.create_task(
        "Prepare onboarding pack",
        now + due if due is not None else None,
        kwargs.pop("priority", "medium"),
        list(direct),
        list(groups),
        kwargs.pop("created_by", "mgr"),
        now=now,
        **kwargs,
    )


# ---- create ----


def test_create_task_starts_everyone_pending(service, tasks_repo, now):
    task = _create(service, now)

    assert set(task.status_by_user) == {"u1", "u2"}
    assert all(e.status == Status.PENDING for e in task.status_by_user.values())
    assert task.overall_status == Status.PENDING
    assert task.status_history == [
        StatusHistoryEntry(
            status=Status.PENDING,
            changed_by="mgr",
            changed_by_type=ChangedByType.USER,
            changed_at=now,
            remarks=CREATED_REMARK,
        )
    ]
    stored = tasks_repo.get(task.task_id)
    assert stored.version == 1
    assert stored.due_at == now + timedelta(hours=1)


def test_create_task_merges_group_members_without_duplicates(service, groups, now):
    groups.add("g1", members={"u2", "u3"})

    task = _create(service, now, direct=("u1", "u2", "u1"), groups=("g1",))

    assert task.direct_assignees == ("u1", "u2")
    assert task.assigned_groups == ("g1",)
    assert set(task.status_by_user) == {"u1", "u2", "u3"}


def test_create_task_notifies_assignees_but_not_creator(service, notifier, now):
    task = _create(service, now, direct=("mgr", "u1"))

    assert [n.user_id for n in notifier.sent] == ["u1"]
    assert notifier.sent[0].type == NotificationType.TASK_ASSIGNED
    assert notifier.sent[0].related_task_id == task.task_id


def test_create_task_survives_notifier_failure(service, notifier, tasks_repo, now):
    notifier.fail_all = True

    task = _create(service, now)

    assert tasks_repo.find_by_id(task.task_id) is not None


@pytest.mark.parametrize("title", ["", "   ", None])
def test_create_task_requires_title(service, now, title):
    with pytest.raises(ValidationError):
        service.create_task(title, now + timedelta(hours=1), "low", ["u1"], [], "mgr", now=now)


def test_create_task_rejects_past_due_date(service, now):
    with pytest.raises(ValidationError):
        _create(service, now, due=timedelta(minutes=-1))


def test_create_task_without_due_date_is_allowed(service, now):
    task = _create(service, now, due=None)
    assert task.due_at is None


def test_create_task_rejects_unknown_priority(service, now):
    with pytest.raises(ValidationError):
        _create(service, now, priority="urgent")


def test_create_task_parses_priority_case_insensitively(service, now):
    assert _create(service, now, priority=" HIGH ").priority == Priority.HIGH


def test_create_task_names_unknown_group(service, now):
    with pytest.raises(ValidationError, match="g-missing"):
        _create(service, now, groups=("g-missing",))


def test_create_task_rejects_group_owned_by_someone_else(service, groups, now):
    groups.add("g1", members={"u3"}, created_by="other-mgr")

    with pytest.raises(ValidationError, match="g1"):
        _create(service, now, groups=("g1",))


def test_create_task_rejects_inactive_group(service, groups, now):
    groups.add("g1", members={"u3"}, is_active=False)

    with pytest.raises(ValidationError, match="g1"):
        _create(service, now, groups=("g1",))


def test_employee_may_only_assign_themself(service, now):
    with pytest.raises(AuthorizationError):
        _create(service, now, direct=("emp", "u1"), created_by="emp", creator_role="employee")

    task = _create(service, now, direct=("emp",), created_by="emp", creator_role="employee")
    assert set(task.status_by_user) == {"emp"}


def test_privileged_roles_may_assign_others(service, now):
    for role in ("admin", "manager", "hr"):
        task = _create(service, now, creator_role=role)
        assert set(task.status_by_user) == {"u1", "u2"}


# ---- report status ----


def test_one_completed_one_pending_is_in_progress(service, now):
    task = _create(service, now)

    task = service.report_status(task.task_id, "u1", "completed", now=now + timedelta(minutes=5))

    assert task.status_by_user["u1"].status == Status.COMPLETED
    assert task.status_by_user["u2"].status == Status.PENDING
    assert task.overall_status == Status.IN_PROGRESS
    assert task.completion_date is None


def test_all_completed_sets_completion_date(service, now):
    task = _create(service, now)
    done_at = now + timedelta(minutes=10)

    service.report_status(task.task_id, "u1", "completed", now=now + timedelta(minutes=5))
    task = service.report_status(task.task_id, "u2", "completed", now=done_at)

    assert task.overall_status == Status.COMPLETED
    assert task.completion_date == done_at


def test_report_status_notifies_creator(service, notifier, now):
    task = _create(service, now)
    notifier.sent.clear()

    service.report_status(task.task_id, "u1", "in-progress", now=now)
    service.report_status(task.task_id, "u1", "completed", now=now)
    service.report_status(task.task_id, "u2", "completed", now=now)

    types = [n.type for n in notifier.to("mgr")]
    assert types == [
        NotificationType.STATUS_UPDATED,
        NotificationType.STATUS_UPDATED,
        NotificationType.TASK_COMPLETED,
    ]


def test_report_status_survives_notifier_failure(service, notifier, tasks_repo, now):
    task = _create(service, now)
    notifier.fail_all = True

    service.report_status(task.task_id, "u1", "completed", now=now)

    assert tasks_repo.get(task.task_id).status_by_user["u1"].status == Status.COMPLETED


def test_each_report_appends_exactly_one_history_record(service, tasks_repo, now):
    task = _create(service, now)
    before = list(tasks_repo.get(task.task_id).status_history)

    steps = [("u1", "in-progress"), ("u2", "onhold"), ("u1", "completed"), ("u2", "completed")]
    for user, status in steps:
        service.report_status(task.task_id, user, status, now=now)

    history = tasks_repo.get(task.task_id).status_history
    assert len(history) == len(before) + len(steps)
    assert history[: len(before)] == before
    assert [h.changed_by for h in history[len(before):]] == [u for u, _ in steps]


def test_history_only_grows_across_reports_and_overdue_checks(service, tasks_repo, now):
    task = _create(service, now)
    before = list(tasks_repo.get(task.task_id).status_history)

    def check(at):
        t = tasks_repo.find_by_id(task.task_id)
        changed = service.check_and_mark_overdue(t, at)
        if changed:
            tasks_repo.save(t)
        return changed

    service.report_status(task.task_id, "u1", "in-progress", now=now)
    assert check(now + timedelta(hours=2))
    service.report_status(task.task_id, "u1", "in-progress", now=now + timedelta(hours=3))
    assert check(now + timedelta(hours=4))
    assert not check(now + timedelta(hours=5))
    service.report_status(task.task_id, "u2", "completed", now=now + timedelta(hours=6))

    history = tasks_repo.get(task.task_id).status_history
    assert len(history) == len(before) + 5
    assert history[: len(before)] == before
    assert [h.changed_by_type for h in history[len(before):]] == [
        ChangedByType.USER,
        ChangedByType.SYSTEM,
        ChangedByType.USER,
        ChangedByType.SYSTEM,
        ChangedByType.USER,
    ]

    snapshot = list(history)
    service.report_status(task.task_id, "u1", "completed", now=now + timedelta(hours=7))
    grown = tasks_repo.get(task.task_id).status_history
    assert len(grown) == len(snapshot) + 1
    assert grown[: len(snapshot)] == snapshot


def test_non_assignee_is_rejected_and_nothing_changes(service, tasks_repo, notifier, now):
    task = _create(service, now)
    snapshot = task_to_document(tasks_repo.get(task.task_id))
    notifier.sent.clear()

    with pytest.raises(AuthorizationError) as exc:
        service.report_status(task.task_id, "intruder", "completed", now=now)

    assert "u1" not in str(exc.value) and "u2" not in str(exc.value)
    assert task_to_document(tasks_repo.get(task.task_id)) == snapshot
    assert tasks_repo.get(task.task_id).version == 1
    assert notifier.sent == []


def test_non_assignee_is_rejected_even_with_invalid_status(service, now):
    task = _create(service, now)

    with pytest.raises(AuthorizationError):
        service.report_status(task.task_id, "intruder", "no-such-status", now=now)


def test_group_member_can_report(service, groups, now):
    groups.add("g1", members={"u3"})
    task = _create(service, now, groups=("g1",))

    task = service.report_status(task.task_id, "u3", "in-progress", now=now)

    assert task.status_by_user["u3"].status == Status.IN_PROGRESS


def test_group_membership_is_read_live(service, groups, now):
    groups.add("g1", members={"u2"})
    task = _create(service, now, direct=("u1",), groups=("g1",))
    service.report_status(task.task_id, "u1", "completed", now=now)
    task = service.report_status(task.task_id, "u2", "completed", now=now)
    assert task.overall_status == Status.COMPLETED

    groups.add("g1", members={"u2", "u3"})
    task = service.report_status(task.task_id, "u3", "in-progress", now=now)

    assert task.overall_status == Status.IN_PROGRESS
    assert task.completion_date is None


def test_removed_group_member_loses_access(service, groups, now):
    groups.add("g1", members={"u3"})
    task = _create(service, now, groups=("g1",))

    groups.add("g1", members=set())

    with pytest.raises(AuthorizationError):
        service.report_status(task.task_id, "u3", "completed", now=now)


def test_deleted_group_contributes_no_assignees(service, groups, now):
    groups.add("g1", members={"u3"})
    task = _create(service, now, direct=("u1",), groups=("g1",))

    groups.add("g1", members={"u3"}, is_active=False)
    task = service.report_status(task.task_id, "u1", "completed", now=now)

    assert task.overall_status == Status.COMPLETED


def test_report_status_rejects_unknown_status(service, now):
    task = _create(service, now)

    with pytest.raises(ValidationError):
        service.report_status(task.task_id, "u1", "finished", now=now)


def test_report_status_on_missing_or_inactive_task(service, now):
    with pytest.raises(NotFoundError):
        service.report_status("nope", "u1", "completed", now=now)

    task = _create(service, now)
    service.deactivate_task(task.task_id, editor_id="mgr", editor_role="manager", now=now)

    with pytest.raises(NotFoundError):
        service.report_status(task.task_id, "u1", "completed", now=now)


def test_remarks_are_kept_until_replaced(service, now):
    task = _create(service, now)

    service.report_status(task.task_id, "u1", "onhold", "waiting on IT", now=now)
    task = service.report_status(task.task_id, "u1", "in-progress", now=now + timedelta(minutes=1))

    assert task.status_by_user["u1"] == PerUserStatus(
        status=Status.IN_PROGRESS,
        updated_at=now + timedelta(minutes=1),
        remarks="waiting on IT",
    )
    assert task.status_history[-1].remarks is None


def test_reopen_after_completion_is_allowed(service, now):
    task = _create(service, now)
    service.report_status(task.task_id, "u1", "completed", now=now)
    service.report_status(task.task_id, "u2", "completed", now=now)

    task = service.report_status(task.task_id, "u2", "reopen", "numbers were wrong", now=now)

    assert task.status_by_user["u2"].status == Status.REOPEN
    assert task.overall_status == Status.IN_PROGRESS
    assert task.completion_date is None


def test_report_status_retries_after_concurrent_write(service, tasks_repo, now):
    task = _create(service, now)

    def other_writer(stored):
        stored.status_by_user["u2"] = PerUserStatus(status=Status.IN_PROGRESS, updated_at=now)
        stored.append_history(
            status=Status.IN_PROGRESS,
            changed_by="u2",
            changed_by_type=ChangedByType.USER,
            changed_at=now,
        )

    tasks_repo.concurrent_writes.append(other_writer)

    task = service.report_status(task.task_id, "u1", "completed", now=now)

    stored = tasks_repo.get(task.task_id)
    assert stored.status_by_user["u1"].status == Status.COMPLETED
    assert stored.status_by_user["u2"].status == Status.IN_PROGRESS
    assert [h.changed_by for h in stored.status_history] == ["mgr", "u2", "u1"]
    assert stored.version == 3


def test_report_status_gives_up_after_bounded_retries(service, tasks_repo, now):
    task = _create(service, now)
    tasks_repo.concurrent_writes.extend([lambda stored: None, lambda stored: None])

    with pytest.raises(ConflictError):
        service.report_status(task.task_id, "u1", "completed", now=now)

    assert tasks_repo.get(task.task_id).status_by_user["u1"].status == Status.PENDING


def test_leaving_overdue_ends_the_episode(service, tasks_repo, now):
    task = _create(service, now)
    late = now + timedelta(hours=2)
    marked = tasks_repo.find_by_id(task.task_id)
    assert service.check_and_mark_overdue(marked, late)
    tasks_repo.save(marked)

    task = service.report_status(task.task_id, "u1", "in-progress", now=late)

    assert task.marked_overdue_at is None
    assert task.overdue_reason is None
    assert task.overdue_notified is False
    assert task.overall_status == Status.IN_PROGRESS


def test_reporting_overdue_again_keeps_the_episode(service, tasks_repo, now):
    task = _create(service, now)
    late = now + timedelta(hours=2)
    marked = tasks_repo.find_by_id(task.task_id)
    service.check_and_mark_overdue(marked, late)
    tasks_repo.save(marked)

    task = service.report_status(task.task_id, "u1", "overdue", "still blocked", now=late)

    assert task.marked_overdue_at == late
    assert task.overall_status == Status.OVERDUE


# ---- metadata edit ----


def test_update_task_changes_metadata_only(service, tasks_repo, now):
    task = _create(service, now)
    history_len = len(task.status_history)

    task = service.update_task(
        task.task_id,
        editor_id="mgr",
        editor_role="hr",
        title="Prepare onboarding pack v2",
        priority="high",
        due_at=now + timedelta(days=2),
        now=now,
    )

    assert task.title == "Prepare onboarding pack v2"
    assert task.priority == Priority.HIGH
    assert task.due_at == now + timedelta(days=2)
    assert len(task.status_history) == history_len
    assert tasks_repo.get(task.task_id).title == "Prepare onboarding pack v2"


def test_update_task_can_clear_due_date(service, now):
    task = _create(service, now)

    task = service.update_task(task.task_id, editor_id="mgr", editor_role="admin", clear_due_at=True, now=now)

    assert task.due_at is None


def test_update_task_requires_privileged_role(service, now):
    task = _create(service, now)

    with pytest.raises(AuthorizationError):
        service.update_task(task.task_id, editor_id="u1", editor_role="employee", title="mine now")


def test_update_task_validates_like_create(service, now):
    task = _create(service, now)

    with pytest.raises(ValidationError):
        service.update_task(task.task_id, editor_id="mgr", editor_role="manager", title="  ", now=now)
    with pytest.raises(ValidationError):
        service.update_task(
            task.task_id, editor_id="mgr", editor_role="manager", due_at=now - timedelta(hours=1), now=now
        )


# ---- add assignees ----


def test_add_assignees_creates_pending_entries(service, groups, notifier, now):
    groups.add("g2", members={"u4"})
    task = _create(service, now)
    service.report_status(task.task_id, "u1", "completed", now=now)
    service.report_status(task.task_id, "u2", "completed", now=now)
    notifier.sent.clear()

    task = service.add_assignees(
        task.task_id, editor_id="mgr", editor_role="manager", user_ids=["u3", "u1"], group_ids=["g2"], now=now
    )

    assert task.direct_assignees == ("u1", "u2", "u3")
    assert task.assigned_groups == ("g2",)
    assert task.status_by_user["u3"].status == Status.PENDING
    assert task.status_by_user["u4"].status == Status.PENDING
    assert task.overall_status == Status.IN_PROGRESS
    assert task.completion_date is None
    assert task.status_history[-1].remarks == ASSIGNEES_ADDED_REMARK
    assert task.status_history[-1].status == Status.IN_PROGRESS
    assert sorted(n.user_id for n in notifier.sent) == ["u3", "u4"]


def test_add_assignees_requires_privileged_role(service, now):
    task = _create(service, now)

    with pytest.raises(AuthorizationError):
        service.add_assignees(task.task_id, editor_id="u1", editor_role="employee", user_ids=["u9"])


def test_add_assignees_needs_something_to_add(service, now):
    task = _create(service, now)

    with pytest.raises(ValidationError):
        service.add_assignees(task.task_id, editor_id="mgr", editor_role="manager")


def test_add_assignees_validates_groups(service, groups, now):
    groups.add("g9", members={"u9"}, created_by="someone-else")
    task = _create(service, now)

    with pytest.raises(ValidationError, match="g9"):
        service.add_assignees(task.task_id, editor_id="mgr", editor_role="manager", group_ids=["g9"])


# ---- deactivate ----


def test_deactivate_task_hides_it_and_is_idempotent(service, tasks_repo, now):
    task = _create(service, now)

    service.deactivate_task(task.task_id, editor_id="mgr", editor_role="manager", now=now)
    version = tasks_repo.get(task.task_id).version
    again = service.deactivate_task(task.task_id, editor_id="mgr", editor_role="manager", now=now)

    assert again.is_active is False
    assert tasks_repo.get(task.task_id).version == version
    with pytest.raises(NotFoundError):
        service.get_task(task.task_id)


def test_deactivate_requires_privileged_role_and_existing_task(service, now):
    task = _create(service, now)

    with pytest.raises(AuthorizationError):
        service.deactivate_task(task.task_id, editor_id="u1", editor_role="employee")
    with pytest.raises(NotFoundError):
        service.deactivate_task("missing", editor_id="mgr", editor_role="admin")


# ---- queries ----


def test_list_tasks_for_user_includes_group_tasks(service, groups, now):
    groups.add("g1", members={"u3"})
    direct = _create(service, now, direct=("u3",))
    via_group = _create(service, now, direct=(), groups=("g1",))
    _create(service, now, direct=("u1",))

    ids = {t.task_id for t in service.list_tasks_for_user("u3")}

    assert ids == {direct.task_id, via_group.task_id}


def test_get_status_counts_uses_own_status(service, now):
    a = _create(service, now)
    b = _create(service, now)
    _create(service, now)
    service.report_status(a.task_id, "u1", "completed", now=now)
    service.report_status(b.task_id, "u1", "in-progress", now=now)
    service.report_status(b.task_id, "u2", "completed", now=now)

    counts = service.get_status_counts("u1")

    assert set(counts) == {s.value for s in Status}
    assert counts["completed"] == 1
    assert counts["in-progress"] == 1
    assert counts["pending"] == 1
    assert counts["overdue"] == 0


def test_list_overdue_tasks_for_user(service, tasks_repo, now):
    marked = _create(service, now)
    late_open = _create(service, now)
    done = _create(service, now)
    service.report_status(done.task_id, "u1", "completed", now=now)
    later = now + timedelta(hours=3)

    t = tasks_repo.find_by_id(marked.task_id)
    service.check_and_mark_overdue(t, now + timedelta(hours=2))
    tasks_repo.save(t)

    ids = {t.task_id for t in service.list_overdue_tasks("u1", now=later)}

    assert ids == {marked.task_id, late_open.task_id}


def test_list_tasks_created_by_skips_other_creators_and_deleted_tasks(service, now):
    mine = _create(service, now)
    removed = _create(service, now)
    _create(service, now, created_by="hr1")
    service.deactivate_task(removed.task_id, editor_id="mgr", editor_role="manager", now=now)

    ids = [t.task_id for t in service.list_tasks_created_by("mgr")]

    assert ids == [mine.task_id]


def test_list_recurring_tasks_orders_by_next_occurrence(service, now):
    weekly = _create(service, now, repeat_pattern="weekly")
    daily = _create(service, now, repeat_pattern="daily")
    _create(service, now)
    _create(service, now, repeat_pattern="daily", created_by="hr1")

    ids = [t.task_id for t in service.list_recurring_tasks("mgr")]

    assert ids == [daily.task_id, weekly.task_id]


def test_list_self_assigned_tasks_needs_privileged_viewer(service, now):
    own = _create(service, now, direct=("emp",), created_by="emp", creator_role="employee")
    _create(service, now, direct=("u1",), created_by="emp")
    _create(service, now, direct=("emp",))

    ids = [t.task_id for t in service.list_self_assigned_tasks("emp", viewer_role="hr")]

    assert ids == [own.task_id]
    with pytest.raises(AuthorizationError):
        service.list_self_assigned_tasks("emp", viewer_role="employee")


def test_created_by_queries_reject_blank_user(service):
    with pytest.raises(ValidationError):
        service.list_tasks_created_by("  ")
    with pytest.raises(ValidationError):
        service.list_recurring_tasks("")
