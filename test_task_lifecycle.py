import pytest

from app.exceptions import NotFoundError, ValidationError
from app.models import ActivityType, FeatureStatus, NotificationType, TaskStatus
from app.schemas import (
    AssignUser, ChangeStatus, ClearFeature, EditDetails, SetFeature, TaskCreate,
)


def move(workflow, project_id, task_id, status, actor):
    return workflow.tasks.transition_task(project_id, task_id, [ChangeStatus(status=status)], actor)


class TestCreateTask:
    def test_new_task_starts_in_todo(self, workflow, factory, actor, project_id):
        feature_id = factory.feature(project_id, module_id=None)
        task = workflow.tasks.create_task(project_id, TaskCreate(title="Build cart", feature_id=feature_id), actor)
        assert task.status == TaskStatus.TODO
        assert task.dependencies == [] and task.time_logs == [] and task.links == []
        assert task.comments_count == 0
        assert not task.has_been_reproved

        activity = workflow.activity_log.list_for_project(project_id)
        assert [entry.type for entry in activity] == [ActivityType.TASK_CREATED]

    def test_assignee_other_than_actor_is_notified(self, workflow, factory, actor, project_id):
        ben = factory.user("Ben")
        workflow.tasks.create_task(project_id, TaskCreate(title="Build cart", assignee=ben), actor)
        notifications = workflow.notifier.list_for_user(ben.uid)
        assert [n.notification_type for n in notifications] == [NotificationType.TASK_ASSIGNED]

    def test_self_assignment_is_not_notified(self, workflow, actor, project_id):
        workflow.tasks.create_task(project_id, TaskCreate(title="Mine", assignee=actor), actor)
        assert workflow.notifier.list_for_user(actor.uid) == []

    def test_unknown_project(self, workflow, actor):
        with pytest.raises(NotFoundError):
            workflow.tasks.create_task("missing", TaskCreate(title="Orphan"), actor)


class TestFeatureGate:
    @pytest.mark.parametrize("status", ["in_testing", "approved", "done"])
    def test_rejected_move_leaves_task_unchanged(self, workflow, store, factory, actor, project_id, status):
        task_id = factory.task(project_id, status=TaskStatus.READY_FOR_QA)
        epoch = store.epoch
        with pytest.raises(ValidationError) as exc_info:
            move(workflow, project_id, task_id, status, actor)
        assert exc_info.value.reason == "feature_required"
        assert store.read_task(task_id).status == TaskStatus.READY_FOR_QA
        assert store.epoch == epoch

    def test_feature_given_in_the_same_transition(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id)
        task_id = factory.task(project_id, status=TaskStatus.READY_FOR_QA)
        task = workflow.tasks.transition_task(
            project_id, task_id, [SetFeature(feature_id=feature_id), ChangeStatus(status="in_testing")], actor,
        )
        assert task.status == TaskStatus.IN_TESTING
        assert task.feature_id == feature_id

    def test_clearing_feature_past_qa_is_rejected(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_TESTING)
        task_id = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id)
        with pytest.raises(ValidationError):
            workflow.tasks.transition_task(project_id, task_id, [ClearFeature()], actor)
        assert store.read_task(task_id).feature_id == feature_id

    def test_invariant_holds_after_every_attempt(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id)
        with_feature = factory.task(project_id, feature_id=feature_id)
        without_feature = factory.task(project_id)
        for status in TaskStatus:
            for task_id in (with_feature, without_feature):
                try:
                    move(workflow, project_id, task_id, status, actor)
                except ValidationError:
                    pass
                for task in store.list_tasks(project_id):
                    if task.status in (TaskStatus.IN_TESTING, TaskStatus.APPROVED, TaskStatus.DONE):
                        assert task.feature_id is not None

    def test_unknown_feature_is_not_found(self, workflow, factory, actor, project_id):
        task_id = factory.task(project_id)
        with pytest.raises(NotFoundError):
            workflow.tasks.transition_task(project_id, task_id, [SetFeature(feature_id="missing")], actor)


class TestBlockedTasks:
    def test_blocked_task_waits_for_its_blocker(self, workflow, store, actor, project_id, factory):
        feature_id = factory.feature(project_id)
        a = factory.task(project_id, title="A")
        b = factory.task(project_id, title="B", feature_id=feature_id)
        workflow.dependencies.add_dependency(project_id, b, a)

        with pytest.raises(ValidationError) as exc_info:
            move(workflow, project_id, a, "inprogress", actor)
        assert exc_info.value.reason == "blocked_by_dependency"
        assert store.read_task(a).status == TaskStatus.TODO

        move(workflow, project_id, b, "done", actor)
        assert move(workflow, project_id, a, "inprogress", actor).status == TaskStatus.IN_PROGRESS

    def test_blocked_task_can_still_be_edited(self, workflow, factory, actor, project_id):
        a = factory.task(project_id, title="A")
        b = factory.task(project_id, title="B")
        workflow.dependencies.add_dependency(project_id, b, a)
        task = workflow.tasks.transition_task(project_id, a, [EditDetails(title="A2")], actor)
        assert task.title == "A2"

    def test_deleted_blocker_no_longer_blocks(self, workflow, store, factory, actor, project_id):
        a = factory.task(project_id)
        b = factory.task(project_id)
        workflow.dependencies.add_dependency(project_id, b, a)
        workflow.tasks.delete_task(project_id, b)

        assert store.read_task(a).blocked_by_ids() == [b]
        assert move(workflow, project_id, a, "inprogress", actor).status == TaskStatus.IN_PROGRESS


class TestFeatureCascades:
    def test_last_task_ready_for_qa_promotes_feature(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_DEVELOPMENT)
        factory.task(project_id, status=TaskStatus.READY_FOR_QA, feature_id=feature_id)
        factory.task(project_id, status=TaskStatus.READY_FOR_QA, feature_id=feature_id)
        t3 = factory.task(project_id, status=TaskStatus.IN_PROGRESS, feature_id=feature_id)

        move(workflow, project_id, t3, "ready_for_qa", actor)
        assert store.read_feature(feature_id).status == FeatureStatus.IN_TESTING

    def test_feature_waits_for_every_task(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_DEVELOPMENT)
        t1 = factory.task(project_id, status=TaskStatus.IN_PROGRESS, feature_id=feature_id)
        factory.task(project_id, status=TaskStatus.READY_FOR_QA, feature_id=feature_id)
        factory.task(project_id, status=TaskStatus.IN_PROGRESS, feature_id=feature_id)

        move(workflow, project_id, t1, "ready_for_qa", actor)
        assert store.read_feature(feature_id).status == FeatureStatus.IN_DEVELOPMENT

    def test_moving_done_task_back_reproves_and_demotes(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.APPROVED)
        task_id = factory.task(project_id, status=TaskStatus.DONE, feature_id=feature_id)

        task = move(workflow, project_id, task_id, "todo", actor)
        assert task.has_been_reproved
        assert store.read_feature(feature_id).status == FeatureStatus.IN_DEVELOPMENT

    def test_first_started_task_starts_feature(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.BACKLOG)
        task_id = factory.task(project_id, feature_id=feature_id)
        move(workflow, project_id, task_id, "inprogress", actor)
        assert store.read_feature(feature_id).status == FeatureStatus.IN_DEVELOPMENT

    def test_set_feature_derives_module(self, workflow, factory, actor, project_id):
        feature_id = factory.feature(project_id, module_id=None)
        task_id = factory.task(project_id)
        task = workflow.tasks.transition_task(project_id, task_id, [SetFeature(feature_id=feature_id)], actor)
        assert task.feature_id == feature_id
        assert task.module_id is None

    def test_cascade_failure_rolls_back_primary_update(self, workflow, store, factory, actor, project_id, monkeypatch):
        feature_id = factory.feature(project_id)
        task_id = factory.task(project_id, status=TaskStatus.IN_PROGRESS, feature_id=feature_id, assignee=actor)
        factory.set_timer(actor, project_id, task_id, workflow.time_tracker.clock())

        def broken_stop(session, user_id):
            raise RuntimeError("timer store unavailable")

        monkeypatch.setattr(workflow.time_tracker, "stop_in_session", broken_stop)
        with pytest.raises(RuntimeError):
            move(workflow, project_id, task_id, "done", actor)
        assert store.read_task(task_id).status == TaskStatus.IN_PROGRESS
        assert store.read_user(actor.uid).active_timer is not None


class TestSideEffects:
    def test_done_stops_assignee_timer_in_same_transition(self, workflow, store, clock, factory, actor, project_id):
        feature_id = factory.feature(project_id)
        task_id = factory.task(project_id, status=TaskStatus.IN_PROGRESS, feature_id=feature_id, assignee=actor)
        workflow.time_tracker.start_timer(actor.uid, task_id, project_id)
        clock.advance(90)

        task = move(workflow, project_id, task_id, "done", actor)
        assert [log.duration_in_seconds for log in task.time_logs] == [90]
        assert store.read_user(actor.uid).active_timer is None

    def test_timer_on_other_task_keeps_running(self, workflow, store, clock, factory, actor, project_id):
        feature_id = factory.feature(project_id)
        task_id = factory.task(project_id, status=TaskStatus.IN_PROGRESS, feature_id=feature_id, assignee=actor)
        other = factory.task(project_id)
        workflow.time_tracker.start_timer(actor.uid, other, project_id)
        clock.advance(30)

        move(workflow, project_id, task_id, "done", actor)
        assert store.read_user(actor.uid).active_timer.task_id == other

    def test_status_change_is_logged(self, workflow, factory, actor, project_id):
        task_id = factory.task(project_id, title="Ship it")
        move(workflow, project_id, task_id, "inprogress", actor)
        activity = workflow.activity_log.list_for_project(project_id)
        assert activity[0].type == ActivityType.TASK_STATUS_CHANGED
        assert activity[0].message == 'Ana moved task "Ship it" to In Progress.'
        assert activity[0].user.uid == actor.uid

    def test_field_edits_are_not_logged(self, workflow, factory, actor, project_id):
        task_id = factory.task(project_id)
        workflow.tasks.transition_task(project_id, task_id, [EditDetails(description="more")], actor)
        assert workflow.activity_log.list_for_project(project_id) == []

    def test_reassignment_notifies_new_assignee(self, workflow, factory, actor, project_id):
        ben = factory.user("Ben")
        task_id = factory.task(project_id)
        workflow.tasks.transition_task(project_id, task_id, [AssignUser(assignee=ben)], actor)
        assert len(workflow.notifier.list_for_user(ben.uid)) == 1

    def test_activity_failure_does_not_fail_transition(self, workflow, factory, actor, project_id, monkeypatch):
        task_id = factory.task(project_id)

        def broken_activity(**kwargs):
            raise RuntimeError("activity store down")

        monkeypatch.setattr("app.services.activity_log.Activity", broken_activity)
        assert move(workflow, project_id, task_id, "inprogress", actor).status == TaskStatus.IN_PROGRESS

    def test_disabled_activity_log_records_nothing(self, workflow, factory, actor, project_id):
        workflow.activity_log.enabled = False
        task_id = factory.task(project_id)
        move(workflow, project_id, task_id, "inprogress", actor)
        workflow.activity_log.enabled = True
        assert workflow.activity_log.list_for_project(project_id) == []


def test_delete_task_removes_document(workflow, store, factory, actor, project_id):
    task_id = factory.task(project_id)
    workflow.tasks.delete_task(project_id, task_id)
    with pytest.raises(NotFoundError):
        store.read_task(task_id)
