import pytest

from app.exceptions import NotFoundError, ValidationError
from app.models import ActivityType, FeatureStatus, NotificationType, TaskStatus
from app.schemas import FeatureCreate, FeatureUpdate

PASSED = {"id": "tc1", "description": "Pay", "expected_result": "Paid", "status": "passed"}
PENDING = {"id": "tc2", "description": "Refund", "expected_result": "Refunded", "status": "pending"}


class TestFeatureCrud:
    def test_new_feature_starts_in_backlog(self, workflow, project_id):
        feature = workflow.features.create_feature(project_id, FeatureCreate(
            name="Checkout",
            test_cases=[PENDING],
            user_flows=[{"id": "f1", "step": 1, "description": "Open cart"}],
        ))
        assert feature.status == FeatureStatus.BACKLOG
        assert feature.test_cases[0].status == "pending"
        assert feature.user_flows[0].step == 1

    def test_update_never_touches_status(self, workflow, store, factory, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_TESTING)
        feature = workflow.features.update_feature(project_id, feature_id, FeatureUpdate(name="Checkout v2"))
        assert feature.name == "Checkout v2"
        assert feature.status == FeatureStatus.IN_TESTING

    def test_set_test_case_status(self, workflow, factory, project_id):
        feature_id = factory.feature(project_id, test_cases=[PASSED, PENDING])
        feature = workflow.features.set_test_case_status(project_id, feature_id, "tc2", "failed")
        assert [case.status for case in feature.test_cases] == ["passed", "failed"]

    def test_unknown_test_case(self, workflow, factory, project_id):
        feature_id = factory.feature(project_id, test_cases=[PASSED])
        with pytest.raises(NotFoundError):
            workflow.features.set_test_case_status(project_id, feature_id, "nope", "passed")

    def test_delete_unlinks_tasks(self, workflow, store, factory, project_id):
        feature_id = factory.feature(project_id)
        todo = factory.task(project_id, feature_id=feature_id)
        testing = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id)
        untouched = factory.task(project_id)

        unlinked = workflow.features.delete_feature(project_id, feature_id)

        assert sorted(unlinked) == sorted([todo, testing])
        with pytest.raises(NotFoundError):
            store.read_feature(feature_id)
        tasks = {task.id: task for task in store.list_tasks(project_id)}
        assert all(task.feature_id is None for task in tasks.values())
        assert tasks[todo].status == TaskStatus.TODO
        assert tasks[testing].status == TaskStatus.READY_FOR_QA
        assert untouched in tasks


class TestFeatureQa:
    def test_approve_feature_approves_tasks_in_testing(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_TESTING)
        testing = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id)
        done = factory.task(project_id, status=TaskStatus.DONE, feature_id=feature_id)

        feature = workflow.features.approve_feature(project_id, feature_id, actor)

        assert feature.status == FeatureStatus.APPROVED
        assert store.read_task(testing).status == TaskStatus.APPROVED
        assert store.read_task(done).status == TaskStatus.DONE
        assert workflow.activity_log.list_for_project(project_id)[0].type == ActivityType.FEATURE_APPROVED

    def test_reprove_feature_resets_tasks_in_testing(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_TESTING)
        testing = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id)
        ready = factory.task(project_id, status=TaskStatus.READY_FOR_QA, feature_id=feature_id)

        feature = workflow.features.reprove_feature(project_id, feature_id, actor)

        assert feature.status == FeatureStatus.IN_DEVELOPMENT
        reset = store.read_task(testing)
        assert reset.status == TaskStatus.TODO and reset.has_been_reproved
        assert store.read_task(ready).status == TaskStatus.READY_FOR_QA
        assert not store.read_task(ready).has_been_reproved


class TestTaskQa:
    def test_approving_last_task_approves_feature(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_TESTING, test_cases=[PASSED])
        t1 = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id)
        t2 = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id)
        factory.task(project_id, status=TaskStatus.DONE, feature_id=feature_id)

        workflow.features.approve_task(project_id, t1, feature_id, actor)
        assert store.read_feature(feature_id).status == FeatureStatus.IN_TESTING

        task = workflow.features.approve_task(project_id, t2, feature_id, actor)
        assert task.status == TaskStatus.APPROVED
        assert store.read_feature(feature_id).status == FeatureStatus.APPROVED
        types = [entry.type for entry in workflow.activity_log.list_for_project(project_id)]
        assert types.count(ActivityType.TASK_APPROVED) == 2
        assert ActivityType.FEATURE_APPROVED in types

    def test_pending_test_cases_block_approval(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_TESTING, test_cases=[PASSED, PENDING])
        task_id = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id)
        with pytest.raises(ValidationError) as exc_info:
            workflow.features.approve_task(project_id, task_id, feature_id, actor)
        assert exc_info.value.reason == "test_cases_pending"
        assert store.read_task(task_id).status == TaskStatus.IN_TESTING

    def test_feature_without_test_cases_can_be_approved(self, workflow, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_TESTING)
        task_id = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id)
        assert workflow.features.approve_task(project_id, task_id, feature_id, actor).status == TaskStatus.APPROVED

    def test_task_must_belong_to_feature(self, workflow, factory, actor, project_id):
        feature_id = factory.feature(project_id)
        other_feature = factory.feature(project_id)
        task_id = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=other_feature)
        with pytest.raises(ValidationError) as exc_info:
            workflow.features.approve_task(project_id, task_id, feature_id, actor)
        assert exc_info.value.reason == "feature_mismatch"

    def test_reprove_task_with_feedback(self, workflow, store, factory, actor, project_id):
        ben = factory.user("Ben")
        feature_id = factory.feature(project_id, status=FeatureStatus.IN_TESTING)
        task_id = factory.task(project_id, status=TaskStatus.IN_TESTING, feature_id=feature_id, assignee=ben)

        task = workflow.features.reprove_task(project_id, task_id, feature_id, "Refund button is missing", actor)

        assert task.status == TaskStatus.TODO
        assert task.has_been_reproved
        assert task.comments_count == 1
        assert store.read_feature(feature_id).status == FeatureStatus.IN_DEVELOPMENT
        comments = workflow.comments.list_comments(project_id, task_id)
        assert [comment.content for comment in comments] == ["Refund button is missing"]
        assert comments[0].author.uid == actor.uid
        notifications = workflow.notifier.list_for_user(ben.uid)
        assert [n.notification_type for n in notifications] == [NotificationType.QA_FEEDBACK]
        types = {entry.type for entry in workflow.activity_log.list_for_project(project_id)}
        assert {ActivityType.COMMENT_ADDED, ActivityType.TASK_REPROVED} <= types

    def test_reprove_demotes_feature_unconditionally(self, workflow, store, factory, actor, project_id):
        feature_id = factory.feature(project_id, status=FeatureStatus.APPROVED)
        task_id = factory.task(project_id, status=TaskStatus.APPROVED, feature_id=feature_id)
        workflow.features.reprove_task(project_id, task_id, feature_id, "Regression", actor)
        assert store.read_feature(feature_id).status == FeatureStatus.IN_DEVELOPMENT


class TestComments:
    def test_comment_increments_counter(self, workflow, store, factory, actor, project_id):
        task_id = factory.task(project_id)
        workflow.comments.add_comment(project_id, task_id, actor, "First")
        workflow.comments.add_comment(project_id, task_id, actor, "Second")
        assert store.read_task(task_id).comments_count == 2

    def test_mentions_notify_project_members_except_author(self, workflow, factory, actor):
        ben = factory.user("Ben")
        outsider = factory.user("Cleo")
        project_id = factory.project(actor, members=[ben])
        task_id = factory.task(project_id)

        workflow.comments.add_comment(project_id, task_id, actor, "@Ben @Ana @Cleo please review")

        assert len(workflow.notifier.list_for_user(ben.uid)) == 1
        assert workflow.notifier.list_for_user(actor.uid) == []
        assert workflow.notifier.list_for_user(outsider.uid) == []

    def test_comment_on_missing_task(self, workflow, actor, project_id):
        with pytest.raises(NotFoundError):
            workflow.comments.add_comment(project_id, "missing", actor, "Hello")


class TestLinks:
    def test_add_update_remove(self, workflow, store, factory, project_id):
        task_id = factory.task(project_id)
        link = workflow.links.add_link(project_id, task_id, "https://example.com/spec", "Spec")
        updated = workflow.links.update_link(project_id, task_id, link.id, title="Design spec")
        assert updated.title == "Design spec"
        assert store.read_task(task_id).links[0].title == "Design spec"

        task = workflow.links.remove_link(project_id, task_id, link.id)
        assert task.links == []

    def test_update_unknown_link(self, workflow, factory, project_id):
        task_id = factory.task(project_id)
        with pytest.raises(NotFoundError):
            workflow.links.update_link(project_id, task_id, "nope", title="x")
