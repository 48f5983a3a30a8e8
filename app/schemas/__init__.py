from .user import UserSummary, ActiveTimer, UserOut, TimerStartRequest
from .task import TaskCreate, TaskOut, TaskDependency, TimeLog, TaskLink, LinkCreate, LinkUpdate, CommentCreate, CommentOut, DependencyCreate, TimerStopOut, BlockedTasksOut
from .feature import FeatureCreate, FeatureUpdate, FeatureOut, UserFlow, TestCase, TestCaseStatusUpdate, ReproveTaskRequest
from .commands import ChangeStatus, AssignUser, SetFeature, ClearFeature, EditDetails, TransitionCommand, TransitionRequest
from .activity import ActivityOut
from .notification import NotificationRequest, NotificationOut, NotificationMarkRead
