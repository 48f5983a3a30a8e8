from .user import User
from .project import Project, Module, TaskCategory
from .feature import Feature, FeatureStatus, FEATURE_STATUS_ORDER, feature_rank
from .task import (
    Task, Comment, TaskStatus, DependencyType, TASK_STATUS_ORDER,
    QA_GATED_STATUSES, PRE_QA_STATUSES, task_rank,
)
from .activity import Activity, ActivityType
from .notification import Notification, NotificationType, NotificationPriority
