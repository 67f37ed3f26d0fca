from datetime import datetime
from typing import Optional, Any, Dict, Literal, List, Union
from pydantic import BaseModel, EmailStr, ConfigDict, Field
from uuid import UUID


Role = Literal["user", "admin", "super_admin"]
PrivacyLevel = Literal["PUBLIC", "PRIVATE"]
MemberRole = Literal["viewer", "editor"]
TaskStatus = Literal["YTS", "IN_PROGRESS", "ON_HOLD", "COMPLETED", "RECURRING"]
TaskPriority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]
ProjectStatus = Literal["ACTIVE", "ON_HOLD", "COMPLETED", "ARCHIVED"]
BillingCycle = Literal["MONTHLY", "QUARTERLY", "YEARLY", "ONE_TIME"]
SubscriptionStatus = Literal["ACTIVE", "PAUSED", "CANCELLED", "EXPIRED"]
ReviewStatus = Literal["REVIEW_REQUESTED", "UNDER_REVIEW", "APPROVED", "REJECTED"]
RequestType = Literal["AUTOMATION", "DATA", "ACCESS", "SUPPORT", "OTHER"]
RequestPriority = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
RequestStatus = Literal[
    "SUBMITTED", "APPROVED", "REJECTED", "IN_PROGRESS", "WAITING_INFO", "COMPLETED", "CLOSED"
]


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class DepartmentOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ProfileOut(UserOut):
    role: Role
    is_active: bool = True
    department: Optional[DepartmentOut] = None
    has_credential_access: bool = False
    has_subscription_access: bool = False


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None


class MemberDepartmentUpdate(BaseModel):
    department_id: Optional[UUID] = None


class MemberRoleUpdate(BaseModel):
    role: Role


class MemberFeaturesUpdate(BaseModel):
    has_credential_access: Optional[bool] = None
    has_subscription_access: Optional[bool] = None


class StatusSummary(BaseModel):
    in_progress: int = 0
    completed: int = 0
    yts: int = 0
    on_hold: int = 0
    recurring: int = 0


class TeamMemberOut(BaseModel):
    id: UUID
    full_name: Optional[str] = None
    email: EmailStr
    role: Role
    department: Optional[str] = None
    is_active: bool = True
    tasks_assigned: int = 0
    projects_involved: int = 0
    status_summary: StatusSummary = Field(default_factory=StatusSummary)


class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None
    status: ProjectStatus = "ACTIVE"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ProjectOut(ProjectCreate):
    id: UUID
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ProjectMemberAdd(BaseModel):
    user_id: UUID
    role: Literal["owner", "member"] = "member"


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    status: TaskStatus = "IN_PROGRESS"
    priority: TaskPriority = "MEDIUM"
    due_date: Optional[datetime] = None
    project_id: Optional[UUID] = None
    brand: Optional[str] = None
    tags: Optional[str] = None
    recurring: Optional[str] = None
    assignees: List[UUID] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    project_id: Optional[UUID] = None
    brand: Optional[str] = None
    tags: Optional[str] = None
    recurring: Optional[str] = None
    assignees: Optional[List[UUID]] = None


class TaskOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[datetime] = None
    project_id: Optional[UUID] = None
    brand: Optional[str] = None
    tags: Optional[str] = None
    recurring: Optional[str] = None
    created_by: Optional[UUID] = None
    assignees: List[UserOut] = Field(default_factory=list)
    review_status: Optional[ReviewStatus] = None
    reviewer: Optional[UserOut] = None
    review_requested_by: Optional[UserOut] = None
    review_requested_at: Optional[datetime] = None
    reviewed_by: Optional[UserOut] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ReviewRequestIn(BaseModel):
    reviewer_id: UUID


class ReviewAcceptIn(BaseModel):
    accept: bool = True


class ReviewRespondIn(BaseModel):
    action: Literal["APPROVED", "REJECTED"]
    comment: Optional[str] = None


class TaskStatsOut(BaseModel):
    total_tasks: int
    completed_tasks: int
    in_progress: int
    yts: int
    on_hold: int
    overdue: int
    recurring: int


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    mentions: List[UUID] = Field(default_factory=list)


class CommentOut(BaseModel):
    id: UUID
    task_id: UUID
    content: str
    mentions: List[UUID] = Field(default_factory=list)
    author: UserOut
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class VaultMemberOut(BaseModel):
    id: UUID
    role: str
    is_active: bool
    user: UserOut
    model_config = ConfigDict(from_attributes=True)


class VaultMemberAdd(BaseModel):
    user_id: UUID
    role: MemberRole = "viewer"


class VaultMemberActiveUpdate(BaseModel):
    is_active: bool


class CredentialCreate(BaseModel):
    company: str = Field(min_length=1)
    geography: Optional[str] = None
    platform: str = Field(min_length=1)
    url: Optional[str] = None
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    authenticator: Optional[str] = None
    notes: Optional[str] = None
    privacy_level: PrivacyLevel = "PRIVATE"


class CredentialUpdate(BaseModel):
    company: Optional[str] = None
    geography: Optional[str] = None
    platform: Optional[str] = None
    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    authenticator: Optional[str] = None
    notes: Optional[str] = None
    privacy_level: Optional[PrivacyLevel] = None


class CredentialOut(CredentialCreate):
    id: UUID
    created_by: UUID
    creator: UserOut
    members: List[VaultMemberOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SubscriptionCreate(BaseModel):
    name: str = Field(min_length=1)
    url: Optional[str] = None
    amount: float = Field(default=0.0, ge=0)
    currency: str = "USD"
    billing_cycle: BillingCycle = "MONTHLY"
    status: SubscriptionStatus = "ACTIVE"
    start_date: Optional[datetime] = None
    renewal_date: Optional[datetime] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    privacy_level: PrivacyLevel = "PRIVATE"


class SubscriptionUpdate(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    billing_cycle: Optional[BillingCycle] = None
    status: Optional[SubscriptionStatus] = None
    start_date: Optional[datetime] = None
    renewal_date: Optional[datetime] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    privacy_level: Optional[PrivacyLevel] = None


class SubscriptionOut(SubscriptionCreate):
    id: UUID
    created_by: UUID
    creator: UserOut
    members: List[VaultMemberOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CollaborationRequestIn(BaseModel):
    resource_ids: List[UUID] = Field(min_length=1)
    member_ids: List[UUID] = Field(min_length=1)
    role: MemberRole = "viewer"


class CollaborationDetailOut(BaseModel):
    member_id: UUID
    member_name: str
    member_email: str
    action: Literal["created", "updated", "skipped"]
    credential_count: int
    note: Optional[str] = None


class CollaborationSummaryOut(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0
    inaccessible_credential_count: int = 0
    details: List[CollaborationDetailOut] = Field(default_factory=list)


class CollaborationResponse(BaseModel):
    summary: CollaborationSummaryOut


class DepartmentScheduleIn(BaseModel):
    department_id: UUID
    enabled: bool = True
    days_of_week: List[int] = Field(default_factory=list)
    time_of_day: str = "18:00"


class DepartmentScheduleOut(DepartmentScheduleIn):
    department_name: str
    last_run_at: Optional[datetime] = None


class AutoEmailConfigIn(BaseModel):
    enabled: bool = False
    recipients: List[str] = Field(default_factory=list)
    timezone: str = "Asia/Kolkata"
    send_when_empty: bool = False
    department_schedules: List[DepartmentScheduleIn] = Field(default_factory=list)


class AutoEmailConfigOut(BaseModel):
    enabled: bool
    recipients: List[str]
    timezone: str
    send_when_empty: bool
    department_schedules: List[DepartmentScheduleOut]
    updated_at: Optional[datetime] = None


class EvaluationReportOut(BaseModel):
    evaluated_at: datetime
    sent: List[str] = Field(default_factory=list)
    skipped_empty: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)


class EmailSendRequest(BaseModel):
    to: List[EmailStr] = Field(min_length=1)
    cc: List[EmailStr] = Field(default_factory=list)
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)


class EmailLogOut(BaseModel):
    id: UUID
    to: List[str]
    cc: List[str] = Field(default_factory=list)
    subject: str
    body: str
    status: str
    error: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class NotificationOut(BaseModel):
    id: UUID
    user_id: UUID
    message: str
    title: Optional[str] = None
    category: Optional[str] = None
    is_read: bool
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UnreadCountOut(BaseModel):
    count: int


class ActivityOut(BaseModel):
    id: UUID
    type: str
    action: str
    description: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    user: Optional[UserOut] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class DepartmentAdminOut(BaseModel):
    id: UUID
    full_name: Optional[str] = None
    email: EmailStr
    role: Role
    model_config = ConfigDict(from_attributes=True)


class RequestCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    request_type: RequestType = "OTHER"
    priority: RequestPriority = "MEDIUM"
    to_department_id: Optional[UUID] = None
    assigned_to_id: Optional[UUID] = None
    tentative_deadline: Optional[datetime] = None


class RequestStatusUpdate(BaseModel):
    # task statuses are accepted and mapped onto request statuses
    status: Union[RequestStatus, TaskStatus]


class RequestDeadlineUpdate(BaseModel):
    tentative_deadline: Optional[datetime] = None


class RequestAssignmentUpdate(BaseModel):
    assigned_to_id: Optional[UUID] = None


class RequestOut(BaseModel):
    id: UUID
    title: str
    description: str
    request_type: RequestType
    priority: RequestPriority
    status: RequestStatus
    from_department: Optional[DepartmentOut] = None
    to_department: Optional[DepartmentOut] = None
    creator: UserOut
    assigned_to: Optional[UserOut] = None
    task_id: Optional[UUID] = None
    tentative_deadline: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)
