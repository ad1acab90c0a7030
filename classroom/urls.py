#  classroom/urls.py
from django.urls import path
from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

from .views import (
    HealthView,
    RegisterView, LoginView, LogoutView, MeView, BatchCreateStudentsView,
    AIConfigListCreateView, AIConfigDetailView, AIProviderListView,
    ConversationListCreateView, ConversationDetailView, ConversationMessageView,
    MessageAnnotationListView, AnnotationCreateView, AnnotationDetailView,
    NoteView, NoteAddKnowledgeView,
    DraftView, DraftOrganizeView, DraftSnapshotView, DraftHistoryView,
    ProjectListCreateView, ProjectDetailView, ProjectProgressView, ProjectCompareView,
    AvailableTemplatesView, UnreadRemindersView, ReminderReadView,
    TeacherDashboardView, TeacherStudentDetailView, TeacherReminderView, TeacherAnalyticsView,
    TeacherTemplateListView, TeacherTemplateInitView,
    UploadView, UploadMultipleView, UploadFileView,
)

schema_view = get_schema_view(
    openapi.Info(
        title="Classroom AI Studio API",
        default_version='v1',
        description=(
            "Classroom collaboration API: students converse with several AI models at once, "
            "annotate and organize the replies into notes and drafts, and work through templated "
            "projects while teachers watch activity live."
        ),
    ),
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('health', HealthView.as_view(), name='health'),

    # Authentication
    path('auth/register', RegisterView.as_view(), name='auth-register'),
    path('auth/login', LoginView.as_view(), name='auth-login'),
    path('auth/logout', LogoutView.as_view(), name='auth-logout'),
    path('auth/me', MeView.as_view(), name='auth-me'),
    path('auth/batch-create-students', BatchCreateStudentsView.as_view(), name='auth-batch-create-students'),

    # AI configs
    path('ai/configs', AIConfigListCreateView.as_view(), name='ai-config-list'),
    path('ai/configs/<int:id>', AIConfigDetailView.as_view(), name='ai-config-detail'),
    path('ai/providers', AIProviderListView.as_view(), name='ai-providers'),

    # Conversations
    path('conversations', ConversationListCreateView.as_view(), name='conversation-list'),
    path('conversations/<int:id>', ConversationDetailView.as_view(), name='conversation-detail'),
    path('conversations/<int:id>/messages', ConversationMessageView.as_view(), name='conversation-messages'),

    # Annotations
    path('annotations', AnnotationCreateView.as_view(), name='annotation-create'),
    path('annotations/message/<int:message_id>', MessageAnnotationListView.as_view(), name='annotation-by-message'),
    path('annotations/<int:id>', AnnotationDetailView.as_view(), name='annotation-detail'),

    # Notes
    path('notes/<int:conversation_id>', NoteView.as_view(), name='note'),
    path('notes/<int:conversation_id>/add-knowledge', NoteAddKnowledgeView.as_view(), name='note-add-knowledge'),

    # Drafts
    path('drafts/<int:conversation_id>', DraftView.as_view(), name='draft'),
    path('drafts/<int:conversation_id>/organize', DraftOrganizeView.as_view(), name='draft-organize'),
    path('drafts/<int:conversation_id>/snapshot', DraftSnapshotView.as_view(), name='draft-snapshot'),
    path('drafts/<int:conversation_id>/history', DraftHistoryView.as_view(), name='draft-history'),

    # Projects
    path('projects', ProjectListCreateView.as_view(), name='project-list'),
    path('projects/templates/available', AvailableTemplatesView.as_view(), name='project-templates'),
    path('projects/reminders/unread', UnreadRemindersView.as_view(), name='reminders-unread'),
    path('projects/reminders/<int:id>/read', ReminderReadView.as_view(), name='reminder-read'),
    path('projects/<int:id>', ProjectDetailView.as_view(), name='project-detail'),
    path('projects/<int:id>/progress/<int:task_index>', ProjectProgressView.as_view(), name='project-progress'),
    path('projects/<int:id>/compare', ProjectCompareView.as_view(), name='project-compare'),

    # Teacher dashboard
    path('teacher/dashboard', TeacherDashboardView.as_view(), name='teacher-dashboard'),
    path('teacher/student/<int:user_id>', TeacherStudentDetailView.as_view(), name='teacher-student'),
    path('teacher/reminder', TeacherReminderView.as_view(), name='teacher-reminder'),
    path('teacher/analytics', TeacherAnalyticsView.as_view(), name='teacher-analytics'),
    path('teacher/templates', TeacherTemplateListView.as_view(), name='teacher-templates'),
    path('teacher/templates/init', TeacherTemplateInitView.as_view(), name='teacher-templates-init'),

    # Uploads
    path('uploads', UploadView.as_view(), name='upload'),
    path('uploads/multiple', UploadMultipleView.as_view(), name='upload-multiple'),
    path('uploads/<str:filename>', UploadFileView.as_view(), name='upload-file'),

    # API documentation
    path('docs/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
]
