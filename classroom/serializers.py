# classroom/serializers.py

from rest_framework import serializers
from .models import (
    User,
    AIConfig,
    Conversation,
    Message,
    Annotation,
    Note,
    Draft,
    DraftHistory,
    TaskTemplate,
    Project,
    TaskProgress,
    TeacherReminder,
    ActivityLog,
)
import logging

logger = logging.getLogger(__name__)


# --- Users & auth ---

class UserSerializer(serializers.ModelSerializer):
    createdAt = serializers.DateTimeField(source='date_joined', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'name', 'role', 'createdAt']
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150, help_text="Login name, must be unique")
    password = serializers.CharField(write_only=True, help_text="Plain-text password used to create the account")
    name = serializers.CharField(max_length=150, help_text="Display name")
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES, default=User.ROLE_STUDENT, required=False)

    def validate_username(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Username cannot be empty.")
        if User.objects.filter(username=value).exists():
            raise serializers.ValidationError("This username is already registered.")
        return value

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data['username'],
            password=validated_data['password'],
            name=validated_data['name'],
            role=validated_data.get('role', User.ROLE_STUDENT),
        )


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField(help_text="Login name")
    password = serializers.CharField(help_text="Plain-text password for authentication")


class AuthResponseSerializer(serializers.Serializer):
    user = UserSerializer(read_only=True)
    token = serializers.CharField(read_only=True, help_text="Bearer token for the Authorization header")


class StudentRowSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    name = serializers.CharField(max_length=150)
    password = serializers.CharField()


class BatchCreateStudentsSerializer(serializers.Serializer):
    students = serializers.ListField(child=serializers.DictField(), allow_empty=False)


# --- AI configs ---

class AIConfigSerializer(serializers.ModelSerializer):
    systemPrompt = serializers.CharField(source='system_prompt', required=False, allow_blank=True)
    isActive = serializers.BooleanField(source='is_active', required=False)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = AIConfig
        fields = [
            'id', 'name', 'provider', 'model', 'systemPrompt', 'avatar', 'description',
            'isActive', 'createdAt', 'updatedAt',
        ]
        read_only_fields = ['id', 'createdAt', 'updatedAt']


class AIConfigPublicSerializer(serializers.ModelSerializer):
    class Meta:
        model = AIConfig
        fields = ['id', 'name', 'provider', 'model', 'avatar', 'description']
        read_only_fields = fields


# --- Annotations ---

class AnnotationSerializer(serializers.ModelSerializer):
    messageId = serializers.IntegerField(source='message_id', read_only=True)
    userId = serializers.IntegerField(source='user_id', read_only=True)
    selectedText = serializers.CharField(source='selected_text', read_only=True)
    startOffset = serializers.IntegerField(source='start_offset', read_only=True)
    endOffset = serializers.IntegerField(source='end_offset', read_only=True)
    isDeleted = serializers.BooleanField(source='is_deleted', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Annotation
        fields = [
            'id', 'messageId', 'userId', 'selectedText', 'type', 'label', 'note',
            'startOffset', 'endOffset', 'isDeleted', 'createdAt', 'updatedAt',
        ]
        read_only_fields = fields


class AnnotationCreateSerializer(serializers.Serializer):
    messageId = serializers.IntegerField()
    selectedText = serializers.CharField()
    type = serializers.ChoiceField(choices=Annotation.TYPE_CHOICES)
    label = serializers.ChoiceField(choices=Annotation.LABEL_CHOICES, required=False, allow_null=True)
    note = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    startOffset = serializers.IntegerField(required=False, default=0)
    endOffset = serializers.IntegerField(required=False, default=0)


class AnnotationUpdateSerializer(serializers.Serializer):
    label = serializers.ChoiceField(choices=Annotation.LABEL_CHOICES, required=False, allow_null=True)
    note = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    isDeleted = serializers.BooleanField(required=False)


# --- Conversations & messages ---

class MessageSerializer(serializers.ModelSerializer):
    conversationId = serializers.IntegerField(source='conversation_id', read_only=True)
    aiConfigId = serializers.IntegerField(source='ai_config_id', read_only=True, allow_null=True)
    aiConfig = AIConfigPublicSerializer(source='ai_config', read_only=True, allow_null=True)
    isError = serializers.BooleanField(source='is_error', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = Message
        fields = ['id', 'conversationId', 'role', 'content', 'aiConfigId', 'aiConfig', 'isError', 'createdAt']
        read_only_fields = fields


class MessageWithAnnotationsSerializer(MessageSerializer):
    annotations = AnnotationSerializer(many=True, read_only=True)

    class Meta(MessageSerializer.Meta):
        fields = MessageSerializer.Meta.fields + ['annotations']
        read_only_fields = fields


class ConversationSerializer(serializers.ModelSerializer):
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Conversation
        fields = ['id', 'title', 'createdAt', 'updatedAt']
        read_only_fields = ['id', 'createdAt', 'updatedAt']


class ConversationListSerializer(ConversationSerializer):
    lastMessage = serializers.SerializerMethodField()

    class Meta(ConversationSerializer.Meta):
        fields = ConversationSerializer.Meta.fields + ['lastMessage']

    def get_lastMessage(self, obj):
        last = obj.messages.order_by('-created_at', '-id').first()
        return MessageSerializer(last).data if last else None


class ConversationDetailSerializer(ConversationSerializer):
    messages = serializers.SerializerMethodField()

    class Meta(ConversationSerializer.Meta):
        fields = ConversationSerializer.Meta.fields + ['messages']

    def get_messages(self, obj):
        messages = obj.messages.select_related('ai_config').prefetch_related('annotations').order_by('created_at', 'id')
        return MessageWithAnnotationsSerializer(messages, many=True).data


class ConversationCreateSerializer(serializers.Serializer):
    title = serializers.CharField(required=False, allow_blank=True, max_length=255)


class SendMessageSerializer(serializers.Serializer):
    content = serializers.CharField(help_text="The student's message")
    aiConfigIds = serializers.ListField(
        child=serializers.IntegerField(),
        allow_empty=True,
        help_text="AI configs to ask, in display order; repeats are asked again",
    )


class TurnResponseSerializer(serializers.Serializer):
    userMessage = MessageSerializer(read_only=True)
    assistantMessages = MessageSerializer(many=True, read_only=True)


# --- Notes & drafts ---

class NoteSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source='user_id', read_only=True)
    conversationId = serializers.IntegerField(source='conversation_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Note
        fields = ['id', 'userId', 'conversationId', 'content', 'createdAt', 'updatedAt']
        read_only_fields = fields


class DraftSerializer(NoteSerializer):
    class Meta(NoteSerializer.Meta):
        model = Draft


class DraftHistorySerializer(serializers.ModelSerializer):
    conversationId = serializers.IntegerField(source='conversation_id', read_only=True)
    roundNumber = serializers.IntegerField(source='round_number', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = DraftHistory
        fields = ['id', 'conversationId', 'roundNumber', 'content', 'createdAt']
        read_only_fields = fields


class ContentSerializer(serializers.Serializer):
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)


class AddKnowledgeSerializer(serializers.Serializer):
    text = serializers.CharField(trim_whitespace=False)
    source = serializers.CharField(required=False, allow_blank=True, default="")


class OrganizeSerializer(serializers.Serializer):
    messageId = serializers.IntegerField(required=False, allow_null=True)
    aiName = serializers.CharField()
    content = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)
    annotations = serializers.ListField(child=serializers.DictField(), required=False, default=list)


# --- Projects ---

class TaskTemplateSerializer(serializers.ModelSerializer):
    isActive = serializers.BooleanField(source='is_active', read_only=True)
    createdBy = serializers.IntegerField(source='created_by_id', read_only=True, allow_null=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = TaskTemplate
        fields = ['id', 'name', 'description', 'tasks', 'isActive', 'createdBy', 'createdAt']
        read_only_fields = fields


class TaskProgressSerializer(serializers.ModelSerializer):
    projectId = serializers.IntegerField(source='project_id', read_only=True)
    taskIndex = serializers.IntegerField(source='task_index', read_only=True)
    studentContent = serializers.CharField(source='student_content', read_only=True)
    aiContent = serializers.CharField(source='ai_content', read_only=True)
    aiRatio = serializers.FloatField(source='ai_ratio', read_only=True)
    startedAt = serializers.DateTimeField(source='started_at', read_only=True)
    completedAt = serializers.DateTimeField(source='completed_at', read_only=True)
    lastActiveAt = serializers.DateTimeField(source='last_active_at', read_only=True)

    class Meta:
        model = TaskProgress
        fields = [
            'id', 'projectId', 'taskIndex', 'status', 'studentContent', 'aiContent', 'aiRatio',
            'startedAt', 'completedAt', 'lastActiveAt',
        ]
        read_only_fields = fields


class ProjectSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source='user_id', read_only=True)
    templateId = serializers.IntegerField(source='template_id', read_only=True)
    conversationId = serializers.IntegerField(source='conversation_id', read_only=True, allow_null=True)
    currentPhase = serializers.IntegerField(source='current_phase', read_only=True)
    currentTask = serializers.IntegerField(source='current_task', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)
    template = TaskTemplateSerializer(read_only=True)
    progress = TaskProgressSerializer(many=True, read_only=True)

    class Meta:
        model = Project
        fields = [
            'id', 'userId', 'templateId', 'conversationId', 'title', 'currentPhase', 'currentTask',
            'status', 'createdAt', 'updatedAt', 'template', 'progress',
        ]
        read_only_fields = fields


class ProjectCreateSerializer(serializers.Serializer):
    templateId = serializers.IntegerField()
    title = serializers.CharField(max_length=255)
    conversationId = serializers.IntegerField(required=False, allow_null=True)


class ProgressUpdateSerializer(serializers.Serializer):
    studentContent = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)
    aiContent = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)
    status = serializers.ChoiceField(choices=TaskProgress.STATUS_CHOICES, required=False, allow_null=True)


class CompareSerializer(serializers.Serializer):
    aiConfigs = serializers.ListField(required=False, default=list)
    taskIndex = serializers.IntegerField(required=False, allow_null=True)
    selectedAiId = serializers.IntegerField(required=False, allow_null=True)


# --- Teacher ---

class TeacherReminderSerializer(serializers.ModelSerializer):
    teacherId = serializers.IntegerField(source='teacher_id', read_only=True)
    studentId = serializers.IntegerField(source='student_id', read_only=True)
    projectId = serializers.IntegerField(source='project_id', read_only=True, allow_null=True)
    sentAt = serializers.DateTimeField(source='sent_at', read_only=True)
    readAt = serializers.DateTimeField(source='read_at', read_only=True, allow_null=True)

    class Meta:
        model = TeacherReminder
        fields = ['id', 'teacherId', 'studentId', 'projectId', 'message', 'type', 'sentAt', 'readAt']
        read_only_fields = fields


class ReminderCreateSerializer(serializers.Serializer):
    studentId = serializers.IntegerField()
    projectId = serializers.IntegerField(required=False, allow_null=True)
    message = serializers.CharField()
    type = serializers.ChoiceField(choices=TeacherReminder.TYPE_CHOICES, required=False, allow_null=True)


class ActivityLogSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source='user_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = ActivityLog
        fields = ['id', 'userId', 'action', 'details', 'createdAt']
        read_only_fields = fields
