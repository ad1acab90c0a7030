from rest_framework import status, generics
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from knox.auth import TokenAuthentication
from knox.models import AuthToken
from django.contrib.auth import authenticate
from django.db import IntegrityError, transaction
from django.db.models import Count, Max
from django.http import FileResponse
from django.shortcuts import get_object_or_404
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
from django.utils.decorators import method_decorator
from django.utils import timezone
from django.conf import settings
import logging
import mimetypes

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
from .serializers import *
from .permissions import IsTeacher, IsOwnerOrTeacher
from .llm_providers import get_provider_registry
from .conversation_service import create_conversation, resolve_ai_configs, send_message
from .activity import content_ai_ratio, summarize_project, summarize_dashboard, task_analytics
from .activity_log import (
    log_activity, annotation_action,
    NOTE_UPDATE, NOTE_ADD_KNOWLEDGE, DRAFT_UPDATE, DRAFT_ORGANIZE, DRAFT_SNAPSHOT,
    ANNOTATION_UPDATE, ANNOTATION_DELETE, TASK_START, TASK_COMPLETE,
    SELECT_AI_OUTPUT, COMPARE_AI_OUTPUTS, TEACHER_REMINDER,
    FILE_UPLOAD, FILE_UPLOAD_MULTIPLE, FILE_DELETE,
)
from .templates import active_templates, get_or_create_default_template
from .uploads import store_upload, store_uploads, resolve_upload_path, delete_upload

logger = logging.getLogger(__name__) # Use Django's logger


# Swagger/Redoc tags for grouping endpoints
AUTH_TAG = "Authentication"
AI_TAG = "AI Configs"
CONVERSATION_TAG = "Conversations"
ANNOTATION_TAG = "Annotations"
NOTE_TAG = "Notes"
DRAFT_TAG = "Drafts"
PROJECT_TAG = "Projects"
TEACHER_TAG = "Teacher"
UPLOAD_TAG = "Uploads"

ID_PARAMETER = openapi.Parameter('id', openapi.IN_PATH, description="Object ID", type=openapi.TYPE_INTEGER)

LABEL_EMOJI = {
    "DOUBT": "❓",
    "INSPIRATION": "💡",
    "QUESTION": "🤔",
    "NOTE": "📝",
}
DEFAULT_LABEL_EMOJI = "📌"


class TokenAuthenticatedMixin:
    """Bearer-token authentication; the authenticated user is available as ``self.user``."""
    authentication_classes = [TokenAuthentication]
    permission_classes = [IsAuthenticated]

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.user = request.user


class TeacherOnlyMixin(TokenAuthenticatedMixin):
    permission_classes = [IsAuthenticated, IsTeacher]


def get_owned_conversation(user, conversation_id):
    return get_object_or_404(Conversation, pk=conversation_id, user=user)


def format_organized_section(ai_name, content, annotations):
    """Markdown block appended to a draft when a reply is organized into it."""
    section = f"\n\n---\n### From {ai_name}\n"
    if annotations:
        for annotation in annotations:
            emoji = LABEL_EMOJI.get(annotation.get("label"), DEFAULT_LABEL_EMOJI)
            section += f'\n{emoji} "{annotation.get("selectedText", "")}"'
            if annotation.get("note"):
                section += f"\n   → {annotation['note']}"
    else:
        section += f"\n{content}"
    return section


def format_knowledge_entry(text, source):
    return f"📌 {text}\n— Source: {source}"


# --- Health ---

class HealthView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @swagger_auto_schema(operation_description="Liveness check.", tags=["Health"])
    def get(self, request):
        return Response({"status": "ok", "timestamp": timezone.now().isoformat()})


# --- Authentication ---

class RegisterView(generics.CreateAPIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    serializer_class = RegisterSerializer

    @swagger_auto_schema(
        operation_description="Register a user and return a session token.",
        tags=[AUTH_TAG],
        request_body=RegisterSerializer,
        responses={status.HTTP_201_CREATED: AuthResponseSerializer},
    )
    def post(self, request, format=None):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            with transaction.atomic():
                user = serializer.save()
        except IntegrityError:
            return Response({"error": "This username is already registered."}, status=status.HTTP_400_BAD_REQUEST)
        _, token = AuthToken.objects.create(user)
        logger.info(f"Registered user '{user.username}' (ID: {user.id}, role: {user.role})")
        return Response({"user": UserSerializer(user).data, "token": token}, status=status.HTTP_201_CREATED)


class LoginView(generics.GenericAPIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    serializer_class = LoginSerializer

    @swagger_auto_schema(
        operation_description="Authenticate and return a session token.",
        tags=[AUTH_TAG],
        request_body=LoginSerializer,
        responses={status.HTTP_200_OK: AuthResponseSerializer},
    )
    def post(self, request, format=None):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = authenticate(
            request=request,
            username=serializer.validated_data['username'],
            password=serializer.validated_data['password'],
        )
        if user is None:
            logger.info(f"Failed login for '{serializer.validated_data['username']}'")
            return Response({"error": "Invalid username or password"}, status=status.HTTP_401_UNAUTHORIZED)
        _, token = AuthToken.objects.create(user)
        logger.info(f"User {user.username} logged in successfully")
        return Response({"user": UserSerializer(user).data, "token": token}, status=status.HTTP_200_OK)


class LogoutView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(operation_description="Invalidate the presented token.", tags=[AUTH_TAG])
    def post(self, request, format=None):
        request.auth.delete()
        return Response({"success": True}, status=status.HTTP_200_OK)


class MeView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Fetch the authenticated user's profile.",
        tags=[AUTH_TAG],
        responses={status.HTTP_200_OK: UserSerializer},
    )
    def get(self, request):
        return Response(UserSerializer(self.user).data)


class BatchCreateStudentsView(TeacherOnlyMixin, APIView):
    @swagger_auto_schema(
        operation_description="Create several student accounts; each row reports its own outcome.",
        tags=[AUTH_TAG],
        request_body=BatchCreateStudentsSerializer,
    )
    def post(self, request):
        serializer = BatchCreateStudentsSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": "Provide a non-empty list of students"}, status=status.HTTP_400_BAD_REQUEST)

        results = []
        for row in serializer.validated_data['students']:
            row_serializer = StudentRowSerializer(data=row)
            username = row.get('username')
            if not row_serializer.is_valid():
                results.append({"success": False, "username": username, "error": "Missing username, name or password"})
                continue
            data = row_serializer.validated_data
            try:
                with transaction.atomic():
                    user = User.objects.create_user(
                        username=data['username'],
                        password=data['password'],
                        name=data['name'],
                        role=User.ROLE_STUDENT,
                    )
            except IntegrityError:
                results.append({"success": False, "username": username, "error": "Username already exists"})
                continue
            results.append({"success": True, "username": user.username, "id": user.id})

        created = sum(1 for r in results if r["success"])
        logger.info(f"Teacher {self.user.username} batch-created {created}/{len(results)} students")
        return Response({"results": results})


# --- AI configs ---

class AIConfigListCreateView(TokenAuthenticatedMixin, APIView):
    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated(), IsTeacher()]
        return super().get_permissions()

    @swagger_auto_schema(
        operation_description="List active AI configurations.",
        tags=[AI_TAG],
        responses={status.HTTP_200_OK: AIConfigPublicSerializer(many=True)},
    )
    def get(self, request):
        configs = AIConfig.objects.filter(is_active=True)
        return Response(AIConfigPublicSerializer(configs, many=True).data)

    @swagger_auto_schema(
        operation_description="Create an AI configuration (teachers only).",
        tags=[AI_TAG],
        request_body=AIConfigSerializer,
        responses={status.HTTP_201_CREATED: AIConfigSerializer},
    )
    def post(self, request):
        serializer = AIConfigSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        config = serializer.save()
        logger.info(f"AIConfig {config.id} ({config.provider}/{config.model}) created by {self.user.username}")
        return Response(AIConfigSerializer(config).data, status=status.HTTP_201_CREATED)


@method_decorator(
    name='put',
    decorator=swagger_auto_schema(
        operation_description="Update an AI configuration (teachers only).",
        tags=[AI_TAG],
        manual_parameters=[ID_PARAMETER],
        request_body=AIConfigSerializer,
        responses={status.HTTP_200_OK: AIConfigSerializer},
    ),
)
@method_decorator(
    name='delete',
    decorator=swagger_auto_schema(
        operation_description="Delete an AI configuration (teachers only).",
        tags=[AI_TAG],
        manual_parameters=[ID_PARAMETER],
    ),
)
class AIConfigDetailView(TeacherOnlyMixin, APIView):
    def put(self, request, id):
        config = get_object_or_404(AIConfig, pk=id)
        serializer = AIConfigSerializer(config, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)

    def delete(self, request, id):
        config = get_object_or_404(AIConfig, pk=id)
        config.delete()
        logger.info(f"AIConfig {id} deleted by {self.user.username}")
        return Response({"success": True})


class AIProviderListView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(operation_description="Provider ids with a configured API key.", tags=[AI_TAG])
    def get(self, request):
        return Response(get_provider_registry().available())


# --- Conversations ---

class ConversationListCreateView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="List the user's conversations, most recently updated first.",
        tags=[CONVERSATION_TAG],
        responses={status.HTTP_200_OK: ConversationListSerializer(many=True)},
    )
    def get(self, request):
        conversations = Conversation.objects.filter(user=self.user).order_by('-updated_at', '-id')
        return Response(ConversationListSerializer(conversations, many=True).data)

    @swagger_auto_schema(
        operation_description="Start a new conversation.",
        tags=[CONVERSATION_TAG],
        request_body=ConversationCreateSerializer,
        responses={status.HTTP_201_CREATED: ConversationSerializer},
    )
    def post(self, request):
        serializer = ConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        conversation = create_conversation(self.user, serializer.validated_data.get('title'))
        return Response(ConversationSerializer(conversation).data, status=status.HTTP_201_CREATED)


@method_decorator(
    name='get',
    decorator=swagger_auto_schema(
        operation_description="Conversation with every message, its AI config and annotations.",
        tags=[CONVERSATION_TAG],
        manual_parameters=[ID_PARAMETER],
        responses={status.HTTP_200_OK: ConversationDetailSerializer},
    ),
)
@method_decorator(
    name='delete',
    decorator=swagger_auto_schema(
        operation_description="Delete a conversation and its messages.",
        tags=[CONVERSATION_TAG],
        manual_parameters=[ID_PARAMETER],
    ),
)
class ConversationDetailView(TokenAuthenticatedMixin, APIView):
    def get(self, request, id):
        conversation = get_owned_conversation(self.user, id)
        return Response(ConversationDetailSerializer(conversation).data)

    def delete(self, request, id):
        conversation = get_owned_conversation(self.user, id)
        conversation.delete()
        return Response({"success": True})


class ConversationMessageView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description=(
            "Send a message to several AI configs at once. Every config gets one reply in request order; "
            "a failing provider produces an error-flagged reply instead of failing the request."
        ),
        tags=[CONVERSATION_TAG],
        manual_parameters=[ID_PARAMETER],
        request_body=SendMessageSerializer,
        responses={status.HTTP_201_CREATED: TurnResponseSerializer},
    )
    def post(self, request, id):
        conversation = get_owned_conversation(self.user, id)
        serializer = SendMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        ai_configs = resolve_ai_configs(serializer.validated_data['aiConfigIds'])
        turn = send_message(
            conversation,
            serializer.validated_data['content'],
            ai_configs,
            registry=get_provider_registry(),
        )
        errors = sum(1 for m in turn.assistant_messages if m.is_error)
        logger.info(
            f"Conversation {conversation.id}: {len(turn.assistant_messages)} replies ({errors} errors) for user {self.user.username}"
        )
        return Response(
            {
                "userMessage": MessageSerializer(turn.user_message).data,
                "assistantMessages": MessageSerializer(turn.assistant_messages, many=True).data,
            },
            status=status.HTTP_201_CREATED,
        )


# --- Annotations ---

class MessageAnnotationListView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Annotations on a message, ordered by start offset.",
        tags=[ANNOTATION_TAG],
        responses={status.HTTP_200_OK: AnnotationSerializer(many=True)},
    )
    def get(self, request, message_id):
        message = get_object_or_404(Message.objects.select_related('conversation'), pk=message_id)
        if message.conversation.user_id != self.user.id and not self.user.is_teacher:
            return Response({"error": "Message not found"}, status=status.HTTP_404_NOT_FOUND)
        annotations = Annotation.objects.filter(message=message).order_by('start_offset', 'id')
        return Response(AnnotationSerializer(annotations, many=True).data)


class AnnotationCreateView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Annotate a span of a message (KNOWLEDGE, DELETE or COMMENT).",
        tags=[ANNOTATION_TAG],
        request_body=AnnotationCreateSerializer,
        responses={status.HTTP_201_CREATED: AnnotationSerializer},
    )
    def post(self, request):
        serializer = AnnotationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        message = get_object_or_404(Message, pk=data['messageId'], conversation__user=self.user)

        annotation = Annotation.objects.create(
            message=message,
            user=self.user,
            selected_text=data['selectedText'],
            type=data['type'],
            label=data.get('label'),
            note=data.get('note'),
            start_offset=data['startOffset'],
            end_offset=data['endOffset'],
            is_deleted=data['type'] == "DELETE",
        )
        log_activity(self.user, annotation_action(annotation.type), {
            "annotationId": annotation.id,
            "messageId": message.id,
            "selectedText": annotation.selected_text[:100],
            "label": annotation.label,
        })
        return Response(AnnotationSerializer(annotation).data, status=status.HTTP_201_CREATED)


@method_decorator(
    name='patch',
    decorator=swagger_auto_schema(
        operation_description="Update an annotation's label, note or deleted flag.",
        tags=[ANNOTATION_TAG],
        manual_parameters=[ID_PARAMETER],
        request_body=AnnotationUpdateSerializer,
        responses={status.HTTP_200_OK: AnnotationSerializer},
    ),
)
@method_decorator(
    name='delete',
    decorator=swagger_auto_schema(
        operation_description="Delete an annotation.",
        tags=[ANNOTATION_TAG],
        manual_parameters=[ID_PARAMETER],
    ),
)
class AnnotationDetailView(TokenAuthenticatedMixin, APIView):
    def patch(self, request, id):
        annotation = get_object_or_404(Annotation, pk=id, user=self.user)
        serializer = AnnotationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        update_fields = ['updated_at']
        if 'label' in data:
            annotation.label = data['label']
            update_fields.append('label')
        if 'note' in data:
            annotation.note = data['note']
            update_fields.append('note')
        if 'isDeleted' in data:
            annotation.is_deleted = data['isDeleted']
            update_fields.append('is_deleted')
        annotation.save(update_fields=update_fields)

        log_activity(self.user, ANNOTATION_UPDATE, {
            "annotationId": annotation.id,
            "label": data.get('label'),
            "note": (data.get('note') or "")[:100] or None,
        })
        return Response(AnnotationSerializer(annotation).data)

    def delete(self, request, id):
        annotation = get_object_or_404(Annotation, pk=id, user=self.user)
        annotation.delete()
        log_activity(self.user, ANNOTATION_DELETE, {"annotationId": id})
        return Response({"success": True})


# --- Notes ---

class NoteView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="The user's note for a conversation (created empty on first access).",
        tags=[NOTE_TAG],
        responses={status.HTTP_200_OK: NoteSerializer},
    )
    def get(self, request, conversation_id):
        conversation = get_owned_conversation(self.user, conversation_id)
        note, _ = Note.objects.get_or_create(user=self.user, conversation=conversation)
        return Response(NoteSerializer(note).data)

    @swagger_auto_schema(
        operation_description="Replace the note content.",
        tags=[NOTE_TAG],
        request_body=ContentSerializer,
        responses={status.HTTP_200_OK: NoteSerializer},
    )
    def put(self, request, conversation_id):
        conversation = get_owned_conversation(self.user, conversation_id)
        serializer = ContentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        content = serializer.validated_data['content']
        note, _ = Note.objects.update_or_create(
            user=self.user, conversation=conversation, defaults={'content': content}
        )
        log_activity(self.user, NOTE_UPDATE, {"conversationId": conversation.id, "contentLength": len(content)})
        return Response(NoteSerializer(note).data)


class NoteAddKnowledgeView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Append a knowledge excerpt with its source to the note.",
        tags=[NOTE_TAG],
        request_body=AddKnowledgeSerializer,
        responses={status.HTTP_200_OK: NoteSerializer},
    )
    def post(self, request, conversation_id):
        conversation = get_owned_conversation(self.user, conversation_id)
        serializer = AddKnowledgeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        text = serializer.validated_data['text']
        source = serializer.validated_data['source']

        note, _ = Note.objects.get_or_create(user=self.user, conversation=conversation)
        entry = format_knowledge_entry(text, source)
        note.content = f"{note.content}\n\n{entry}" if note.content else entry
        note.save(update_fields=['content', 'updated_at'])

        log_activity(self.user, NOTE_ADD_KNOWLEDGE, {
            "conversationId": conversation.id,
            "text": text[:100],
            "source": source,
        })
        return Response(NoteSerializer(note).data)


# --- Drafts ---

class DraftView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="The user's draft for a conversation (created empty on first access).",
        tags=[DRAFT_TAG],
        responses={status.HTTP_200_OK: DraftSerializer},
    )
    def get(self, request, conversation_id):
        conversation = get_owned_conversation(self.user, conversation_id)
        draft, _ = Draft.objects.get_or_create(user=self.user, conversation=conversation)
        return Response(DraftSerializer(draft).data)

    @swagger_auto_schema(
        operation_description="Replace the draft content.",
        tags=[DRAFT_TAG],
        request_body=ContentSerializer,
        responses={status.HTTP_200_OK: DraftSerializer},
    )
    def put(self, request, conversation_id):
        conversation = get_owned_conversation(self.user, conversation_id)
        serializer = ContentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        content = serializer.validated_data['content']
        draft, _ = Draft.objects.update_or_create(
            user=self.user, conversation=conversation, defaults={'content': content}
        )
        log_activity(self.user, DRAFT_UPDATE, {"conversationId": conversation.id, "contentLength": len(content)})
        return Response(DraftSerializer(draft).data)


class DraftOrganizeView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Append an AI reply, or the annotations made on it, to the draft.",
        tags=[DRAFT_TAG],
        request_body=OrganizeSerializer,
        responses={status.HTTP_200_OK: DraftSerializer},
    )
    def post(self, request, conversation_id):
        conversation = get_owned_conversation(self.user, conversation_id)
        serializer = OrganizeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        draft, _ = Draft.objects.get_or_create(user=self.user, conversation=conversation)
        draft.content = f"{draft.content}{format_organized_section(data['aiName'], data['content'], data['annotations'])}"
        draft.save(update_fields=['content', 'updated_at'])

        log_activity(self.user, DRAFT_ORGANIZE, {
            "conversationId": conversation.id,
            "messageId": data.get('messageId'),
            "aiName": data['aiName'],
            "annotationCount": len(data['annotations']),
        })
        return Response(DraftSerializer(draft).data)


class DraftSnapshotView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Save the current draft as the next numbered round.",
        tags=[DRAFT_TAG],
        responses={status.HTTP_201_CREATED: DraftHistorySerializer},
    )
    def post(self, request, conversation_id):
        conversation = get_owned_conversation(self.user, conversation_id)
        draft = Draft.objects.filter(user=self.user, conversation=conversation).first()
        if draft is None or not draft.content:
            return Response({"error": "Draft is empty"}, status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            last_round = DraftHistory.objects.filter(
                user=self.user, conversation=conversation
            ).aggregate(last=Max('round_number'))['last'] or 0
            snapshot = DraftHistory.objects.create(
                user=self.user,
                conversation=conversation,
                round_number=last_round + 1,
                content=draft.content,
            )

        log_activity(self.user, DRAFT_SNAPSHOT, {"conversationId": conversation.id, "roundNumber": snapshot.round_number})
        return Response(DraftHistorySerializer(snapshot).data, status=status.HTTP_201_CREATED)


class DraftHistoryView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Draft snapshots in round order.",
        tags=[DRAFT_TAG],
        responses={status.HTTP_200_OK: DraftHistorySerializer(many=True)},
    )
    def get(self, request, conversation_id):
        conversation = get_owned_conversation(self.user, conversation_id)
        history = DraftHistory.objects.filter(user=self.user, conversation=conversation).order_by('round_number')
        return Response(DraftHistorySerializer(history, many=True).data)


# --- Projects ---

def project_queryset():
    return Project.objects.select_related('template', 'user').prefetch_related('progress')


class ProjectListCreateView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="The user's projects with template and task progress.",
        tags=[PROJECT_TAG],
        responses={status.HTTP_200_OK: ProjectSerializer(many=True)},
    )
    def get(self, request):
        projects = project_queryset().filter(user=self.user).order_by('-updated_at', '-id')
        return Response(ProjectSerializer(projects, many=True).data)

    @swagger_auto_schema(
        operation_description="Start a project from a template; the first task begins immediately.",
        tags=[PROJECT_TAG],
        request_body=ProjectCreateSerializer,
        responses={status.HTTP_201_CREATED: ProjectSerializer},
    )
    def post(self, request):
        serializer = ProjectCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        template = TaskTemplate.objects.filter(pk=data['templateId']).first()
        if template is None:
            return Response({"error": "Template not found"}, status=status.HTTP_404_NOT_FOUND)
        conversation = None
        if data.get('conversationId') is not None:
            conversation = get_owned_conversation(self.user, data['conversationId'])

        tasks = template.tasks or []
        now = timezone.now()
        with transaction.atomic():
            project = Project.objects.create(
                user=self.user,
                template=template,
                conversation=conversation,
                title=data['title'],
                current_phase=tasks[0].get('phase', 1) if tasks else 1,
            )
            TaskProgress.objects.bulk_create([
                TaskProgress(
                    project=project,
                    task_index=index,
                    status=TaskProgress.STATUS_IN_PROGRESS if index == 0 else TaskProgress.STATUS_PENDING,
                    started_at=now if index == 0 else None,
                    last_active_at=now,
                )
                for index in range(len(tasks))
            ])

        log_activity(self.user, TASK_START, {"projectId": project.id, "taskIndex": 0})
        logger.info(f"Project {project.id} created by {self.user.username} from template {template.id}")
        return Response(ProjectSerializer(project_queryset().get(pk=project.pk)).data, status=status.HTTP_201_CREATED)


class ProjectDetailView(TokenAuthenticatedMixin, APIView):
    permission_classes = [IsAuthenticated, IsOwnerOrTeacher]

    @swagger_auto_schema(
        operation_description="Project detail; visible to its owner and to teachers.",
        tags=[PROJECT_TAG],
        manual_parameters=[ID_PARAMETER],
        responses={status.HTTP_200_OK: ProjectSerializer},
    )
    def get(self, request, id):
        project = get_object_or_404(project_queryset(), pk=id)
        self.check_object_permissions(request, project)
        return Response(ProjectSerializer(project).data)


class ProjectProgressView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description=(
            "Record a task's content and status. Completing a task starts the next pending one "
            "and completing the last task completes the project."
        ),
        tags=[PROJECT_TAG],
        request_body=ProgressUpdateSerializer,
        responses={status.HTTP_200_OK: TaskProgressSerializer},
    )
    def put(self, request, id, task_index):
        project = Project.objects.select_related('template').filter(pk=id).first()
        if project is None or project.user_id != self.user.id:
            return Response({"error": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)

        total_tasks = project.template.task_count
        if task_index >= total_tasks:
            return Response({"error": f"Task index {task_index} is out of range"}, status=status.HTTP_400_BAD_REQUEST)

        serializer = ProgressUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        new_status = data.get('status')
        ai_ratio = content_ai_ratio(data['studentContent'], data['aiContent'])
        now = timezone.now()

        with transaction.atomic():
            progress, created = TaskProgress.objects.select_for_update().get_or_create(
                project=project,
                task_index=task_index,
                defaults={'status': new_status or TaskProgress.STATUS_IN_PROGRESS, 'started_at': now},
            )
            previous_status = None if created else progress.status
            progress.student_content = data['studentContent']
            progress.ai_content = data['aiContent']
            progress.ai_ratio = ai_ratio
            progress.last_active_at = now
            if new_status:
                progress.status = new_status
            if new_status == TaskProgress.STATUS_IN_PROGRESS and (previous_status != new_status or progress.started_at is None):
                progress.started_at = now
            if new_status == TaskProgress.STATUS_COMPLETED:
                progress.completed_at = now
            progress.save()

            if new_status == TaskProgress.STATUS_COMPLETED:
                next_index = task_index + 1
                TaskProgress.objects.filter(
                    project=project, task_index=next_index, status=TaskProgress.STATUS_PENDING,
                ).update(status=TaskProgress.STATUS_IN_PROGRESS, started_at=now, last_active_at=now)

                if next_index < total_tasks:
                    project.current_task = next_index
                    project.current_phase = project.template.tasks[next_index].get('phase', project.current_phase)
                else:
                    project.status = Project.STATUS_COMPLETED
                project.save()
            else:
                # Keeps the dashboard's fallback activity timestamp fresh.
                Project.objects.filter(pk=project.pk).update(updated_at=now)

        if new_status == TaskProgress.STATUS_COMPLETED:
            log_activity(self.user, TASK_COMPLETE, {"projectId": project.id, "taskIndex": task_index, "aiRatio": ai_ratio})
        return Response(TaskProgressSerializer(progress).data)


class ProjectCompareView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Record that the student compared AI outputs, or picked one.",
        tags=[PROJECT_TAG],
        request_body=CompareSerializer,
    )
    def post(self, request, id):
        project = get_object_or_404(Project, pk=id, user=self.user)
        serializer = CompareSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        selected = data.get('selectedAiId')
        log_activity(self.user, SELECT_AI_OUTPUT if selected else COMPARE_AI_OUTPUTS, {
            "projectId": project.id,
            "taskIndex": data.get('taskIndex'),
            "aiConfigs": data['aiConfigs'],
            "selectedAiId": selected,
        })
        return Response({"success": True})


class AvailableTemplatesView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Active task templates; the default one is created if none exist.",
        tags=[PROJECT_TAG],
        responses={status.HTTP_200_OK: TaskTemplateSerializer(many=True)},
    )
    def get(self, request):
        return Response(TaskTemplateSerializer(active_templates(self.user), many=True).data)


class UnreadRemindersView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Unread teacher reminders for the current student, newest first.",
        tags=[PROJECT_TAG],
        responses={status.HTTP_200_OK: TeacherReminderSerializer(many=True)},
    )
    def get(self, request):
        reminders = TeacherReminder.objects.filter(student=self.user, read_at__isnull=True).order_by('-sent_at')
        return Response(TeacherReminderSerializer(reminders, many=True).data)


class ReminderReadView(TokenAuthenticatedMixin, APIView):
    @swagger_auto_schema(
        operation_description="Mark a reminder as read.",
        tags=[PROJECT_TAG],
        manual_parameters=[ID_PARAMETER],
        responses={status.HTTP_200_OK: TeacherReminderSerializer},
    )
    def put(self, request, id):
        reminder = get_object_or_404(TeacherReminder, pk=id, student=self.user)
        if reminder.read_at is None:
            reminder.read_at = timezone.now()
            reminder.save(update_fields=['read_at'])
        return Response(TeacherReminderSerializer(reminder).data)


# --- Teacher dashboard ---

class TeacherDashboardView(TeacherOnlyMixin, APIView):
    @swagger_auto_schema(
        operation_description="Live class status: one entry per project with activity classification.",
        tags=[TEACHER_TAG],
    )
    def get(self, request):
        now = timezone.now()
        projects = project_queryset().order_by('-updated_at', '-id')
        statuses = [summarize_project(project, project.progress.all(), now=now) for project in projects]
        return Response(summarize_dashboard(statuses))


class TeacherStudentDetailView(TeacherOnlyMixin, APIView):
    @swagger_auto_schema(
        operation_description="A student's projects and their 50 most recent activity log entries.",
        tags=[TEACHER_TAG],
    )
    def get(self, request, user_id):
        student = get_object_or_404(User, pk=user_id)
        projects = project_queryset().filter(user=student).order_by('-updated_at', '-id')
        logs = ActivityLog.objects.filter(user=student).order_by('-created_at', '-id')[:50]
        return Response({
            "student": UserSerializer(student).data,
            "projects": ProjectSerializer(projects, many=True).data,
            "activityLogs": ActivityLogSerializer(logs, many=True).data,
        })


class TeacherReminderView(TeacherOnlyMixin, APIView):
    @swagger_auto_schema(
        operation_description="Send a reminder to a student.",
        tags=[TEACHER_TAG],
        request_body=ReminderCreateSerializer,
        responses={status.HTTP_201_CREATED: TeacherReminderSerializer},
    )
    def post(self, request):
        serializer = ReminderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        student = get_object_or_404(User, pk=data['studentId'])
        project = None
        if data.get('projectId') is not None:
            project = get_object_or_404(Project, pk=data['projectId'], user=student)

        reminder = TeacherReminder.objects.create(
            teacher=self.user,
            student=student,
            project=project,
            message=data['message'],
            type=data.get('type') or "GENERAL",
        )
        log_activity(student, TEACHER_REMINDER, {
            "reminderId": reminder.id,
            "type": reminder.type,
            "message": reminder.message,
        })
        logger.info(f"Teacher {self.user.username} sent a {reminder.type} reminder to {student.username}")
        return Response(TeacherReminderSerializer(reminder).data, status=status.HTTP_201_CREATED)


class TeacherAnalyticsView(TeacherOnlyMixin, APIView):
    @swagger_auto_schema(
        operation_description="Completion, duration and AI-usage statistics across all projects.",
        tags=[TEACHER_TAG],
    )
    def get(self, request):
        rows = TaskProgress.objects.filter(started_at__isnull=False, completed_at__isnull=False)
        activity_stats = ActivityLog.objects.values('action').annotate(count=Count('id')).order_by('action')
        return Response({
            "totalProjects": Project.objects.count(),
            "completedProjects": Project.objects.filter(status=Project.STATUS_COMPLETED).count(),
            "taskAnalytics": task_analytics(rows),
            "activityStats": [{"action": s['action'], "count": s['count']} for s in activity_stats],
        })


class TeacherTemplateListView(TeacherOnlyMixin, APIView):
    @swagger_auto_schema(
        operation_description="Active task templates; the default one is created if none exist.",
        tags=[TEACHER_TAG],
        responses={status.HTTP_200_OK: TaskTemplateSerializer(many=True)},
    )
    def get(self, request):
        return Response(TaskTemplateSerializer(active_templates(self.user), many=True).data)


class TeacherTemplateInitView(TeacherOnlyMixin, APIView):
    @swagger_auto_schema(
        operation_description="Create this teacher's default template if it does not exist yet.",
        tags=[TEACHER_TAG],
        responses={status.HTTP_200_OK: TaskTemplateSerializer},
    )
    def post(self, request):
        return Response(TaskTemplateSerializer(get_or_create_default_template(self.user)).data)


# --- Uploads ---

FILE_PARAMETER = openapi.Parameter('file', openapi.IN_FORM, type=openapi.TYPE_FILE, required=True)
FILES_PARAMETER = openapi.Parameter('files', openapi.IN_FORM, type=openapi.TYPE_FILE, required=True)


class UploadView(TokenAuthenticatedMixin, APIView):
    parser_classes = [MultiPartParser, FormParser]

    @swagger_auto_schema(
        operation_description="Upload one file (10MB max; images, PDF, text, Word).",
        tags=[UPLOAD_TAG],
        manual_parameters=[FILE_PARAMETER],
    )
    def post(self, request):
        upload = request.FILES.get('file')
        if upload is None:
            return Response({"error": "No file selected"}, status=status.HTTP_400_BAD_REQUEST)
        info = store_upload(upload)
        log_activity(self.user, FILE_UPLOAD, {"filename": info["originalName"], "size": info["size"]})
        return Response(info, status=status.HTTP_201_CREATED)


class UploadMultipleView(TokenAuthenticatedMixin, APIView):
    parser_classes = [MultiPartParser, FormParser]

    @swagger_auto_schema(
        operation_description="Upload up to five files at once.",
        tags=[UPLOAD_TAG],
        manual_parameters=[FILES_PARAMETER],
    )
    def post(self, request):
        uploads = request.FILES.getlist('files')
        if not uploads:
            return Response({"error": "No file selected"}, status=status.HTTP_400_BAD_REQUEST)
        max_files = getattr(settings, 'UPLOAD_MAX_FILES', 5)
        if len(uploads) > max_files:
            return Response({"error": f"At most {max_files} files per request"}, status=status.HTTP_400_BAD_REQUEST)

        infos = store_uploads(uploads)
        log_activity(self.user, FILE_UPLOAD_MULTIPLE, {
            "count": len(infos),
            "totalSize": sum(info["size"] for info in infos),
        })
        return Response(infos, status=status.HTTP_201_CREATED)


class UploadFileView(TokenAuthenticatedMixin, APIView):
    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return super().get_permissions()

    def get_authenticators(self):
        # Stored files are served without a token.
        if getattr(self, 'request', None) is not None and self.request.method == 'GET':
            return []
        return super().get_authenticators()

    @swagger_auto_schema(operation_description="Download a stored file.", tags=[UPLOAD_TAG])
    def get(self, request, filename):
        path = resolve_upload_path(filename)
        if not path.exists():
            return Response({"error": "File not found"}, status=status.HTTP_404_NOT_FOUND)
        content_type, _ = mimetypes.guess_type(path.name)
        return FileResponse(open(path, 'rb'), content_type=content_type or 'application/octet-stream')

    @swagger_auto_schema(operation_description="Delete a stored file.", tags=[UPLOAD_TAG])
    def delete(self, request, filename):
        delete_upload(filename)
        log_activity(self.user, FILE_DELETE, {"filename": filename})
        return Response({"success": True})
