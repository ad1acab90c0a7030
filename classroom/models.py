# classroom/models.py


from django.db import models
from django.contrib.auth.models import AbstractUser
from django.utils import timezone


class User(AbstractUser):
    ROLE_STUDENT = "STUDENT"
    ROLE_TEACHER = "TEACHER"
    ROLE_CHOICES = [
        (ROLE_STUDENT, "Student"),
        (ROLE_TEACHER, "Teacher"),
    ]

    name = models.CharField(max_length=150, blank=True, default="")
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_STUDENT, db_index=True)

    @property
    def is_teacher(self):
        return self.role == self.ROLE_TEACHER

    def __str__(self):
        return f"{self.username} ({self.role})"


class AIConfig(models.Model):
    PROVIDER_CHOICES = [
        ("gemini", "Gemini"),
        ("openai", "OpenAI"),
        ("qwen", "Qwen"),
        ("deepseek", "DeepSeek"),
    ]

    name = models.CharField(max_length=255)
    provider = models.CharField(max_length=50, choices=PROVIDER_CHOICES, db_index=True)
    model = models.CharField(max_length=100, help_text="Model identifier sent to the provider")
    system_prompt = models.TextField(blank=True, default="")
    avatar = models.CharField(max_length=255, blank=True, default="")
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.name} ({self.provider}/{self.model})"


class Conversation(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="conversations")
    title = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "-updated_at"], name="conversation_user_updated_idx"),
        ]

    def __str__(self):
        return self.title


class Message(models.Model):
    ROLE_CHOICES = [
        ("user", "User"),
        ("assistant", "Assistant"),
    ]

    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="messages")
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)
    content = models.TextField()
    ai_config = models.ForeignKey(
        AIConfig, on_delete=models.SET_NULL, related_name="messages", null=True, blank=True,
        help_text="The AI configuration that produced this reply (assistant messages only).",
    )
    is_error = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]

    def save(self, *args, **kwargs):
        # Messages are append-only.
        if not self._state.adding:
            raise ValueError("Messages cannot be modified once created.")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.role}: {self.content[:50]}"


class Annotation(models.Model):
    TYPE_CHOICES = [
        ("KNOWLEDGE", "Knowledge"),
        ("DELETE", "Delete"),
        ("COMMENT", "Comment"),
    ]
    LABEL_CHOICES = [
        ("DOUBT", "Doubt"),
        ("INSPIRATION", "Inspiration"),
        ("QUESTION", "Question"),
        ("NOTE", "Note"),
    ]

    message = models.ForeignKey(Message, on_delete=models.CASCADE, related_name="annotations")
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="annotations")
    selected_text = models.TextField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    label = models.CharField(max_length=20, choices=LABEL_CHOICES, null=True, blank=True)
    note = models.TextField(null=True, blank=True)
    start_offset = models.IntegerField(default=0)
    end_offset = models.IntegerField(default=0)
    is_deleted = models.BooleanField(
        default=False,
        help_text="Set when the annotation marks text the student wants struck out.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["start_offset", "id"]

    def __str__(self):
        return f"{self.type} on message {self.message_id}"


class Note(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="notes")
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="notes")
    content = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "conversation"], name="unique_note_per_conversation"),
        ]


class Draft(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="drafts")
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="drafts")
    content = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "conversation"], name="unique_draft_per_conversation"),
        ]


class DraftHistory(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="draft_history")
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="draft_history")
    round_number = models.PositiveIntegerField()
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["round_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "conversation", "round_number"],
                name="unique_draft_round",
            ),
        ]


class TaskTemplate(models.Model):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    tasks = models.JSONField(
        default=list,
        help_text="Ordered list of {phase, name, description, softPrompts, suggestedAICount}.",
    )
    is_active = models.BooleanField(default=True, db_index=True)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, related_name="task_templates", null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def task_count(self):
        return len(self.tasks or [])

    def __str__(self):
        return self.name


class Project(models.Model):
    STATUS_IN_PROGRESS = "IN_PROGRESS"
    STATUS_COMPLETED = "COMPLETED"
    STATUS_CHOICES = [
        (STATUS_IN_PROGRESS, "In progress"),
        (STATUS_COMPLETED, "Completed"),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="projects")
    template = models.ForeignKey(TaskTemplate, on_delete=models.PROTECT, related_name="projects")
    conversation = models.ForeignKey(
        Conversation, on_delete=models.SET_NULL, related_name="projects", null=True, blank=True
    )
    title = models.CharField(max_length=255)
    current_phase = models.PositiveIntegerField(default=1)
    current_task = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_IN_PROGRESS, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.title} ({self.user_id})"


class TaskProgress(models.Model):
    STATUS_PENDING = "PENDING"
    STATUS_IN_PROGRESS = "IN_PROGRESS"
    STATUS_COMPLETED = "COMPLETED"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_IN_PROGRESS, "In progress"),
        (STATUS_COMPLETED, "Completed"),
    ]

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="progress")
    task_index = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    student_content = models.TextField(blank=True, default="")
    ai_content = models.TextField(blank=True, default="")
    ai_ratio = models.FloatField(
        default=0.0,
        help_text="len(ai_content) / (len(student_content) + len(ai_content)), 0 when both are empty.",
    )
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    last_active_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["task_index"]
        constraints = [
            models.UniqueConstraint(
                fields=["project", "task_index"],
                name="unique_progress_per_task",
            ),
        ]

    def __str__(self):
        return f"Project {self.project_id} task {self.task_index}: {self.status}"


class TeacherReminder(models.Model):
    TYPE_CHOICES = [
        ("GENERAL", "General"),
        ("STUCK", "Stuck"),
        ("AI_OVERUSE", "AI overuse"),
        ("ENCOURAGE", "Encourage"),
    ]

    teacher = models.ForeignKey(User, on_delete=models.CASCADE, related_name="sent_reminders")
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name="reminders")
    project = models.ForeignKey(
        Project, on_delete=models.SET_NULL, related_name="reminders", null=True, blank=True
    )
    message = models.TextField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="GENERAL")
    sent_at = models.DateTimeField(default=timezone.now)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-sent_at"]

    def __str__(self):
        return f"{self.type} reminder to {self.student_id}"


class ActivityLog(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="activity_logs")
    action = models.CharField(max_length=50, db_index=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "-created_at"], name="activity_user_created_idx"),
        ]

    def __str__(self):
        return f"{self.action} by {self.user_id}"
