import os
import shutil
import tempfile
from datetime import timedelta

from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient
from unittest.mock import MagicMock, patch
from knox.models import AuthToken

from .models import (
    User,
    AIConfig,
    Conversation,
    Message,
    Annotation,
    Note,
    Draft,
    TaskTemplate,
    Project,
    TaskProgress,
    TeacherReminder,
    ActivityLog,
)
from .conversation_service import build_context_window, send_message
from .llm_providers import ProviderError, ProviderRegistry
from .templates import DEFAULT_TEMPLATE_TASKS, get_or_create_default_template
from .uploads import store_upload, store_uploads
from .views import format_organized_section


def fake_provider(reply=None, error=None):
    provider = MagicMock()
    if error is not None:
        provider.get_chat_completion.side_effect = error
    else:
        provider.get_chat_completion.return_value = reply
    return provider


class ClassroomAPITestCase(TestCase):
    def setUp(self):
        self.student = User.objects.create_user(username="mia", password="password", name="Mia")
        self.teacher = User.objects.create_user(
            username="mr_lee", password="password", name="Mr Lee", role=User.ROLE_TEACHER
        )
        self.client = self.client_for(self.student)

    def client_for(self, user):
        _, token = AuthToken.objects.create(user)
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        return client


class AuthTests(ClassroomAPITestCase):
    def test_register_returns_user_and_token(self):
        response = APIClient().post(
            reverse('auth-register'),
            {'username': 'noah', 'password': 'secret123', 'name': 'Noah'},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['user']['role'], User.ROLE_STUDENT)
        self.assertTrue(response.data['token'])

        me = APIClient()
        me.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['token']}")
        self.assertEqual(me.get(reverse('auth-me')).data['username'], 'noah')

    def test_register_duplicate_username(self):
        response = APIClient().post(
            reverse('auth-register'),
            {'username': 'mia', 'password': 'x', 'name': 'Other Mia'},
            format='json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn('error', response.data)
        self.assertIn('username', response.data['details'])

    def test_login_success_and_bad_password(self):
        ok = APIClient().post(reverse('auth-login'), {'username': 'mia', 'password': 'password'}, format='json')
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.data['user']['id'], self.student.id)

        bad = APIClient().post(reverse('auth-login'), {'username': 'mia', 'password': 'nope'}, format='json')
        self.assertEqual(bad.status_code, 401)
        self.assertEqual(bad.data, {'error': 'Invalid username or password'})

    def test_missing_token_is_unauthorized(self):
        self.assertEqual(APIClient().get(reverse('conversation-list')).status_code, 401)

    def test_expired_token_is_rejected_and_deleted(self):
        instance, token = AuthToken.objects.create(self.student, expiry=timedelta(seconds=-1))
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        self.assertEqual(client.get(reverse('auth-me')).status_code, 401)
        self.assertFalse(AuthToken.objects.filter(pk=instance.pk).exists())

    def test_logout_invalidates_token(self):
        self.assertEqual(self.client.post(reverse('auth-logout')).status_code, 200)
        self.assertEqual(self.client.get(reverse('auth-me')).status_code, 401)

    def test_batch_create_is_teacher_only(self):
        payload = {'students': [{'username': 'a', 'name': 'A', 'password': 'p'}]}
        response = self.client.post(reverse('auth-batch-create-students'), payload, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'TEACHER_ONLY')

    def test_batch_create_reports_each_row(self):
        payload = {'students': [
            {'username': 'leo', 'name': 'Leo', 'password': 'p'},
            {'username': 'mia', 'name': 'Dup', 'password': 'p'},
            {'username': 'ava', 'name': 'Ava'},
        ]}
        response = self.client_for(self.teacher).post(reverse('auth-batch-create-students'), payload, format='json')

        self.assertEqual(response.status_code, 200)
        results = response.data['results']
        self.assertEqual([r['success'] for r in results], [True, False, False])
        self.assertEqual(results[1]['error'], 'Username already exists')
        self.assertTrue(User.objects.filter(username='leo', role=User.ROLE_STUDENT).exists())


class AIConfigTests(ClassroomAPITestCase):
    def test_list_shows_only_active_configs(self):
        AIConfig.objects.create(name="Gemini", provider="gemini", model="gemini-2.0-flash")
        AIConfig.objects.create(name="Old", provider="openai", model="gpt-3.5", is_active=False)

        response = self.client.get(reverse('ai-config-list'))

        self.assertEqual([c['name'] for c in response.data], ["Gemini"])
        self.assertNotIn('systemPrompt', response.data[0])

    def test_students_cannot_create_configs(self):
        payload = {'name': 'X', 'provider': 'openai', 'model': 'gpt-4'}
        self.assertEqual(self.client.post(reverse('ai-config-list'), payload, format='json').status_code, 403)

        response = self.client_for(self.teacher).post(reverse('ai-config-list'), payload, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data['isActive'])

    @patch('classroom.views.get_provider_registry')
    def test_providers_lists_configured_ids(self, mock_registry):
        mock_registry.return_value = ProviderRegistry({"deepseek": fake_provider("x")})
        self.assertEqual(self.client.get(reverse('ai-providers')).data, ["deepseek"])


class ConversationTests(ClassroomAPITestCase):
    def setUp(self):
        super().setUp()
        self.conversation = Conversation.objects.create(user=self.student, title="Worlds")
        self.gemini = AIConfig.objects.create(name="Gemini Pro", provider="gemini", model="gemini-2.0-flash")
        self.deepseek = AIConfig.objects.create(name="DeepSeek Chat", provider="deepseek", model="deepseek-chat")

    def _send(self, content, ids):
        return self.client.post(
            reverse('conversation-messages', kwargs={'id': self.conversation.id}),
            {'content': content, 'aiConfigIds': ids},
            format='json',
        )

    def test_same_provider_configs_keep_their_own_model_and_prompt(self):
        brief = AIConfig.objects.create(
            name="Gemini Flash", provider="gemini", model="gemini-2.0-flash", system_prompt="Be brief."
        )
        pro = AIConfig.objects.create(name="Gemini Pro 1.5", provider="gemini", model="gemini-1.5-pro")
        provider = MagicMock()
        provider.get_chat_completion.side_effect = lambda messages, model=None: f"{model}|{messages[0]['role']}"

        turn = send_message(self.conversation, "Hi", [brief, pro], registry=ProviderRegistry({"gemini": provider}))

        self.assertEqual([m.ai_config_id for m in turn.assistant_messages], [brief.id, pro.id])
        self.assertEqual(
            [m.content for m in turn.assistant_messages],
            ["gemini-2.0-flash|system", "gemini-1.5-pro|user"],
        )

    def test_create_conversation_gets_default_title(self):
        response = self.client.post(reverse('conversation-list'), {}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data['title'].startswith("New conversation "))

    @patch('classroom.views.get_provider_registry')
    def test_each_config_gets_a_reply_and_failures_are_isolated(self, mock_registry):
        mock_registry.return_value = ProviderRegistry({
            "gemini": fake_provider("A"),
            "deepseek": fake_provider(error=ProviderError("rate limited", status_code=429)),
        })

        response = self._send("Describe a sky city", [self.gemini.id, self.deepseek.id])

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['userMessage']['content'], "Describe a sky city")
        replies = response.data['assistantMessages']
        self.assertEqual([r['aiConfigId'] for r in replies], [self.gemini.id, self.deepseek.id])
        self.assertEqual(replies[0]['content'], "A")
        self.assertFalse(replies[0]['isError'])
        self.assertEqual(replies[1]['content'], "[Error] rate limited")
        self.assertTrue(replies[1]['isError'])
        self.assertEqual(Message.objects.filter(conversation=self.conversation).count(), 3)

    @patch('classroom.views.get_provider_registry')
    def test_user_message_survives_when_every_provider_fails(self, mock_registry):
        mock_registry.return_value = ProviderRegistry()

        response = self._send("Hello?", [self.gemini.id, self.deepseek.id])

        self.assertEqual(response.status_code, 201)
        self.assertTrue(all(r['isError'] for r in response.data['assistantMessages']))
        self.assertTrue(Message.objects.filter(conversation=self.conversation, role='user', content="Hello?").exists())

    @patch('classroom.views.get_provider_registry')
    def test_unknown_config_ids_are_skipped(self, mock_registry):
        mock_registry.return_value = ProviderRegistry({"gemini": fake_provider("A")})
        response = self._send("Hi", [9999, self.gemini.id])
        self.assertEqual(len(response.data['assistantMessages']), 1)

    @patch('classroom.views.get_provider_registry')
    def test_history_sent_to_providers_includes_new_message(self, mock_registry):
        provider = fake_provider("ok")
        mock_registry.return_value = ProviderRegistry({"gemini": provider})
        Message.objects.create(conversation=self.conversation, role="user", content="earlier")

        self._send("now", [self.gemini.id])

        history = provider.get_chat_completion.call_args.args[0]
        self.assertEqual(history, [
            {"role": "user", "content": "earlier"},
            {"role": "user", "content": "now"},
        ])

    def test_context_window_keeps_most_recent_twenty(self):
        for i in range(25):
            Message.objects.create(conversation=self.conversation, role="user", content=f"m{i}")

        window = build_context_window(self.conversation)

        self.assertEqual(len(window), 20)
        self.assertEqual(window[0]['content'], "m5")
        self.assertEqual(window[-1]['content'], "m24")

    def test_other_users_conversation_is_not_found(self):
        other = Conversation.objects.create(user=self.teacher, title="Private")
        response = self.client.get(reverse('conversation-detail', kwargs={'id': other.id}))
        self.assertEqual(response.status_code, 404)

    def test_messages_cannot_be_edited(self):
        message = Message.objects.create(conversation=self.conversation, role="user", content="fixed")
        message.content = "changed"
        with self.assertRaises(ValueError):
            message.save()


class AnnotationTests(ClassroomAPITestCase):
    def setUp(self):
        super().setUp()
        conversation = Conversation.objects.create(user=self.student, title="Notes")
        self.message = Message.objects.create(conversation=conversation, role="assistant", content="A floating city")

    def _create(self, **overrides):
        payload = {
            'messageId': self.message.id,
            'selectedText': 'floating',
            'type': 'KNOWLEDGE',
            'label': 'INSPIRATION',
            'startOffset': 2,
            'endOffset': 10,
        }
        payload.update(overrides)
        return self.client.post(reverse('annotation-create'), payload, format='json')

    def test_create_and_list_by_message(self):
        self._create(startOffset=8, endOffset=12, selectedText='city')
        self.assertEqual(self._create().status_code, 201)

        response = self.client.get(reverse('annotation-by-message', kwargs={'message_id': self.message.id}))

        self.assertEqual([a['startOffset'] for a in response.data], [2, 8])
        self.assertTrue(ActivityLog.objects.filter(user=self.student, action='ANNOTATION_KNOWLEDGE').exists())

    def test_delete_type_is_marked_deleted(self):
        response = self._create(type='DELETE', label=None)
        self.assertTrue(response.data['isDeleted'])

    def test_update_and_delete_are_owner_only(self):
        annotation_id = self._create().data['id']
        url = reverse('annotation-detail', kwargs={'id': annotation_id})

        other = self.client_for(self.teacher)
        self.assertEqual(other.patch(url, {'note': 'hijack'}, format='json').status_code, 404)

        response = self.client.patch(url, {'note': 'Use this for chapter 2'}, format='json')
        self.assertEqual(response.data['note'], 'Use this for chapter 2')

        self.assertEqual(self.client.delete(url).status_code, 200)
        self.assertFalse(Annotation.objects.filter(pk=annotation_id).exists())


class NoteAndDraftTests(ClassroomAPITestCase):
    def setUp(self):
        super().setUp()
        self.conversation = Conversation.objects.create(user=self.student, title="Drafting")

    def test_note_is_created_on_first_read(self):
        response = self.client.get(reverse('note', kwargs={'conversation_id': self.conversation.id}))
        self.assertEqual(response.data['content'], "")
        self.assertEqual(Note.objects.filter(conversation=self.conversation).count(), 1)

    def test_note_update_logs_length(self):
        self.client.put(reverse('note', kwargs={'conversation_id': self.conversation.id}), {'content': 'hello'}, format='json')
        log = ActivityLog.objects.get(user=self.student, action='NOTE_UPDATE')
        self.assertEqual(log.details, {'conversationId': self.conversation.id, 'contentLength': 5})

    def test_add_knowledge_appends_entries(self):
        url = reverse('note-add-knowledge', kwargs={'conversation_id': self.conversation.id})
        self.client.post(url, {'text': 'Cities float on storms', 'source': 'Gemini Pro'}, format='json')
        response = self.client.post(url, {'text': 'Storms are seasonal', 'source': 'GPT-4'}, format='json')

        self.assertEqual(
            response.data['content'],
            "📌 Cities float on storms\n— Source: Gemini Pro\n\n📌 Storms are seasonal\n— Source: GPT-4",
        )

    def test_organize_with_annotations(self):
        section = format_organized_section("GPT-4", "ignored", [
            {'selectedText': 'sky whales', 'label': 'INSPIRATION', 'note': 'main creature'},
            {'selectedText': 'why storms?', 'label': 'DOUBT'},
            {'selectedText': 'misc'},
        ])
        self.assertEqual(
            section,
            '\n\n---\n### From GPT-4\n'
            '\n💡 "sky whales"\n   → main creature'
            '\n❓ "why storms?"'
            '\n📌 "misc"',
        )

    def test_organize_without_annotations_appends_content(self):
        Draft.objects.create(user=self.student, conversation=self.conversation, content="Intro")
        response = self.client.post(
            reverse('draft-organize', kwargs={'conversation_id': self.conversation.id}),
            {'aiName': 'Gemini Pro', 'content': 'Full reply'},
            format='json',
        )
        self.assertEqual(response.data['content'], "Intro\n\n---\n### From Gemini Pro\n\nFull reply")

    def test_snapshot_requires_content_and_numbers_rounds(self):
        snapshot_url = reverse('draft-snapshot', kwargs={'conversation_id': self.conversation.id})
        empty = self.client.post(snapshot_url)
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.data['error'], "Draft is empty")

        self.client.put(reverse('draft', kwargs={'conversation_id': self.conversation.id}), {'content': 'v1'}, format='json')
        self.assertEqual(self.client.post(snapshot_url).data['roundNumber'], 1)
        self.client.put(reverse('draft', kwargs={'conversation_id': self.conversation.id}), {'content': 'v2'}, format='json')
        self.assertEqual(self.client.post(snapshot_url).data['roundNumber'], 2)

        history = self.client.get(reverse('draft-history', kwargs={'conversation_id': self.conversation.id})).data
        self.assertEqual([(h['roundNumber'], h['content']) for h in history], [(1, 'v1'), (2, 'v2')])


class ProjectTests(ClassroomAPITestCase):
    def setUp(self):
        super().setUp()
        self.template = get_or_create_default_template(self.teacher)

    def _create_project(self):
        response = self.client.post(
            reverse('project-list'), {'templateId': self.template.id, 'title': 'Sky City'}, format='json'
        )
        self.assertEqual(response.status_code, 201)
        return response.data

    def _progress_url(self, project_id, task_index):
        return reverse('project-progress', kwargs={'id': project_id, 'task_index': task_index})

    def test_create_starts_first_task(self):
        data = self._create_project()

        self.assertEqual(len(data['progress']), len(DEFAULT_TEMPLATE_TASKS))
        self.assertEqual(data['progress'][0]['status'], 'IN_PROGRESS')
        self.assertTrue(all(p['status'] == 'PENDING' for p in data['progress'][1:]))
        self.assertTrue(ActivityLog.objects.filter(user=self.student, action='TASK_START').exists())

    def test_missing_template_is_not_found(self):
        response = self.client.post(reverse('project-list'), {'templateId': 999, 'title': 'x'}, format='json')
        self.assertEqual(response.status_code, 404)

    def test_completing_a_task_advances_the_project(self):
        project_id = self._create_project()['id']

        response = self.client.put(
            self._progress_url(project_id, 0),
            {'studentContent': 's' * 60, 'aiContent': 'a' * 40, 'status': 'COMPLETED'},
            format='json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertAlmostEqual(response.data['aiRatio'], 0.4)
        self.assertIsNotNone(response.data['completedAt'])
        project = Project.objects.get(pk=project_id)
        self.assertEqual(project.current_task, 1)
        self.assertEqual(project.current_phase, DEFAULT_TEMPLATE_TASKS[1]['phase'])
        nxt = TaskProgress.objects.get(project=project, task_index=1)
        self.assertEqual(nxt.status, TaskProgress.STATUS_IN_PROGRESS)
        self.assertIsNotNone(nxt.started_at)

    def test_completing_last_task_completes_project(self):
        project_id = self._create_project()['id']
        for index in range(len(DEFAULT_TEMPLATE_TASKS)):
            self.client.put(self._progress_url(project_id, index), {'status': 'COMPLETED'}, format='json')

        self.assertEqual(Project.objects.get(pk=project_id).status, Project.STATUS_COMPLETED)

    def test_progress_rejects_other_users_and_bad_indexes(self):
        project_id = self._create_project()['id']

        other = self.client_for(self.teacher).put(self._progress_url(project_id, 0), {'status': 'COMPLETED'}, format='json')
        self.assertEqual(other.status_code, 403)

        out_of_range = self.client.put(self._progress_url(project_id, len(DEFAULT_TEMPLATE_TASKS)), {}, format='json')
        self.assertEqual(out_of_range.status_code, 400)

    def test_detail_visible_to_owner_and_teacher_only(self):
        project_id = self._create_project()['id']
        url = reverse('project-detail', kwargs={'id': project_id})
        intruder = User.objects.create_user(username="sam", password="password")

        self.assertEqual(self.client.get(url).status_code, 200)
        self.assertEqual(self.client_for(self.teacher).get(url).status_code, 200)
        self.assertEqual(self.client_for(intruder).get(url).status_code, 403)

    def test_compare_logs_selection(self):
        project_id = self._create_project()['id']
        self.client.post(
            reverse('project-compare', kwargs={'id': project_id}),
            {'aiConfigs': [1, 2], 'taskIndex': 0, 'selectedAiId': 2},
            format='json',
        )
        self.client.post(reverse('project-compare', kwargs={'id': project_id}), {'aiConfigs': [1, 2]}, format='json')

        actions = set(ActivityLog.objects.filter(user=self.student).values_list('action', flat=True))
        self.assertTrue({'SELECT_AI_OUTPUT', 'COMPARE_AI_OUTPUTS'} <= actions)

    def test_available_templates_seeds_default(self):
        TaskTemplate.objects.all().delete()
        response = self.client.get(reverse('project-templates'))
        self.assertEqual(len(response.data), 1)
        self.assertEqual(len(response.data[0]['tasks']), 7)


class TeacherTests(ClassroomAPITestCase):
    def setUp(self):
        super().setUp()
        self.teacher_client = self.client_for(self.teacher)
        template = get_or_create_default_template(self.teacher)
        self.project_id = self.client.post(
            reverse('project-list'), {'templateId': template.id, 'title': 'Sky City'}, format='json'
        ).data['id']

    def test_dashboard_is_teacher_only(self):
        self.assertEqual(self.client.get(reverse('teacher-dashboard')).status_code, 403)

    def test_dashboard_classifies_idle_student(self):
        TaskProgress.objects.filter(project_id=self.project_id, task_index=0).update(
            last_active_at=timezone.now() - timedelta(minutes=7)
        )

        data = self.teacher_client.get(reverse('teacher-dashboard')).data

        self.assertEqual(data['totalStudents'], 1)
        self.assertEqual(data['idleCount'], 1)
        student = data['students'][0]
        self.assertEqual(student['activityStatus'], 'idle')
        self.assertEqual(student['idleMinutes'], 7)
        self.assertEqual(student['student']['username'], 'mia')

    def test_reminder_flow(self):
        response = self.teacher_client.post(
            reverse('teacher-reminder'),
            {'studentId': self.student.id, 'projectId': self.project_id, 'message': 'Try drafting alone first', 'type': 'STUCK'},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(ActivityLog.objects.filter(user=self.student, action='TEACHER_REMINDER').exists())

        unread = self.client.get(reverse('reminders-unread')).data
        self.assertEqual([r['message'] for r in unread], ['Try drafting alone first'])

        self.client.put(reverse('reminder-read', kwargs={'id': unread[0]['id']}))
        self.assertEqual(self.client.get(reverse('reminders-unread')).data, [])
        self.assertIsNotNone(TeacherReminder.objects.get(pk=unread[0]['id']).read_at)

    def test_student_detail_includes_projects_and_logs(self):
        data = self.teacher_client.get(reverse('teacher-student', kwargs={'user_id': self.student.id})).data
        self.assertEqual(len(data['projects']), 1)
        self.assertEqual(data['activityLogs'][0]['action'], 'TASK_START')

    def test_analytics(self):
        self.client.put(
            reverse('project-progress', kwargs={'id': self.project_id, 'task_index': 0}),
            {'studentContent': 'abc', 'aiContent': 'a', 'status': 'COMPLETED'},
            format='json',
        )

        data = self.teacher_client.get(reverse('teacher-analytics')).data

        self.assertEqual(data['totalProjects'], 1)
        self.assertEqual(data['completedProjects'], 0)
        self.assertEqual(data['taskAnalytics'][0]['taskIndex'], 0)
        self.assertEqual(data['taskAnalytics'][0]['avgAiRatio'], 25)
        stats = {s['action']: s['count'] for s in data['activityStats']}
        self.assertEqual(stats['TASK_COMPLETE'], 1)


class UploadTests(ClassroomAPITestCase):
    def setUp(self):
        super().setUp()
        self.upload_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.upload_dir, ignore_errors=True)
        override = override_settings(UPLOAD_DIR=self.upload_dir, UPLOAD_MAX_BYTES=1024)
        override.enable()
        self.addCleanup(override.disable)

    def test_upload_download_delete(self):
        upload = SimpleUploadedFile("Outline.TXT", b"chapter one", content_type="text/plain")
        response = self.client.post(reverse('upload'), {'file': upload}, format='multipart')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['originalName'], "Outline.TXT")
        self.assertTrue(response.data['filename'].endswith(".txt"))

        download = APIClient().get(reverse('upload-file', kwargs={'filename': response.data['filename']}))
        self.assertEqual(download.status_code, 200)
        self.assertEqual(b"".join(download.streaming_content), b"chapter one")
        download.close()

        deleted = self.client.delete(reverse('upload-file', kwargs={'filename': response.data['filename']}))
        self.assertEqual(deleted.data, {'success': True})

    def test_rejects_disallowed_type(self):
        upload = SimpleUploadedFile("tool.exe", b"MZ", content_type="application/x-msdownload")
        response = self.client.post(reverse('upload'), {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, 400)
        self.assertIn("Unsupported file type", response.data['error'])

    def test_rejects_oversized_file(self):
        upload = SimpleUploadedFile("big.txt", b"x" * 2048, content_type="text/plain")
        response = self.client.post(reverse('upload'), {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, 400)

    def test_missing_file(self):
        response = self.client.post(reverse('upload'), {}, format='multipart')
        self.assertEqual(response.status_code, 400)

    def test_multiple_upload_limit(self):
        files = [SimpleUploadedFile(f"f{i}.txt", b"x", content_type="text/plain") for i in range(6)]
        response = self.client.post(reverse('upload-multiple'), {'files': files}, format='multipart')
        self.assertEqual(response.status_code, 400)

        response = self.client.post(reverse('upload-multiple'), {'files': files[:2]}, format='multipart')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.data), 2)

    def test_download_rejects_hidden_names(self):
        response = APIClient().get(reverse('upload-file', kwargs={'filename': '.env'}))
        self.assertEqual(response.status_code, 404)

    def test_failed_write_leaves_no_partial_file(self):
        upload = SimpleUploadedFile("draft.txt", b"half written", content_type="text/plain")
        with patch.object(upload, 'chunks', side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                store_upload(upload)
        self.assertEqual(os.listdir(self.upload_dir), [])

    def test_multiple_upload_is_all_or_nothing(self):
        files = [SimpleUploadedFile(f"part{i}.txt", b"x", content_type="text/plain") for i in range(2)]
        calls = []

        def fail_on_second(file):
            calls.append(file)
            if len(calls) == 2:
                raise OSError("disk full")
            return store_upload(file)

        with patch('classroom.uploads.store_upload', side_effect=fail_on_second):
            with self.assertRaises(OSError):
                store_uploads(files)
        self.assertEqual(len(calls), 2)
        self.assertEqual(os.listdir(self.upload_dir), [])


class ManagementCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        call_command('seed_ai_configs', stdout=MagicMock())
        call_command('seed_ai_configs', stdout=MagicMock())

        self.assertEqual(AIConfig.objects.count(), 4)
        self.assertEqual(
            sorted(AIConfig.objects.values_list('provider', flat=True)),
            ['deepseek', 'gemini', 'openai', 'qwen'],
        )
        self.assertEqual(TaskTemplate.objects.count(), 1)

    @override_settings(GEMINI_API_KEY="", OPENAI_API_KEY="", DASHSCOPE_API_KEY="", DEEPSEEK_API_KEY="")
    def test_validate_config_fails_without_provider_keys(self):
        with self.assertRaises(CommandError):
            call_command('validate_config', stdout=MagicMock())

    @override_settings(DEEPSEEK_API_KEY="ds-key")
    def test_validate_config_passes_with_one_key(self):
        call_command('validate_config', stdout=MagicMock())


class ErrorHandlingTests(ClassroomAPITestCase):
    @patch('classroom.views.get_provider_registry')
    def test_unexpected_error_returns_opaque_500(self, mock_registry):
        mock_registry.side_effect = RuntimeError("settings exploded: secret-key-123")
        response = self.client.get(reverse('ai-providers'))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data, {"error": "Internal server error"})

    def test_activity_log_failure_does_not_fail_note_save(self):
        conversation = Conversation.objects.create(user=self.student, title="Worlds")
        with patch.object(ActivityLog.objects, 'create', side_effect=DatabaseError("disk full")):
            response = self.client.put(
                reverse('note', kwargs={'conversation_id': conversation.id}),
                {'content': 'hello'},
                format='json',
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['content'], 'hello')
        self.assertEqual(Note.objects.get(user=self.student, conversation=conversation).content, 'hello')
        self.assertFalse(ActivityLog.objects.filter(user=self.student).exists())


class HealthTests(TestCase):
    def test_health_needs_no_token(self):
        response = APIClient().get(reverse('health'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'ok')
