import logging

from .models import TaskTemplate

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "Interactive Narrative Design"
DEFAULT_TEMPLATE_DESCRIPTION = (
    "A complete interactive narrative design workflow: concept, worldbuilding, "
    "characters, plot, interaction and dialogue design."
)

DEFAULT_TEMPLATE_TASKS = [
    {
        "phase": 1,
        "name": "Core Concept",
        "description": "Story theme, core conflict, emotional tone",
        "softPrompts": ["Think through the core concept on your own first, then use AI to expand it"],
        "suggestedAICount": 2,
    },
    {
        "phase": 1,
        "name": "Worldbuilding",
        "description": "World rules, historical background, visual style",
        "softPrompts": ["Let several AIs generate world elements separately, then integrate them yourself"],
        "suggestedAICount": 2,
    },
    {
        "phase": 2,
        "name": "Character System",
        "description": "Protagonist, supporting cast, relationship map",
        "softPrompts": ["Character personality and motivation need your own deep thinking"],
        "suggestedAICount": 2,
    },
    {
        "phase": 2,
        "name": "Plot Design",
        "description": "Main line, side lines, branching points",
        "softPrompts": ["Use AI to compare different plot directions"],
        "suggestedAICount": 3,
    },
    {
        "phase": 2,
        "name": "Interaction Nodes",
        "description": "Player choice points, consequence branches",
        "softPrompts": ["Focus on meaningful choices and distinct consequences"],
        "suggestedAICount": 2,
    },
    {
        "phase": 2,
        "name": "Dialogue Design",
        "description": "Key conversations, branching dialogue, emotional expression",
        "softPrompts": ["Own the dialogue style yourself; AI can help draft alternatives"],
        "suggestedAICount": 2,
    },
    {
        "phase": 3,
        "name": "Integration & Iteration",
        "description": "Flowchart, consistency check, polishing",
        "softPrompts": ["Check every part for consistency and completeness"],
        "suggestedAICount": 1,
    },
]


def get_or_create_default_template(created_by=None):
    """The default template owned by ``created_by``, created on first use."""
    template = TaskTemplate.objects.filter(name=DEFAULT_TEMPLATE_NAME, created_by=created_by).first()
    if template is None:
        template = TaskTemplate.objects.create(
            name=DEFAULT_TEMPLATE_NAME,
            description=DEFAULT_TEMPLATE_DESCRIPTION,
            tasks=DEFAULT_TEMPLATE_TASKS,
            created_by=created_by,
        )
        logger.info(f"Created default task template {template.pk}")
    return template


def active_templates(created_by=None):
    """Active templates, newest first; seeds the default one when there are none."""
    templates = list(TaskTemplate.objects.filter(is_active=True).order_by("-created_at", "-id"))
    if not templates:
        templates = [get_or_create_default_template(created_by)]
    return templates
