"""
Mission and challenge text generation
Tries an OpenAI-compatible chat completions endpoint first and falls back
to the built-in template table, which always produces text.
"""

import json
import logging
import random
import re
from dataclasses import dataclass, field
from typing import List, Optional

import requests

import config
from game_engine import Difficulty, difficulty_for_level

logger = logging.getLogger(__name__)


@dataclass
class MissionText:
    title: str
    description: str
    specific_tasks: List[str] = field(default_factory=list)
    personalized_tips: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)
    is_recurring: bool = False
    source: str = "template"        # "ai" or "template"


@dataclass
class MissionRequest:
    skill: object
    progress: object
    recent_missions: list = field(default_factory=list)
    completed_this_week: list = field(default_factory=list)


# ============================================================================
# Prompts
# ============================================================================

SYSTEM_PROMPT = """
You are an expert skill development coach who creates personalized learning missions. Your goal is to help users improve their skills through engaging, specific, and achievable tasks.

RESPONSE FORMAT (JSON):
{
  "title": "Engaging mission title (max 50 chars)",
  "description": "Brief mission overview (max 100 chars)",
  "specificTasks": ["Task 1", "Task 2", "Task 3"],
  "personalizedTips": ["Tip 1", "Tip 2"],
  "resources": ["Resource 1", "Resource 2"],
  "isRecurring": true/false
}

MISSION GUIDELINES:
- Make missions specific and actionable
- Tailor difficulty to the user's current level
- Include measurable outcomes when possible
- Vary mission types to prevent boredom
- Consider time constraints (30-240 minutes)

DIFFICULTY LEVELS:
- Easy (Level 1-2): Basic practice, fundamentals
- Medium (Level 3-5): Intermediate challenges, small projects
- Hard (Level 6-9): Advanced techniques, teaching others
- Expert (Level 10+): Innovation, mastery, mentoring

Always respond with valid JSON only.
""".strip()


def build_context_prompt(skill, progress, recent_missions, completed_this_week) -> str:
    difficulty = difficulty_for_level(skill.level).value
    recent_titles = ", ".join(m.title for m in recent_missions[:config.RECENT_MISSIONS_LIMIT])

    return f"""
Generate a personalized mission for this user:

SKILL DETAILS:
- Skill: {skill.name}
- Current Level: {skill.level}
- Total Experience: {skill.total_experience} XP
- Difficulty Level: {difficulty}

USER PROGRESS:
- Total Level: {progress.total_level}
- Missions Completed: {progress.missions_completed}
- Current Streak: {progress.current_streak} days
- Completed This Week: {len(completed_this_week)} missions

RECENT ACTIVITY:
- Recent Mission Types: {recent_titles or 'None yet'}

REQUIREMENTS:
- Create a {difficulty.lower()} difficulty mission
- Make it specific and actionable for {skill.name}
- Avoid repeating recent mission types
- Include 2-3 specific tasks
- Add 1-2 personalized tips
- Specify if this should be a recurring mission
""".strip()


_FENCE_RE = re.compile(r"```(?:json)?\n?")


def _string_list(value, limit: int) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v][:limit]


def parse_ai_response(content: str) -> Optional[MissionText]:
    """Turn raw model output into MissionText, or None if it isn't usable."""
    cleaned = _FENCE_RE.sub("", content or "").strip()
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        logger.warning("AI mission response is not valid JSON")
        return None

    if not isinstance(parsed, dict):
        return None
    title = parsed.get("title")
    description = parsed.get("description")
    if not title or not description or not isinstance(parsed.get("specificTasks"), list):
        logger.warning("AI mission response is missing required fields")
        return None

    return MissionText(
        title=str(title)[:config.TITLE_MAX_CHARS],
        description=str(description)[:config.DESCRIPTION_MAX_CHARS],
        specific_tasks=_string_list(parsed["specificTasks"], config.MAX_SPECIFIC_TASKS),
        personalized_tips=_string_list(parsed.get("personalizedTips"), config.MAX_PERSONALIZED_TIPS),
        resources=_string_list(parsed.get("resources"), config.MAX_RESOURCES),
        is_recurring=bool(parsed.get("isRecurring")),
        source="ai",
    )


# ============================================================================
# Strategies
# ============================================================================

class AIMissionStrategy:
    """Personalized missions from the chat completions API."""

    name = "ai"

    def __init__(self, api_key: Optional[str] = None, enabled: Optional[bool] = None,
                 api_url: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.api_key = config.OPENAI_API_KEY if api_key is None else api_key
        self.enabled = config.AI_ENABLED if enabled is None else enabled
        self.api_url = api_url or config.AI_API_URL
        self.model = model or config.AI_MODEL
        self.timeout = config.AI_TIMEOUT_SECONDS if timeout is None else timeout

    def is_available(self) -> bool:
        return bool(self.enabled and self.api_key)

    def generate(self, request: MissionRequest) -> Optional[MissionText]:
        if not self.is_available():
            logger.info("AI mission generation not configured, using templates")
            return None

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_context_prompt(
                    request.skill, request.progress,
                    request.recent_missions, request.completed_this_week,
                )},
            ],
            "temperature": config.AI_TEMPERATURE,
            "max_tokens": config.AI_MAX_TOKENS,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            resp = requests.post(self.api_url, headers=headers, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"]
        except requests.RequestException as e:
            logger.warning("AI mission request failed: %s", e)
            return None
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("AI mission response malformed: %s", e)
            return None

        return parse_ai_response(content)


MISSION_TEMPLATES = {
    Difficulty.EASY: [
        ("Quick {skill} Practice", "Spend 15 minutes practicing {skill} fundamentals", False),
        ("{skill} Basics", "Review core concepts in {skill}", True),
        ("Daily {skill} Warmup", "Start your day with light {skill} exercises", True),
    ],
    Difficulty.MEDIUM: [
        ("{skill} Deep Dive", "Tackle an intermediate {skill} challenge", False),
        ("Build Something", "Create a small project using {skill} skills", False),
        ("Study Session", "Intensive {skill} learning session", True),
    ],
    Difficulty.HARD: [
        ("{skill} Challenge", "Complete a difficult {skill} task", False),
        ("Teach {skill}", "Explain {skill} concepts to someone else", False),
        ("Master Class", "Advanced {skill} techniques practice", False),
    ],
    Difficulty.EXPERT: [
        ("{skill} Mastery", "Push your {skill} skills to the limit", False),
        ("Innovation Challenge", "Create something new with {skill}", False),
        ("Mentor Others", "Guide others in {skill} development", True),
    ],
}


def template_missions(skill_name: str, difficulty: Difficulty) -> List[MissionText]:
    return [
        MissionText(
            title=title.format(skill=skill_name),
            description=description.format(skill=skill_name),
            is_recurring=recurring,
            source="template",
        )
        for title, description, recurring in MISSION_TEMPLATES[Difficulty(difficulty)]
    ]


class TemplateMissionStrategy:
    """Fixed template table keyed by skill name and difficulty. Never fails."""

    name = "template"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def is_available(self) -> bool:
        return True

    def generate(self, request: MissionRequest) -> MissionText:
        difficulty = difficulty_for_level(request.skill.level)
        return self.rng.choice(template_missions(request.skill.name, difficulty))


class MissionTextGenerator:
    """Runs strategies in order; the template strategy always closes the chain."""

    def __init__(self, strategies=None):
        strategies = list(strategies or [])
        if not any(isinstance(s, TemplateMissionStrategy) for s in strategies):
            strategies.append(TemplateMissionStrategy())
        self.strategies = strategies

    @classmethod
    def default(cls) -> "MissionTextGenerator":
        return cls([AIMissionStrategy(), TemplateMissionStrategy()])

    def generate(self, request: MissionRequest) -> MissionText:
        for strategy in self.strategies:
            if not strategy.is_available():
                logger.info("%s mission strategy unavailable, skipping", strategy.name)
                continue
            text = strategy.generate(request)
            if text is not None:
                return text
        # Unreachable while a template strategy is present
        raise RuntimeError("no mission text strategy produced a result")
