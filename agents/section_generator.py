"""Section Generator: writes one section of prose from a validated scene context."""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError
from config.settings import Settings
from models.context import ChapterContext, NarrativeVoice, SceneContext
from models.enums import RequestPriority, SceneType, TransitionType
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter
from tools.text_utils import count_words, get_tail, round_half_up

logger = logging.getLogger(__name__)

# Previous sections passed as context, and how much of each
PREVIOUS_SECTION_COUNT = 2
PREVIOUS_SECTION_CHARS = 1500
TRANSITION_TAIL_CHARS = 400

_QUOTED_RE = re.compile(r"[\"“][^\"”]*[\"”]")
_FIRST_PERSON_RE = re.compile(r"\b(i|me|my|mine|myself|we|us|our)\b", re.IGNORECASE)
_SECOND_PERSON_RE = re.compile(r"\b(you|your|yourself)\b", re.IGNORECASE)
_THIRD_PERSON_RE = re.compile(r"\b(he|she|him|her|his|hers|they|them|their)\b", re.IGNORECASE)
_PAST_RE = re.compile(r"\b(was|were|had|did|said|\w+ed)\b", re.IGNORECASE)
_PRESENT_RE = re.compile(r"\b(is|are|am|has|does|says)\b", re.IGNORECASE)

_SCENE_RULES = (
    (SceneType.ACTION, {"conflict": ("fight", "chase", "battle"), "purpose": ("action",), "mood": ("intense",)}),
    (SceneType.DIALOGUE, {"purpose": ("conversation", "dialogue"), "conflict": ("argument", "discussion")}),
    (SceneType.EMOTION, {"mood": ("emotional", "touching"), "purpose": ("character development", "introspection")}),
)


@dataclass
class SectionDraft:
    """Prose returned by the writer together with its usage."""
    text: str
    word_count: int
    tokens_used: int
    scene_type: SceneType
    model: str


def determine_scene_type(scene) -> SceneType:
    """Classify a scene from keywords in its purpose, conflict and mood."""
    if scene is None:
        return SceneType.DESCRIPTION
    fields = {
        name: (getattr(scene, name, "") or "").lower()
        for name in ("purpose", "conflict", "mood")
    }
    for scene_type, rules in _SCENE_RULES:
        for field_name, keywords in rules.items():
            if any(k in fields[field_name] for k in keywords):
                return scene_type
    return SceneType.DESCRIPTION


def extract_narrative_voice(text: str, tone: str = "balanced") -> NarrativeVoice:
    """Detect perspective and tense from narration (dialogue is ignored)."""
    narration = _QUOTED_RE.sub(" ", text or "")
    first = len(_FIRST_PERSON_RE.findall(narration))
    second = len(_SECOND_PERSON_RE.findall(narration))
    third = len(_THIRD_PERSON_RE.findall(narration))

    if first and first >= third:
        perspective = "first person"
    elif second > max(first, third):
        perspective = "second person"
    else:
        perspective = "third person limited"

    past = len(_PAST_RE.findall(narration))
    present = len(_PRESENT_RE.findall(narration))
    tense = "present" if present > past else "past"

    return NarrativeVoice(
        perspective=perspective,
        tense=tense,
        tone=tone,
        sample=get_tail(narration.strip(), 300),
    )


def _describe_voice(voice: Optional[NarrativeVoice]) -> str:
    if voice is None:
        return "Not yet established; this section sets it."
    return f"{voice.perspective}, {voice.tense} tense, {voice.tone} tone"


def _previous_context(previous_sections: list[str]) -> str:
    recent = previous_sections[-PREVIOUS_SECTION_COUNT:]
    if not recent:
        return "(this is the first section)"
    return "\n\n---\n\n".join(get_tail(s, PREVIOUS_SECTION_CHARS) for s in recent)


def _max_tokens_for(word_target: int) -> int:
    return min(8000, round_half_up(word_target * 1.5) + 200)


class SectionGenerator(BaseAgent):
    """Writes sections, section transitions, and the reduced-context fallback."""

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(llm_client, settings, rate_limiter)
        self._template = self._load_prompt("section_writer")

    async def generate(
        self,
        scene: SceneContext,
        chapter: ChapterContext,
        voice: Optional[NarrativeVoice],
        character_states: dict[str, str],
        previous_sections: list[str],
        transition: str = "",
    ) -> SectionDraft:
        """Write one section.

        Raises:
            LLMError: If the completion fails or returns no text.
        """
        model = self.settings.llm_model_writing
        research = list(dict.fromkeys(scene.research_focus + chapter.research_focus))
        states = "\n".join(f"- {name}: {state}" for name, state in character_states.items())

        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Section Instructions").format(
            book_title=chapter.book_title,
            genre=chapter.genre,
            tone=chapter.tone,
            audience=chapter.audience,
            point_of_view=chapter.point_of_view,
            tense=chapter.tense,
            voice=_describe_voice(voice),
            chapter_number=chapter.chapter_number,
            total_chapters=chapter.total_chapters,
            chapter_title=chapter.chapter_title,
            chapter_summary=chapter.chapter_summary or "(none)",
            section_number=scene.section_number,
            total_sections=scene.total_sections,
            section_type=scene.section_type.value,
            scene_type=scene.scene_type.value,
            purpose=scene.purpose or "Advance the chapter",
            setting=scene.setting,
            characters=", ".join(scene.characters),
            conflict=scene.conflict,
            outcome=scene.outcome,
            mood=scene.mood or chapter.tone,
            emotional_beat=scene.emotional_beat or "(none)",
            themes=", ".join(scene.themes) or "(none)",
            research_focus=", ".join(research) or "(none)",
            character_states=states or "(no tracked characters)",
            previous_sections=_previous_context(previous_sections),
            word_target=scene.word_target,
        )

        result = await self._complete(
            user_prompt, model, system_prompt,
            max_tokens=_max_tokens_for(scene.word_target),
            priority=RequestPriority.NORMAL,
        )
        body = result.text.strip()
        if not body:
            raise LLMError(
                "Empty section text",
                {"chapter": chapter.chapter_number, "section": scene.section_number},
            )

        text = f"{transition.strip()}\n\n{body}" if transition.strip() else body
        word_count = count_words(text)
        logger.info(
            "Chapter %d section %d/%d written: %d words (target %d, %s scene)",
            chapter.chapter_number, scene.section_number, scene.total_sections,
            word_count, scene.word_target, scene.scene_type.value,
        )
        return SectionDraft(
            text=text,
            word_count=word_count,
            tokens_used=result.tokens_used,
            scene_type=scene.scene_type,
            model=model,
        )

    async def generate_fallback(
        self,
        chapter: ChapterContext,
        section_number: int,
        total_sections: int,
        word_target: int,
        previous_sections: list[str],
    ) -> SectionDraft:
        """Single-pass writer with reduced context, used when generate() fails."""
        model = self.settings.llm_model_writing
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Fallback Instructions").format(
            section_number=section_number,
            total_sections=total_sections,
            chapter_number=chapter.chapter_number,
            chapter_title=chapter.chapter_title,
            genre=chapter.genre,
            book_title=chapter.book_title,
            chapter_summary=chapter.chapter_summary or "(none)",
            previous_sections=_previous_context(previous_sections),
            word_target=word_target,
        )
        result = await self._complete(
            user_prompt, model, system_prompt, max_tokens=_max_tokens_for(word_target),
        )
        text = result.text.strip()
        if not text:
            raise LLMError(
                "Empty fallback section text",
                {"chapter": chapter.chapter_number, "section": section_number},
            )
        logger.info(
            "Chapter %d section %d written by fallback writer: %d words",
            chapter.chapter_number, section_number, count_words(text),
        )
        return SectionDraft(
            text=text,
            word_count=count_words(text),
            tokens_used=result.tokens_used,
            scene_type=SceneType.DESCRIPTION,
            model=model,
        )

    async def generate_transition(
        self,
        previous_content: str,
        scene: SceneContext,
        chapter: ChapterContext,
    ) -> str:
        """Short bridge into the next section; empty on failure."""
        if not previous_content.strip():
            return ""
        transition_type = scene.transition_in or TransitionType.BRIDGE_PARAGRAPH
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Transition Instructions").format(
            transition_type=transition_type.value,
            chapter_number=chapter.chapter_number,
            previous_ending=get_tail(previous_content, TRANSITION_TAIL_CHARS),
            purpose=scene.purpose or "Continue the chapter",
            setting=scene.setting,
        )
        try:
            result = await self._complete(
                user_prompt, self.settings.llm_model_writing, system_prompt,
                max_tokens=300, temperature=0.7,
            )
        except LLMError as e:
            logger.warning(
                "Transition into chapter %d section %d failed: %s",
                chapter.chapter_number, scene.section_number, e,
            )
            return ""
        return result.text.strip()
