"""Assistant agent that edits the storyboard structure through chat."""

import json
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..editor.timeline import merge_regenerated
from ..models import Scene, SceneKind, Section, Storyboard
from ..services.anthropic import ChatTurn
from .base import BaseAgent

# Number of earlier chat turns sent along with a new instruction
HISTORY_WINDOW = 5

SYSTEM_PROMPT = """You are an AI video editing assistant. The user has a video with the following structure:

{outline}

You can help the user:
- Modify the video structure (add, remove or reorder sections and scenes)
- Update scene content, titles, descriptions and scripts
- Suggest improvements to the video flow

When making structural changes, respond with a JSON object containing the complete new sections array, in this exact format:

{{
  "type": "structure_update",
  "sections": [
    {{
      "label": "Section Name",
      "description": "Section description",
      "scenes": [
        {{
          "type": "text|image|video",
          "title": "Scene Title",
          "description": "Scene description",
          "content": "Scene content",
          "script": "Scene script"
        }}
      ]
    }}
  ],
  "explanation": "Brief explanation of what you changed"
}}

Keep the titles of scenes you do not change exactly as they are.
For regular conversation, just respond normally without JSON."""


def outline(storyboard: Storyboard) -> str:
    """Render the storyboard as the plain-text outline the assistant sees."""
    lines = [
        f"Title: {storyboard.title or 'Untitled Video'}",
        f"Description: {storyboard.description or 'No description'}",
        "",
        "Current sections and scenes:",
    ]
    if not storyboard.sections:
        lines.append("No sections")

    for s_idx, section in enumerate(storyboard.sections):
        lines.append(f"Section {s_idx + 1}: {section.label}")
        for scene_idx, scene in enumerate(section.scenes):
            line = f"  Scene {scene_idx + 1}: {scene.title or 'Untitled'} - {scene.description}"
            if scene.script:
                line += f' (script: "{scene.script}")'
            lines.append(line)
        lines.append("")

    return "\n".join(lines).rstrip()


@dataclass
class RestructureInput:
    """Input data for the restructure agent."""

    storyboard: Storyboard
    instruction: str
    history: List[ChatTurn] = field(default_factory=list)


@dataclass
class RestructureResult:
    """The assistant's reply and, for structural edits, the merged storyboard."""

    reply: str
    storyboard: Optional[Storyboard] = None

    @property
    def changed(self) -> bool:
        return self.storyboard is not None


class RestructureAgent(BaseAgent[RestructureInput, RestructureResult]):
    """Agent that answers storyboard questions and proposes new structures.

    A proposed structure is merged into the current storyboard so scenes the
    assistant kept retain their clips, voices and cached narration. The input
    storyboard itself is never modified.
    """

    @property
    def name(self) -> str:
        return "RestructureAgent"

    def system_prompt(self, input_data: RestructureInput) -> str:
        return SYSTEM_PROMPT.format(outline=outline(input_data.storyboard))

    def run(self, input_data: RestructureInput) -> RestructureResult:
        """Send the instruction and interpret the reply.

        Raises:
            APIError: If the Claude request fails.
        """
        self._logger.info(f"Assistant instruction: '{input_data.instruction}'")

        response = self._create_message(
            prompt=input_data.instruction,
            system=self.system_prompt(input_data),
            history=input_data.history[-HISTORY_WINDOW:],
            temperature=0.7,
        )

        update = self._parse_structure_update(response)
        if update is None:
            return RestructureResult(reply=response.strip())

        sections, explanation = update

        merged = merge_regenerated(input_data.storyboard, sections)
        self._logger.info(
            f"Applied structure update: {len(merged.sections)} section(s), "
            f"{len(merged.flatten())} scene(s)"
        )
        explanation = explanation or "I've updated your video structure as requested."
        return RestructureResult(reply=explanation, storyboard=merged)

    def _parse_structure_update(self, response: str) -> Optional[Tuple[List[Section], Optional[str]]]:
        """Return the proposed sections and explanation, or None for plain conversation."""
        json_str = self._extract_json(response)
        if not json_str:
            return None

        try:
            data = json.loads(json_str)
        except json.JSONDecodeError:
            self._logger.debug("Reply contains no valid JSON; treating it as conversation")
            return None

        if not isinstance(data, dict) or data.get("type") != "structure_update":
            return None
        sections_data = data.get("sections")
        if not isinstance(sections_data, list):
            self._logger.warning("Structure update without a sections array ignored")
            return None

        sections = [self._parse_section(s) for s in sections_data if isinstance(s, dict)]
        return sections, data.get("explanation")

    def _parse_section(self, section_data: dict) -> Section:
        scenes = [
            self._parse_scene(i, scene_data)
            for i, scene_data in enumerate(section_data.get("scenes") or [])
            if isinstance(scene_data, dict)
        ]
        return Section(
            label=section_data.get("label") or "Untitled Section",
            description=section_data.get("description") or "",
            scenes=scenes,
        )

    def _parse_scene(self, index: int, scene_data: dict) -> Scene:
        try:
            kind = SceneKind(scene_data.get("type", "text"))
        except ValueError:
            kind = SceneKind.TEXT

        # Ids are reassigned when the merged storyboard is renumbered
        return Scene(
            id=f"proposed_{index + 1}",
            kind=kind,
            title=scene_data.get("title") or "",
            description=scene_data.get("description") or "",
            content=scene_data.get("content") or "",
            script=scene_data.get("script") or None,
        )

    def _extract_json(self, response: str) -> Optional[str]:
        """Extract a JSON object from a response that may contain markdown or other text."""
        if "```json" in response:
            start = response.find("```json") + 7
            end = response.find("```", start)
            if end > start:
                return response[start:end].strip()

        start = response.find("{")
        if start == -1:
            return None

        depth = 0
        for i, char in enumerate(response[start:], start):
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return response[start:i + 1]
        return None
