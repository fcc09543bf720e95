"""
Prompt rendering for the intent classifier.

The instruction text below is the contract the model is graded against: it
names every reply field and the full action domain that reply_parser and the
validator expect. Change them together.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .capabilities import CapabilityTable


INTENT_INSTRUCTIONS = """
You interpret voice commands for a desktop assistant.
User said: "{transcript}"
Available files: {files}
Available apps: {apps}
Available system actions: {systems}
Rules:
- action must be one of: open_file, open_app, system, answer, unknown
- use open_file/open_app/system only when the request matches an available key, and put that key in target
- for system action volume_set, put the level (0-100) in value, or write target as "volume_set <level>"
- for action=answer, provide a direct response text and set target to null
- confidence is a number between 0.0 and 1.0
- if unsure, use action=unknown and target=null
Examples:
Input: "open my resume" => {{"action":"open_file","target":"resume","response":null,"confidence":0.9}}
Input: "start chrome" => {{"action":"open_app","target":"chrome","response":null,"confidence":0.8}}
Input: "turn volume down" => {{"action":"system","target":"volume_down","response":null,"confidence":0.8}}
Input: "set volume to 40" => {{"action":"system","target":"volume_set","value":40,"response":null,"confidence":0.85}}
Input: "what is 2+3" => {{"action":"answer","target":null,"response":"5","confidence":0.9}}
Return JSON only (no markdown, no code fences) with keys action, target, response, confidence.
""".strip()

# Phrases handed to speech-to-text as a vocabulary hint
SYSTEM_HINT_PHRASES = {
    "volume_mute": "Mute volume.",
    "volume_up": "Volume up.",
    "volume_down": "Volume down.",
    "volume_set": "Set volume to 50.",
    "sleep": "Go to sleep.",
    "restart": "Restart computer.",
    "shutdown": "Shut down computer.",
    "lock": "Lock computer.",
}


def _listing(keys: list[str]) -> str:
    return ", ".join(keys) if keys else "(none)"


@dataclass(frozen=True)
class PromptRequest:
    """A rendered chat request, ready to be posted."""

    content: str
    model: Optional[str] = None

    def payload(self, model: Optional[str] = None) -> Dict[str, Any]:
        return {
            "model": model or self.model,
            "messages": [{"role": "user", "content": self.content}],
            "stream": False,
        }


def build_prompt(transcript: str, table: CapabilityTable, model: Optional[str] = None) -> PromptRequest:
    """Render the instruction template for one transcript. Never fails."""
    content = INTENT_INSTRUCTIONS.format(
        transcript=transcript.strip(),
        files=_listing(table.file_keys()),
        apps=_listing(table.app_keys()),
        systems=_listing(table.system_actions()),
    )
    return PromptRequest(content=content, model=model)


def build_transcription_hint(table: CapabilityTable) -> Optional[str]:
    """
    Phrases a speech-to-text engine can use as an initial prompt so that
    configured names are recognised. None when nothing is configured.
    """
    phrases = [f"Open {key}." for key in table.file_keys()]
    phrases += [f"Launch {key}." for key in table.app_keys()]
    phrases += [SYSTEM_HINT_PHRASES[name] for name in table.system_actions()]
    if not phrases:
        return None
    return " ".join(phrases)
