"""
Reassembly of a streamed model response.

The accumulator consumes fragments in arrival order and rebuilds the answer
text, the reasoning text and the tool calls addressed by delta index.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..core.models import ToolCallRecord
from .fragments import Fragment, ReasoningDelta, TextDelta, ToolCallDelta

logger = logging.getLogger(__name__)

# (message_id, text_delta)
FragmentCallback = Callable[[str, str], None]


@dataclass
class ToolCallDraft:
    """In-progress tool call collected from index-addressed deltas."""
    index: int
    id: Optional[str] = None
    name: str = ""
    arguments: str = ""


@dataclass
class AccumulatedResponse:
    """Finalized content of one model call."""
    text: str = ""
    reasoning: str = ""
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    malformed: List[ToolCallDraft] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class StreamAccumulator:
    """Collects the fragments of one in-flight model call.

    Answer and reasoning text are append-only and forwarded as they arrive:
    the first non-empty piece allocates a display message id, later pieces
    reuse it. Tool call drafts are keyed by delta index; once an index is
    seen it is never removed and its name and arguments only grow.
    """

    def __init__(
        self,
        on_text: Optional[FragmentCallback] = None,
        on_reasoning: Optional[FragmentCallback] = None
    ):
        self._on_text = on_text
        self._on_reasoning = on_reasoning
        self._text_parts: List[str] = []
        self._reasoning_parts: List[str] = []
        self._drafts: Dict[int, ToolCallDraft] = {}
        self._text_message_id: Optional[str] = None
        self._reasoning_message_id: Optional[str] = None
        self._finalized = False
        self.fragment_count = 0

    @property
    def text(self) -> str:
        return "".join(self._text_parts)

    @property
    def reasoning(self) -> str:
        return "".join(self._reasoning_parts)

    @property
    def text_message_id(self) -> Optional[str]:
        return self._text_message_id

    @property
    def drafts(self) -> List[ToolCallDraft]:
        return [self._drafts[index] for index in sorted(self._drafts)]

    def on_fragment(self, fragment: Fragment) -> None:
        """Apply one fragment."""
        if self._finalized:
            raise RuntimeError("Accumulator already finalized")
        self.fragment_count += 1

        if isinstance(fragment, TextDelta):
            if not fragment.text:
                return
            self._text_parts.append(fragment.text)
            if self._text_message_id is None:
                self._text_message_id = str(uuid.uuid4())
            if self._on_text is not None:
                self._on_text(self._text_message_id, fragment.text)

        elif isinstance(fragment, ReasoningDelta):
            if not fragment.text:
                return
            self._reasoning_parts.append(fragment.text)
            if self._reasoning_message_id is None:
                self._reasoning_message_id = str(uuid.uuid4())
            if self._on_reasoning is not None:
                self._on_reasoning(self._reasoning_message_id, fragment.text)

        elif isinstance(fragment, ToolCallDelta):
            draft = self._drafts.get(fragment.index)
            if draft is None:
                draft = ToolCallDraft(index=fragment.index)
                self._drafts[fragment.index] = draft
            if fragment.id and not draft.id:
                draft.id = fragment.id
            if fragment.name:
                draft.name += fragment.name
            if fragment.arguments:
                draft.arguments += fragment.arguments

        else:
            raise TypeError(f"Unsupported fragment type: {type(fragment).__name__}")

    def finalize(self) -> AccumulatedResponse:
        """Close the accumulator and return the answer and well-formed tool calls.

        A draft is well-formed when its name and arguments are non-empty and
        the arguments parse as a JSON object. Malformed drafts are logged and
        returned separately, never as executable calls.
        """
        if self._finalized:
            raise RuntimeError("Accumulator already finalized")
        self._finalized = True

        response = AccumulatedResponse(text=self.text, reasoning=self.reasoning)
        for draft in self.drafts:
            problem = self._validate_draft(draft)
            if problem:
                logger.warning(f"Skipping malformed tool call at index {draft.index}: {problem}")
                response.malformed.append(draft)
                continue
            response.tool_calls.append(ToolCallRecord(
                id=draft.id or f"call_{draft.index}",
                index=draft.index,
                name=draft.name,
                arguments=draft.arguments,
            ))

        logger.debug(
            f"Stream finalized: {len(response.text)} chars, "
            f"{len(response.tool_calls)} tool call(s), {len(response.malformed)} malformed"
        )
        return response

    @staticmethod
    def _validate_draft(draft: ToolCallDraft) -> Optional[str]:
        if not draft.name.strip():
            return "missing function name"
        if not draft.arguments.strip():
            return f"missing arguments for {draft.name}"
        try:
            parsed = json.loads(draft.arguments)
        except json.JSONDecodeError as e:
            return f"arguments for {draft.name} are not valid JSON: {e}"
        if not isinstance(parsed, dict):
            return f"arguments for {draft.name} are not a JSON object"
        return None
