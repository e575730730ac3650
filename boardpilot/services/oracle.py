"""Language oracle client for BoardPilot.

Wraps the OpenAI chat completions API behind two calls the interpreter
needs: ``analyze_operation`` (free text -> Interpretation) and
``generate_suggestions`` (free text -> alternative readings). The model is
asked for a single JSON object; the first ``{...}`` block in its reply is
decoded and validated, and anything malformed degrades to a PARSE_ERROR
interpretation instead of raising.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, ValidationError

from boardpilot.config.ai_settings import OracleConfig
from boardpilot.models.context import Context
from boardpilot.models.errors import ErrorKind, OracleError
from boardpilot.models.operation import Interpretation, OperationKind


logger = logging.getLogger("boardpilot.oracle")


Sleep = Callable[[float], Awaitable[None]]


OPERATION_TYPES = (
    ("ITEM_CREATE", "Create new items/tasks"),
    ("ITEM_UPDATE", "Update existing items"),
    ("ITEM_DELETE", "Delete items"),
    ("BOARD_CREATE", "Create new boards"),
    ("BOARD_UPDATE", "Update board settings or add a group (groupName)"),
    ("COLUMN_CREATE", "Add new columns"),
    ("COLUMN_UPDATE", "Modify column values"),
    ("USER_ASSIGN", "Assign users to items"),
    ("STATUS_UPDATE", "Change item status"),
    ("AUTOMATION_CREATE", "Create board automations"),
    ("BULK_OPERATION", "Mass updates/changes"),
)


class OracleResponse(BaseModel):
    """Shape the model must answer with. Only operation and confidence are required."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    operation: str
    confidence: Union[StrictInt, StrictFloat]
    parameters: Dict[str, Any] = Field(default_factory=dict)
    missing_info: List[Any] = Field(default_factory=list, alias="missingInfo")
    clarifying_questions: List[Any] = Field(default_factory=list, alias="clarifyingQuestions")
    warnings: List[Any] = Field(default_factory=list)
    alternatives: List[Any] = Field(default_factory=list)


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object embedded in ``text``, tolerating prose around it."""

    if not isinstance(text, str):
        return None
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except ValueError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def compress_context(context: Optional[Context]) -> Dict[str, Any]:
    """Token-lean view of the context for prompts."""

    if context is None:
        return {"boards": [], "users": [], "currentBoard": None, "permissions": {}}

    def _board(board):
        return {
            "id": board.id,
            "name": board.name,
            "groups": [{"id": g.id, "title": g.title} for g in board.groups],
            "columns": [{"id": c.id, "title": c.title, "type": c.type} for c in board.columns],
        }

    perms = context.permissions
    return {
        "boards": [_board(b) for b in context.boards],
        "users": [{"id": u.id, "name": u.name, "email": u.email} for u in context.users],
        "currentBoard": _board(context.current_board) if context.current_board else None,
        "permissions": {
            "isAdmin": perms.is_admin,
            "isGuest": perms.is_guest,
            "canCreateBoards": perms.can_create_boards,
            "canDeleteItems": perms.can_delete_items,
            "canManageUsers": perms.can_manage_users,
            "canCreateAutomations": perms.can_create_automations,
        },
    }


def build_operation_prompt(user_input: str, context: Optional[Context]) -> str:
    context_summary = json.dumps(compress_context(context), indent=2)
    kinds = "\n".join(f"{n}. {name} - {desc}" for n, (name, desc) in enumerate(OPERATION_TYPES, start=1))
    return (
        "You are an expert monday.com operations analyst. Interpret the natural language "
        "request below and convert it into a structured monday.com API operation.\n\n"
        f"CONTEXT INFORMATION:\n{context_summary}\n\n"
        f'USER REQUEST: "{user_input}"\n\n'
        f"OPERATION TYPES SUPPORTED:\n{kinds}\n\n"
        "ANALYSIS REQUIREMENTS:\n"
        "- Identify the primary operation type\n"
        "- Extract all parameters needed for the monday.com API\n"
        "- Estimate a confidence score (0-100)\n"
        "- List any missing information\n"
        "- Suggest clarifying questions if needed\n\n"
        "RESPONSE FORMAT (JSON):\n"
        "{\n"
        '  "operation": "OPERATION_TYPE",\n'
        '  "confidence": 85,\n'
        '  "parameters": {"boardId": "...", "itemName": "...", "columnValues": {}, "groupId": "..."},\n'
        '  "missingInfo": ["required_but_missing_parameters"],\n'
        '  "clarifyingQuestions": ["questions_for_user"],\n'
        '  "warnings": ["potential_issues"],\n'
        '  "alternatives": [{"operation": "ALT_TYPE", "reason": "why_this_alternative"}]\n'
        "}\n\n"
        "Respond with valid JSON only."
    )


def build_suggestion_prompt(user_input: str, context: Optional[Context]) -> str:
    return (
        "Generate alternative interpretations for an ambiguous monday.com request.\n\n"
        f"CONTEXT: {json.dumps(compress_context(context))}\n"
        f'USER INPUT: "{user_input}"\n\n'
        "Generate 3-5 possible interpretations, each with an operation type, the "
        "parameters it would need, a confidence level and a brief explanation.\n\n"
        "RESPONSE FORMAT (JSON):\n"
        '{"suggestions": [{"operation": "OPERATION_TYPE", "parameters": {}, '
        '"confidence": 75, "explanation": "brief_explanation"}]}\n\n'
        "Respond with valid JSON only."
    )


def _as_strings(values: List[Any]) -> tuple:
    return tuple(str(v) for v in values if v is not None and str(v).strip())


def _as_alternatives(values: List[Any]) -> tuple:
    alternatives = []
    for value in values:
        if isinstance(value, dict):
            alternatives.append(dict(value))
        elif value:
            alternatives.append({"operation": str(value)})
    return tuple(alternatives)


def parse_operation_response(text: str, original_input: str = "") -> Interpretation:
    """Decode model output into an Interpretation; never raises."""

    payload = extract_json_object(text)
    if payload is None:
        logger.error("No JSON object in oracle response: %s", (text or "")[:500])
        return _parse_failure(original_input, "No JSON found in oracle response")
    try:
        parsed = OracleResponse.model_validate(payload)
    except ValidationError as exc:
        logger.error("Invalid oracle response format: %s", exc.errors()[:3])
        return _parse_failure(original_input, "Invalid response format from oracle")

    return Interpretation(
        kind=OperationKind.parse(parsed.operation),
        confidence=int(round(max(0.0, min(100.0, float(parsed.confidence))))),
        parameters=dict(parsed.parameters),
        missing_info=_as_strings(parsed.missing_info),
        clarifying_questions=_as_strings(parsed.clarifying_questions),
        warnings=_as_strings(parsed.warnings),
        alternatives=_as_alternatives(parsed.alternatives),
        original_input=original_input,
        methods=("ai-analysis",),
    )


def _parse_failure(original_input: str, message: str) -> Interpretation:
    return Interpretation(
        kind=OperationKind.ERROR,
        confidence=0,
        parameters={},
        missing_info=("Unable to parse request",),
        clarifying_questions=("Could you please rephrase your request?",),
        warnings=("Failed to interpret request",),
        original_input=original_input,
        methods=("ai-analysis",),
        error=message,
        error_kind=ErrorKind.PARSE_ERROR,
    )


class LanguageOracle:
    """OpenAI-backed oracle with bounded retry and a wall-clock timeout.

    ``client`` is anything exposing ``chat.completions.create`` the way the
    ``openai.OpenAI`` client does; when omitted one is built from
    ``OPENAI_API_KEY`` on first use. ``sleep`` is injectable so backoff can
    be observed without real waiting.
    """

    def __init__(
        self,
        config: Optional[OracleConfig] = None,
        client: Optional[Any] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.config = config or OracleConfig()
        self._client = client
        self._sleep: Sleep = sleep or asyncio.sleep

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            logger.error("OPENAI_API_KEY is not set; oracle calls will fail")
            raise OracleError("OPENAI_API_KEY is not set")
        self._client = OpenAI(api_key=api_key)
        return self._client

    def _create_completion(self, prompt: str) -> str:
        client = self._get_client()
        response = client.chat.completions.create(
            model=self.config.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        if not response or not getattr(response, "choices", None):
            raise OracleError("Empty response from oracle")
        content = response.choices[0].message.content or ""
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        if not content:
            raise OracleError("Empty response from oracle")
        return str(content)

    async def _complete_with_retries(self, prompt: str) -> str:
        retry_count = 0
        while True:
            try:
                return await asyncio.to_thread(self._create_completion, prompt)
            except OracleError as exc:
                if "OPENAI_API_KEY" in str(exc):
                    raise
                last_error: Exception = exc
            except Exception as exc:  # noqa: BLE001
                last_error = exc
            if retry_count >= self.config.max_retries:
                raise OracleError(f"Oracle call failed: {last_error}") from last_error
            delay = self.config.retry_base_delay * (2 ** retry_count)
            retry_count += 1
            logger.warning(
                "Oracle call failed, retrying (%s/%s) in %.1fs: %r",
                retry_count,
                self.config.max_retries,
                delay,
                last_error,
            )
            await self._sleep(delay)

    async def complete(self, prompt: str) -> str:
        """Send a prompt and return raw text. Raises OracleError after retries or timeout."""

        try:
            return await asyncio.wait_for(self._complete_with_retries(prompt), timeout=self.config.request_timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Oracle call exceeded %ss", self.config.request_timeout)
            raise OracleError(f"Oracle call timed out after {self.config.request_timeout}s") from exc

    async def analyze_operation(self, user_input: str, context: Optional[Context]) -> Interpretation:
        """Ask the model to interpret ``user_input``.

        Raises OracleError when the model cannot be reached; malformed output
        comes back as an ERROR interpretation with ``error_kind`` PARSE_ERROR.
        """

        prompt = build_operation_prompt(user_input, context)
        logger.info("Analyzing operation (input length %s)", len(user_input))
        raw = await self.complete(prompt)
        interpretation = parse_operation_response(raw, original_input=user_input)
        logger.info("Operation analyzed: %s (%s)", interpretation.kind.value, interpretation.confidence)
        return interpretation

    async def generate_suggestions(self, user_input: str, context: Optional[Context]) -> List[Dict[str, Any]]:
        """Alternative readings of an ambiguous request; empty on any failure."""

        try:
            raw = await self.complete(build_suggestion_prompt(user_input, context))
        except OracleError as exc:
            logger.error("Failed to generate suggestions: %s", exc)
            return []
        payload = extract_json_object(raw)
        if not payload:
            return []
        suggestions = payload.get("suggestions")
        if not isinstance(suggestions, list):
            return []
        return [dict(s) for s in suggestions if isinstance(s, dict)]
