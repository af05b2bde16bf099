"""
llm_service.py — Mistral generation layer for genui.

Components:
  SYSTEM_PROMPT            — markup/stylesheet separation policy + JSON output contract
  build_user_prompt()      — current code + style + requested change (+ targeted-edit clause)
  GenerationInvoker        — async Mistral call wrapped in asyncio.Semaphore and RetryPolicy

One attempt = call Mistral, check the envelope, run ResponseRepairer. A 2xx
response whose payload is not a JSON object fails the attempt just like a
network error or an SDK error status does. After RetryPolicy.max_attempts
failures GenerationUnavailableError is raised.

No HTTPException anywhere — this is pure business logic, HTTP layer is routes.py.
"""
import asyncio
import logging
from typing import Optional

from mistralai import Mistral
from tenacity import RetryCallState, RetryError

from genui.errors import GenerationUnavailableError, MalformedEnvelopeError
from genui.generation.repair import RepairedComponent, ResponseRepairer
from genui.generation.retry import RetryPolicy

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mistral API constants
# ---------------------------------------------------------------------------

MISTRAL_MODEL = "mistral-small-latest"
MISTRAL_TEMPERATURE = 0.2
MISTRAL_MAX_TOKENS = 4096

ELEMENT_ID_ATTRIBUTE = "data-gen-id"


# ---------------------------------------------------------------------------
# System prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = f"""You are an expert React and Tailwind CSS code editor. Your job is to modify existing code based on a user's request.
You MUST return a single, valid JSON object with two keys: "jsxCode" and "cssCode". Do not wrap your response in markdown backticks.

CSS generation strategy:
1. If the user explicitly asks for "CSS", or describes a complex multi-element component such as a page, form, layout, card, blog or dashboard:
   generate traditional CSS. Convert Tailwind utility classes into standard CSS rules in "cssCode" and replace them in "jsxCode" with simple, semantic class names.
   Example for a styled button:
     jsxCode: '<button className="custom-button">Click Me</button>'
     cssCode: '.custom-button {{ background-color: #3b82f6; color: #ffffff; padding: 0.5rem 1rem; border-radius: 0.25rem; }}'
2. For simple single-element components (just "a button", "an input") where CSS is not requested, you MAY use Tailwind classes in the JSX and leave "cssCode" empty.

General rules:
- "jsxCode" contains ONLY the JSX for the component body: no function wrapper, imports or return statement.
- The JSX must be a single root element or a fragment (<>...</>).
- Every element carries a unique {ELEMENT_ID_ATTRIBUTE} attribute. Keep existing {ELEMENT_ID_ATTRIBUTE} values unchanged."""


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def build_target_clause(target_element_id: str) -> str:
    return (
        f'Only modify the element with {ELEMENT_ID_ATTRIBUTE}="{target_element_id}" and its children. '
        f"Leave every other element exactly as it is, and preserve every {ELEMENT_ID_ATTRIBUTE} "
        "attribute elsewhere in the markup."
    )


def build_user_prompt(
    prompt: str,
    existing_code: str,
    existing_style: str,
    target_element_id: Optional[str] = None,
) -> str:
    """
    Build the user-turn prompt: current JSX + CSS as context, then the change.
    The targeted-edit clause is appended only when target_element_id is provided.
    """
    target_section = (
        f"\n\n{build_target_clause(target_element_id)}"
        if target_element_id else ""
    )
    return (
        "Here is the current code:\n"
        f"JSX:\n```jsx\n{existing_code}\n```\n\n"
        f"CSS:\n```css\n{existing_style}\n```\n\n"
        f'Please apply the following change: "{prompt}"'
        f"{target_section}"
    )


def _status_of(exc: BaseException) -> Optional[int]:
    # mistralai SDKError / httpx.HTTPStatusError both expose a status code
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status


# ---------------------------------------------------------------------------
# Invoker
# ---------------------------------------------------------------------------

class GenerationInvoker:
    """
    Calls Mistral for a new {jsx, css} pair and returns it repaired.

    The semaphore is created in main.py lifespan and passed in
    (avoids RuntimeError: no running event loop at import).
    """

    def __init__(
        self,
        client: Mistral,
        semaphore: asyncio.Semaphore,
        retry_policy: Optional[RetryPolicy] = None,
        repairer: Optional[ResponseRepairer] = None,
        model: str = MISTRAL_MODEL,
        temperature: float = MISTRAL_TEMPERATURE,
    ):
        self._client = client
        self._semaphore = semaphore
        self._retry_policy = retry_policy or RetryPolicy()
        self._repairer = repairer or ResponseRepairer()
        self._model = model
        self._temperature = temperature

    async def _complete(self, messages: list[dict]) -> str:
        async with self._semaphore:
            response = await self._client.chat.complete_async(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=MISTRAL_MAX_TOKENS,
                response_format={"type": "json_object"},
            )

        choices = getattr(response, "choices", None) if response is not None else None
        if not choices:
            raise MalformedEnvelopeError("Mistral response carried no choices")
        content = choices[0].message.content
        if not isinstance(content, str) or not content.strip():
            raise MalformedEnvelopeError("Mistral response carried no text content")
        return content

    async def invoke(
        self,
        prompt: str,
        existing_code: str,
        existing_style: str,
        target_element_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> RepairedComponent:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_user_prompt(prompt, existing_code, existing_style, target_element_id),
            },
        ]
        policy = self._retry_policy

        def log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "Generation attempt %d/%d failed session_id=%s status=%s error=%s — retrying in %.0fs",
                state.attempt_number,
                policy.max_attempts,
                session_id,
                _status_of(exc) if exc else None,
                type(exc).__name__ if exc else None,
                policy.delay_for(state.attempt_number),
            )

        logger.info(
            "Calling Mistral API model=%s session_id=%s targeted=%s",
            self._model, session_id, target_element_id is not None,
        )

        try:
            async for attempt in policy.retrying(before_sleep=log_retry):
                with attempt:
                    payload = await self._complete(messages)
                    result = self._repairer.repair(payload)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            logger.error(
                "Generation failed after %d attempts session_id=%s status=%s error=%s",
                policy.max_attempts, session_id, _status_of(last), type(last).__name__,
            )
            raise GenerationUnavailableError(policy.max_attempts) from last

        logger.info(
            "Mistral response repaired session_id=%s jsx_len=%d css_len=%d",
            session_id, len(result.jsx_body), len(result.css_code),
        )
        return result
