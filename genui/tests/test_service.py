"""
test_service.py — SessionOrchestrator end to end over sqlite + fakeredis + mock Mistral.

Covers the generate() state machine (history growth, failure leaves state
untouched), the component view, lifecycle operations and input validation.
"""
from __future__ import annotations

import asyncio

import pytest

from fakes import OTHER_OWNER, OWNER, make_mock_mistral, payload
from genui import store
from genui.cache import make_session_key
from genui.errors import GenerationUnavailableError, SessionNotFoundError, ValidationFailure
from genui.generation.formatter import COMPONENT_NAME, wrap_component
from genui.models.session import DEFAULT_CODE_BODY, DEFAULT_SESSION_NAME
from genui.sessions.service import ASSISTANT_ACKNOWLEDGEMENT


# ===========================================================================
# TEST GROUP 1: Generation
# ===========================================================================

@pytest.mark.asyncio
async def test_generate_updates_code_style_and_history(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral(payload('<button className="btn">Go</button>', ".btn{color:red}"))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER, "Button")
    await sessions.activate_session(OWNER, created.id)

    view = await sessions.generate(OWNER, created.id, "  a red button  ")

    assert view.jsx_body == '<button className="btn">Go</button>'
    assert view.jsx_code.startswith(f"const {COMPONENT_NAME}")
    assert ".btn {\n  color: red\n}" in view.css_code
    assert [(m.role, m.content) for m in view.chat_history] == [
        ("user", "a red button"),
        ("assistant", ASSISTANT_ACKNOWLEDGEMENT),
    ]


@pytest.mark.asyncio
async def test_history_grows_by_two_per_generation(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral(*(payload(f"<p>{i}</p>") for i in range(3)))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)
    await sessions.activate_session(OWNER, created.id)

    for i in range(3):
        view = await sessions.generate(OWNER, created.id, f"step {i}")

    assert len(view.chat_history) == 6
    assert [m.role for m in view.chat_history] == ["user", "assistant"] * 3
    assert view.jsx_body == "<p>2</p>"


@pytest.mark.asyncio
async def test_generate_sends_current_fragment_to_model(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral(payload("<p>first</p>"), payload("<p>second</p>"))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)

    await sessions.generate(OWNER, created.id, "one")
    await sessions.generate(OWNER, created.id, "two")

    second_prompt = mistral.chat.complete_async.await_args.kwargs["messages"][1]["content"]
    assert "<p>first</p>" in second_prompt
    assert COMPONENT_NAME not in second_prompt


@pytest.mark.asyncio
async def test_failed_generation_leaves_session_unchanged(db, redis, build_orchestrator, sleep_mock) -> None:
    mistral = make_mock_mistral(*(ConnectionError("down") for _ in range(3)))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)
    await sessions.activate_session(OWNER, created.id)

    with pytest.raises(GenerationUnavailableError):
        await sessions.generate(OWNER, created.id, "anything")

    mirror = await redis.hgetall(make_session_key(OWNER, created.id))
    assert mirror["chat_history"] == "[]"
    assert mirror["code_body"] == DEFAULT_CODE_BODY
    assert sleep_mock.await_count == 2


@pytest.mark.asyncio
async def test_generate_without_cache_writes_durable(db, build_orchestrator) -> None:
    mistral = make_mock_mistral(payload("<h1>Title</h1>"))
    sessions = build_orchestrator(db, None, mistral)
    created = await sessions.create_session(OWNER)

    await sessions.generate(OWNER, created.id, "a title")

    durable = await sessions.get_session(OWNER, created.id)
    assert durable.jsx_body == "<h1>Title</h1>"
    assert len(durable.chat_history) == 2


@pytest.mark.asyncio
async def test_cached_generation_needs_persist_for_durability(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral(payload("<h2>Cached</h2>"))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)
    await sessions.activate_session(OWNER, created.id)
    await sessions.generate(OWNER, created.id, "cached")

    before = await sessions.get_session(OWNER, created.id)
    assert before.jsx_body == DEFAULT_CODE_BODY

    await sessions.persist_session(OWNER, created.id)
    after = await sessions.get_session(OWNER, created.id)
    assert after.jsx_body == "<h2>Cached</h2>"
    assert len(after.chat_history) == 2


@pytest.mark.asyncio
async def test_multiple_roots_are_stored_as_fragment(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral(payload("<h1>A</h1><p>B</p>"))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)

    view = await sessions.generate(OWNER, created.id, "two things")
    assert view.jsx_body == "<>\n<h1>A</h1><p>B</p>\n</>"


@pytest.mark.asyncio
async def test_concurrent_generations_on_one_session_keep_both_turns(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral(payload("<p>1</p>"), payload("<p>2</p>"))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)
    await sessions.activate_session(OWNER, created.id)

    await asyncio.gather(
        sessions.generate(OWNER, created.id, "first"),
        sessions.generate(OWNER, created.id, "second"),
    )

    state = await sessions.persist_session(OWNER, created.id)
    assert len(state.chat_history) == 4


@pytest.mark.asyncio
async def test_concurrent_uncached_generations_in_separate_requests_keep_both_turns(
    file_session_factory, build_orchestrator,
) -> None:
    """Each generation runs in its own session and commits afterwards, as get_db does."""
    async with file_session_factory() as setup:
        created = await store.create_session(setup, OWNER)
        await setup.commit()

    mistral = make_mock_mistral(payload("<p>a</p>"), payload("<p>b</p>"))

    async def request(prompt: str) -> None:
        async with file_session_factory() as db:
            sessions = build_orchestrator(db, None, mistral)
            await sessions.generate(OWNER, created.id, prompt)
            await db.commit()

    await asyncio.gather(request("a"), request("b"))

    async with file_session_factory() as check:
        record = await store.find_session(check, OWNER, created.id)
    assert [m.content for m in record.chat_history if m.role == "user"] == ["a", "b"]
    assert len(record.chat_history) == 4


@pytest.mark.asyncio
async def test_fragment_with_inner_return_survives_round_trip(db, redis, build_orchestrator) -> None:
    fragment = "<ul>{items.map((i) => { return (<li key={i}>{i}</li>); })}</ul>"
    mistral = make_mock_mistral(payload(fragment), payload("<p>next</p>"))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)

    view = await sessions.generate(OWNER, created.id, "a list")
    assert view.jsx_body == fragment

    await sessions.generate(OWNER, created.id, "change it")
    prompt = mistral.chat.complete_async.await_args.kwargs["messages"][1]["content"]
    assert fragment in prompt


@pytest.mark.asyncio
async def test_legacy_wrapped_code_body_is_unwrapped(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral(payload("<p>new</p>"))
    sessions = build_orchestrator(db, None, mistral)
    created = await sessions.create_session(OWNER)
    await store.update_session(db, OWNER, created.id, {"code_body": wrap_component("<p>old</p>")})

    view = await sessions.get_session(OWNER, created.id)
    assert view.jsx_body == "<p>old</p>"

    await sessions.generate(OWNER, created.id, "update")
    prompt = mistral.chat.complete_async.await_args.kwargs["messages"][1]["content"]
    assert "<p>old</p>" in prompt
    assert COMPONENT_NAME not in prompt


# ===========================================================================
# TEST GROUP 2: Validation
# ===========================================================================

@pytest.mark.asyncio
async def test_blank_prompt_rejected_before_any_call(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral()
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)

    with pytest.raises(ValidationFailure):
        await sessions.generate(OWNER, created.id, "   ")
    mistral.chat.complete_async.assert_not_awaited()


@pytest.mark.asyncio
async def test_blank_name_rejected(db, redis, build_orchestrator) -> None:
    sessions = build_orchestrator(db, redis, make_mock_mistral())
    created = await sessions.create_session(OWNER)
    with pytest.raises(ValidationFailure):
        await sessions.rename_session(OWNER, created.id, "  ")


@pytest.mark.asyncio
async def test_generate_unknown_session_raises(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral()
    sessions = build_orchestrator(db, redis, mistral)
    with pytest.raises(SessionNotFoundError):
        await sessions.generate(OWNER, "missing", "hello")
    mistral.chat.complete_async.assert_not_awaited()


# ===========================================================================
# TEST GROUP 3: Lifecycle
# ===========================================================================

@pytest.mark.asyncio
async def test_create_uses_defaults(db, redis, build_orchestrator) -> None:
    sessions = build_orchestrator(db, redis, make_mock_mistral())
    view = await sessions.create_session(OWNER, "   ")
    assert view.name == DEFAULT_SESSION_NAME
    assert view.jsx_body == DEFAULT_CODE_BODY
    assert view.chat_history == []


@pytest.mark.asyncio
async def test_list_is_scoped_by_owner(db, redis, build_orchestrator) -> None:
    sessions = build_orchestrator(db, redis, make_mock_mistral())
    a = await sessions.create_session(OWNER, "A")
    b = await sessions.create_session(OWNER, "B")
    await sessions.create_session(OTHER_OWNER, "C")

    listed = await sessions.list_sessions(OWNER)
    assert {s.id for s in listed} == {a.id, b.id}
    assert all(s.message_count == 0 for s in listed)


@pytest.mark.asyncio
async def test_rename_cold_session_does_not_activate_it(db, redis, build_orchestrator) -> None:
    sessions = build_orchestrator(db, redis, make_mock_mistral())
    created = await sessions.create_session(OWNER)

    view = await sessions.rename_session(OWNER, created.id, "Cold")

    assert view.name == "Cold"
    assert view.jsx_body == DEFAULT_CODE_BODY
    assert view.created_at is not None
    assert await redis.exists(make_session_key(OWNER, created.id)) == 0


@pytest.mark.asyncio
async def test_rename_keeps_unpersisted_mirror_edits(db, redis, build_orchestrator) -> None:
    mistral = make_mock_mistral(payload("<p>draft</p>"))
    sessions = build_orchestrator(db, redis, mistral)
    created = await sessions.create_session(OWNER)
    await sessions.activate_session(OWNER, created.id)
    await sessions.generate(OWNER, created.id, "draft")

    view = await sessions.rename_session(OWNER, created.id, "  Landing  ")
    assert view.name == "Landing"
    assert view.jsx_body == "<p>draft</p>"

    durable = await sessions.get_session(OWNER, created.id)
    assert durable.name == "Landing"


@pytest.mark.asyncio
async def test_delete_drops_mirror_and_session(db, redis, build_orchestrator) -> None:
    sessions = build_orchestrator(db, redis, make_mock_mistral())
    created = await sessions.create_session(OWNER)
    await sessions.activate_session(OWNER, created.id)

    await sessions.delete_session(OWNER, created.id)

    assert await redis.exists(make_session_key(OWNER, created.id)) == 0
    with pytest.raises(SessionNotFoundError):
        await sessions.activate_session(OWNER, created.id)
    assert await redis.exists(make_session_key(OWNER, created.id)) == 0


@pytest.mark.asyncio
async def test_delete_foreign_session_raises_and_keeps_it(db, redis, build_orchestrator) -> None:
    sessions = build_orchestrator(db, redis, make_mock_mistral())
    created = await sessions.create_session(OWNER)

    with pytest.raises(SessionNotFoundError):
        await sessions.delete_session(OTHER_OWNER, created.id)
    assert (await sessions.get_session(OWNER, created.id)).id == created.id
