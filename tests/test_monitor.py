from __future__ import annotations

import asyncio

from core.config import AcquisitionConfig, NotificationConfig, build_policy
from core.models import ChannelInfo, InboundMessage, SenderInfo
from core.monitor import build_orchestrator
from fakes import START_TIME, FakeSource, InstantClock, ManualClock, settle

OUTPUT = "-1009"
QUIET = NotificationConfig(timezone="UTC", startup_message=False)


def _policy(**overrides):
    values = dict(
        target_chats=["-1001"],
        keywords=["urgent"],
        target_chat_id=OUTPUT,
        delayed_messages_enabled=True,
        default_delay_minutes=60,
    )
    values.update(overrides)
    return build_policy(**values)


def _source(**kwargs) -> FakeSource:
    return FakeSource(
        channels={"-1001": ChannelInfo("-1001", "C1", "group")},
        senders={"42": SenderInfo("Sam", "@sam")},
        **kwargs,
    )


def test_readiness_timeout_prevents_start() -> None:
    async def scenario() -> None:
        clock = InstantClock()
        orchestrator = build_orchestrator(
            _policy(),
            _source(ready=False),
            AcquisitionConfig(ready_timeout_seconds=3),
            QUIET,
            clock=clock,
        )

        assert await orchestrator.start() is False
        assert not orchestrator.is_active()
        assert clock.slept == [1.0, 1.0, 1.0]

    asyncio.run(scenario())


def test_waits_until_adapter_ready() -> None:
    async def scenario() -> None:
        clock = InstantClock()
        orchestrator = build_orchestrator(_policy(), _source(ready_after=2), None, QUIET, clock=clock)

        assert await orchestrator.start() is True
        assert orchestrator.is_active()
        assert len(clock.slept) >= 1

    asyncio.run(scenario())


def test_unavailable_chats_are_skipped() -> None:
    async def scenario() -> None:
        orchestrator = build_orchestrator(
            _policy(target_chats=["-1001", "-1002"]),
            _source(),
            None,
            QUIET,
            clock=ManualClock(),
        )

        assert await orchestrator.start() is True
        assert [channel.configured_id for channel in orchestrator.monitored_channels()] == ["-1001"]

    asyncio.run(scenario())


def test_no_accessible_chats_prevents_start() -> None:
    async def scenario() -> None:
        orchestrator = build_orchestrator(
            _policy(target_chats=["-1005"]),
            _source(),
            None,
            QUIET,
            clock=ManualClock(),
        )
        assert await orchestrator.start() is False
        assert orchestrator.monitored_channels() == []

    asyncio.run(scenario())


def test_startup_notice_sent_to_output_chat() -> None:
    async def scenario() -> None:
        source = _source()
        orchestrator = build_orchestrator(
            _policy(),
            source,
            None,
            NotificationConfig(timezone="UTC"),
            clock=ManualClock(),
        )
        await orchestrator.start()
        notices = source.sent_to(OUTPUT)
        assert len(notices) == 1
        assert notices[0].startswith("Vacuumer started")
        assert "Mode: push" in notices[0]

    asyncio.run(scenario())


def test_push_match_forwards_and_schedules_follow_up() -> None:
    async def scenario() -> None:
        source = _source()
        clock = ManualClock()
        orchestrator = build_orchestrator(_policy(), source, None, QUIET, clock=clock)
        assert await orchestrator.start() is True

        await source.emit(
            InboundMessage(id=7, channel_id="-1001", sender_id="42", text="This is URGENT", timestamp=START_TIME)
        )

        forwarded = source.sent_to(OUTPUT)
        assert len(forwarded) == 1
        assert "urgent" in forwarded[0]
        pending = orchestrator.list_pending_tasks()
        assert len(pending) == 1
        assert pending[0].recipient_id == "42"
        assert orchestrator.get_task(pending[0].id) is not None

        await clock.advance(3600)
        assert source.sent_to("42") == ["Hi! Please write me in private messages."]
        assert orchestrator.list_pending_tasks() == []

        await orchestrator.shutdown()
        assert not orchestrator.is_active()

    asyncio.run(scenario())


def test_cancel_pending_task() -> None:
    async def scenario() -> None:
        source = _source()
        clock = ManualClock()
        orchestrator = build_orchestrator(_policy(), source, None, QUIET, clock=clock)
        await orchestrator.start()
        await source.emit(
            InboundMessage(id=1, channel_id="-1001", sender_id="42", text="urgent", timestamp=START_TIME)
        )

        task_id = orchestrator.list_pending_tasks()[0].id
        assert orchestrator.cancel_task(task_id) is True
        await clock.advance(3600)
        assert source.sent_to("42") == []

    asyncio.run(scenario())


def test_poll_mode_end_to_end() -> None:
    async def scenario() -> None:
        source = _source()
        source.add_message("-1001", 1, "urgent but old")
        clock = ManualClock()
        acquisition = AcquisitionConfig(mode="poll", channel_delay_seconds=0, seed_delay_seconds=0)
        orchestrator = build_orchestrator(_policy(delayed_messages_enabled=False), source, acquisition, QUIET, clock=clock)

        assert await orchestrator.start() is True
        assert orchestrator.mode == "poll"
        await settle()
        assert source.sent == []

        source.add_message("-1001", 2, "urgent and new")
        await clock.advance(30)
        await settle()

        forwarded = source.sent_to(OUTPUT)
        assert len(forwarded) == 1
        assert "urgent and new" in forwarded[0]

        await orchestrator.shutdown()

    asyncio.run(scenario())


def test_manual_check_through_orchestrator() -> None:
    async def scenario() -> None:
        source = _source()
        orchestrator = build_orchestrator(_policy(), source, None, QUIET, clock=ManualClock())

        result = await orchestrator.check_message("urgent")
        assert result.verdict.should_forward is True
        assert result.sent is False
        assert source.sent == []

    asyncio.run(scenario())
