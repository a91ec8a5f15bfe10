from __future__ import annotations

import asyncio
import random
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from loguru import logger

from .manager import GenerationManager
from .states import CycleResult, GenerationContext, Message, MessageKind


async def run_channel_stream(
    manager: GenerationManager,
    channel: str,
    turns: int = 10,
    interval_sec: float = 0.0,
    operator_message: Optional[str] = None,
    operator_name: str = "operator",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """Autonomous channel loop. Yields events as the chat progresses.

    Yields dicts of shape:
      - {type: 'start', data: {channel, turns}}
      - {type: 'turn', data: {speaker, message, context, provider, degraded, timestamp}}
      - {type: 'silent', data: {speaker, turn}}
      - {type: 'end', data: {channel, spoken, silent}}

    When operator_message is given it is posted first and answered as a
    user-triggered cycle; every other turn is autonomous.
    """
    rng = rng or random.Random()
    spoken = 0
    silent = 0
    logger.info(f"sim_start | channel={channel} | turns={turns}")
    yield {"type": "start", "data": {"channel": channel, "turns": turns}}

    if operator_message:
        trigger = Message(speaker=operator_name, text=operator_message, timestamp=datetime.utcnow())
        await manager.conversations.append(channel, trigger)
        yield {"type": "turn", "data": _event(trigger)}
        result = await manager.run_cycle(channel, trigger=trigger, context=GenerationContext.OPERATOR)
        if result is not None and not result.silent:
            spoken += 1
            yield {"type": "turn", "data": await _post(manager, result)}

    for turn in range(1, turns + 1):
        result = await manager.run_cycle(channel, context=GenerationContext.ACTIVITY)
        if result is None:
            continue
        if result.silent:
            silent += 1
            yield {"type": "silent", "data": {"speaker": result.persona.nickname, "turn": turn}}
        else:
            spoken += 1
            yield {"type": "turn", "data": await _post(manager, result)}
        if interval_sec > 0 and turn < turns:
            # jitter so speakers don't tick in lockstep
            await sleep(interval_sec * (0.5 + rng.random()))

    logger.info(f"sim_end | channel={channel} | spoken={spoken} | silent={silent}")
    yield {"type": "end", "data": {"channel": channel, "spoken": spoken, "silent": silent}}


async def _post(manager: GenerationManager, result: CycleResult) -> Dict[str, Any]:
    message = Message(speaker=result.persona.nickname, text=result.text, timestamp=datetime.utcnow(), kind=MessageKind.MESSAGE)
    await manager.conversations.append(result.channel, message)
    data = _event(message)
    data.update({
        "context": result.context.value,
        "provider": result.provider,
        "degraded": result.degraded,
        "attachments": [a.kind for a in result.attachments],
    })
    return data


def _event(message: Message) -> Dict[str, Any]:
    return {
        "speaker": message.speaker,
        "message": message.text,
        "timestamp": message.timestamp.isoformat() + "Z",
    }
