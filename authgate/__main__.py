#!/usr/bin/env python3
"""
AuthGate

Entry point demonstrating the gate end to end against an in-process
console "host": one entity registers, one logs back in, and one
idles until it is kicked.

Usage:
    python -m authgate
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from typing import Optional

from authgate import build_gate
from authgate.api.commands import CommandRouter
from authgate.core.config import AuthGateConfig
from authgate.core.types import Identity, TransientState, Vector3
from authgate.observability.logging import LogLevel, setup_logging
from authgate.observability.metrics import MetricsCollector
from authgate.scheduling import AsyncioScheduler
from authgate.session.presentation import Presentation, TitleTiming


class ConsolePresentation(Presentation):
    """Prints everything the gate would show and keeps positions in memory."""

    def __init__(self) -> None:
        self.states: dict[Identity, TransientState] = {}

    def join(self, identity: Identity, state: TransientState) -> None:
        self.states[identity] = state

    def send_message(self, identity: Identity, text: str) -> None:
        print(f"  [{identity}] chat: {text}")

    def send_title(
        self,
        identity: Identity,
        title: str,
        subtitle: str,
        timing: TitleTiming,
    ) -> None:
        if title or subtitle:
            print(f"  [{identity}] title: {title} | {subtitle}")

    def disconnect(self, identity: Identity, reason: str) -> None:
        print(f"  [{identity}] disconnected: {reason}")
        self.states.pop(identity, None)

    def get_transient_state(self, identity: Identity) -> Optional[TransientState]:
        return self.states.get(identity)

    def set_transient_state(self, identity: Identity, state: TransientState) -> bool:
        if identity not in self.states:
            return False
        self.states[identity] = state
        return True


async def demo() -> None:
    """Walk three entities through the gate."""
    print("\n" + "=" * 60)
    print("AuthGate - Console Demo")
    print("=" * 60 + "\n")

    config_result = AuthGateConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        sys.exit(1)

    base = config_result.unwrap()
    config = replace(
        base,
        gate=replace(base.gate, grace_period_s=6.0, reminder_interval_s=2.0, reminder_marks=(4, 2)),
        credentials=replace(base.credentials, backend="memory"),
    )

    setup_logging(
        LogLevel.from_name(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    host = ConsolePresentation()
    built = await build_gate(config, host, scheduler=AsyncioScheduler())
    if built.is_err():
        print(f"Startup error: {built.error}")
        sys.exit(1)

    gate = built.unwrap()
    router = CommandRouter(gate, host)
    print("✓ Gate ready (memory backend)\n")

    alice = Identity("player-alice")
    bob = Identity("player-bob")
    spawn = TransientState(position=Vector3(12.0, 64.0, -7.0))

    print("1. alice connects and registers")
    host.join(alice, spawn)
    await gate.on_connect(alice)
    gate.allow_command(alice, "/say hello")
    gate.allow_chat(alice)
    await router.dispatch_line("/register alice secret1 secret1", sender=alice)
    print(f"   position restored: {host.states[alice].position}")
    await router.dispatch_line("/account", sender=alice)

    print("\n2. alice reconnects and logs in with the bound account")
    await gate.on_disconnect(alice)
    await gate.on_connect(alice)
    await router.dispatch_line("/login wrong", sender=alice)
    await router.dispatch_line("/login secret1", sender=alice)

    print("\n3. bob connects and never authenticates")
    host.join(bob, spawn)
    await gate.on_connect(bob)
    await asyncio.sleep(config.gate.grace_period_s + 0.5)

    await gate.shutdown()
    if config.observability.metrics_enabled:
        print("\n--- Metrics ---\n")
        print(MetricsCollector.get_instance().export_prometheus())
    print("✓ Demo complete")
    print("=" * 60 + "\n")


async def main() -> None:
    """Main entry point."""
    try:
        await demo()
    except KeyboardInterrupt:
        print("\nInterrupted")


def run() -> None:
    """Synchronous entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
