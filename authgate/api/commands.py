"""
Command Router: Chat Command Parsing and Handler Dispatch

Turns a raw command line ("/login alice secret") into a call on the
gate. Supports:
- Name-based dispatch with per-command accepted arities
- Usage help on wrong arity
- Operator-only commands
- Gated-entity allow-list enforcement via AuthGate.allow_command

Commands:
    /register <username> <password> <confirm>
    /login [username] <password>
    /changepassword <old> <new> <confirm>
    /logout
    /account
    /resetpassword <username>          (operator only)
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

from authgate.api import messages as M
from authgate.core.errors import AuthGateError, ErrorCode, GateError
from authgate.core.types import Result, Identity
from authgate.observability.logging import StructuredLogger

if TYPE_CHECKING:
    from authgate.session.gate import AuthGate
    from authgate.session.presentation import Presentation

logger = StructuredLogger("authgate.commands")


@dataclass
class CommandRequest:
    """One parsed command invocation."""
    name: str
    args: list[str] = field(default_factory=list)
    sender: Optional[Identity] = None  # None for the server console
    is_operator: bool = False

    @classmethod
    def parse(
        cls,
        line: str,
        sender: Optional[Identity] = None,
        is_operator: bool = False,
    ) -> CommandRequest:
        """
        Parse a raw command line.

        Quoted arguments are honoured; unbalanced quotes fall back to
        whitespace splitting.
        """
        text = line.strip().lstrip("/")
        try:
            parts = shlex.split(text)
        except ValueError:
            parts = text.split()

        name = parts[0].lower() if parts else ""
        return cls(name=name, args=parts[1:], sender=sender, is_operator=is_operator)


@dataclass
class CommandResponse:
    """Outcome of a dispatched command."""
    handled: bool = True
    ok: bool = True
    code: Optional[ErrorCode] = None
    data: Any = None
    reply: Optional[str] = None

    @classmethod
    def success(cls, data: Any = None, reply: Optional[str] = None) -> CommandResponse:
        return cls(data=data, reply=reply)

    @classmethod
    def failure(cls, code: ErrorCode, reply: Optional[str] = None) -> CommandResponse:
        return cls(ok=False, code=code, reply=reply)

    @classmethod
    def from_result(cls, result: Result[Any, AuthGateError]) -> CommandResponse:
        if result.is_ok():
            return cls.success(result.unwrap())
        return cls.failure(result.error.code)

    @classmethod
    def unhandled(cls) -> CommandResponse:
        return cls(handled=False, ok=False)


# Handler function signature
Handler = Callable[[CommandRequest], Awaitable[CommandResponse]]


@dataclass
class Route:
    """Command definition."""
    name: str
    handler: Handler
    arities: tuple[int, ...]
    operator_only: bool = False
    needs_sender: bool = True

    def accepts(self, argc: int) -> bool:
        return argc in self.arities


class CommandRouter:
    """
    Command dispatcher bound to one gate.

    Usage:
        router = CommandRouter(gate, presentation)

        response = await router.dispatch_line("/login secret1", sender=identity)
        if not response.handled:
            ...  # not one of ours, let the host handle it
    """

    __slots__ = ("_gate", "_presentation", "_routes")

    def __init__(self, gate: AuthGate, presentation: Presentation) -> None:
        self._gate = gate
        self._presentation = presentation
        self._routes: dict[str, Route] = {}
        self._register_default_commands()

    # -------------------------------------------------------------------------
    # REGISTRATION
    # -------------------------------------------------------------------------

    def command(
        self,
        name: str,
        arities: tuple[int, ...],
        operator_only: bool = False,
        needs_sender: bool = True,
    ) -> Callable[[Handler], Handler]:
        """Register command decorator."""
        def decorator(handler: Handler) -> Handler:
            self._routes[name.lower()] = Route(
                name=name.lower(),
                handler=handler,
                arities=arities,
                operator_only=operator_only,
                needs_sender=needs_sender,
            )
            return handler
        return decorator

    @property
    def names(self) -> list[str]:
        return sorted(self._routes)

    def _register_default_commands(self) -> None:
        gate = self._gate

        @self.command("register", arities=(3,))
        async def register(request: CommandRequest) -> CommandResponse:
            username, password, confirm = request.args
            return CommandResponse.from_result(
                await gate.register(request.sender, username, password, confirm)
            )

        @self.command("login", arities=(1, 2))
        async def login(request: CommandRequest) -> CommandResponse:
            if len(request.args) == 1:
                username, password = None, request.args[0]
            else:
                username, password = request.args
            return CommandResponse.from_result(
                await gate.login(request.sender, username, password)
            )

        @self.command("changepassword", arities=(3,))
        async def change_password(request: CommandRequest) -> CommandResponse:
            old, new, confirm = request.args
            return CommandResponse.from_result(
                await gate.change_password(request.sender, old, new, confirm)
            )

        @self.command("logout", arities=(0,))
        async def logout(request: CommandRequest) -> CommandResponse:
            return CommandResponse.from_result(await gate.logout(request.sender))

        @self.command("account", arities=(0,))
        async def account(request: CommandRequest) -> CommandResponse:
            return CommandResponse.from_result(await gate.account_info(request.sender))

        @self.command("resetpassword", arities=(1,), operator_only=True, needs_sender=False)
        async def reset_password(request: CommandRequest) -> CommandResponse:
            username = request.args[0]
            result = await gate.reset_password(username)
            if result.is_err():
                reply = M.describe(result.error)
                self._reply(request, reply)
                return CommandResponse.failure(result.error.code, reply)

            reply = M.render(M.PASSWORD_RESET, username=username, password=result.unwrap())
            self._reply(request, reply)
            return CommandResponse.success(result.unwrap(), reply)

    # -------------------------------------------------------------------------
    # DISPATCH
    # -------------------------------------------------------------------------

    async def dispatch_line(
        self,
        line: str,
        sender: Optional[Identity] = None,
        is_operator: bool = False,
    ) -> CommandResponse:
        return await self.dispatch(CommandRequest.parse(line, sender, is_operator))

    async def dispatch(self, request: CommandRequest) -> CommandResponse:
        """Route request to its handler."""
        route = self._routes.get(request.name)
        if route is None:
            return CommandResponse.unhandled()

        if request.sender is not None and not self._gate.allow_command(
            request.sender, request.name
        ):
            return CommandResponse.failure(ErrorCode.NOT_AUTHENTICATED)

        if route.operator_only and not request.is_operator:
            reply = M.describe(GateError.permission_denied(route.name))
            self._reply(request, reply)
            return CommandResponse.failure(ErrorCode.PERMISSION_DENIED, reply)

        if route.needs_sender and request.sender is None:
            reply = f"/{route.name} can only be used by a connected player"
            return CommandResponse.failure(ErrorCode.PERMISSION_DENIED, reply)

        if not route.accepts(len(request.args)):
            reply = M.USAGE.get(route.name, f"Usage: /{route.name}")
            self._reply(request, reply)
            return CommandResponse.failure(ErrorCode.INVALID_ARGUMENTS, reply)

        sender = request.sender.value if request.sender is not None else "console"
        try:
            with logger.context(command=route.name, sender=sender):
                return await route.handler(request)
        except Exception:
            logger.exception("Command handler failed", command=route.name)
            self._reply(request, M.FALLBACK)
            return CommandResponse.failure(ErrorCode.INTERNAL_ERROR)

    def _reply(self, request: CommandRequest, text: str) -> None:
        if request.sender is None:
            return
        try:
            self._presentation.send_message(request.sender, text)
        except Exception as e:
            logger.warning("Presentation call failed", call="send_message", error=str(e))
