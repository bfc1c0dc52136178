"""Who may drive the console, and what their message asks for.

Pure decision logic: no I/O, no logging. The dispatcher acts on the result.
"""

from dataclasses import dataclass

COMMAND_PREFIX = "!"
BLOCKED_COMMANDS = ("help",)
RESTART_COMMAND = "restart"


@dataclass(frozen=True)
class Unauthorized:
    pass


@dataclass(frozen=True)
class Plain:
    pass


@dataclass(frozen=True)
class Command:
    body: str


@dataclass(frozen=True)
class Blocked:
    name: str


@dataclass(frozen=True)
class Restart:
    pass


def is_command(text):
    return text.startswith(COMMAND_PREFIX)


def command_name(body):
    words = body.split(maxsplit=1)
    return words[0].lower() if words else ""


def classify(sender_id, text, allow_list, reserved=False):
    """Decide what an inbound message means.

    With ``reserved`` off this is the plain allow-list check: outsiders are
    Unauthorized, admins either chat (Plain) or issue ``!<body>`` commands.
    With ``reserved`` on, ``!help`` is Blocked for everyone (before the
    allow-list is consulted) and an admin's ``!restart`` becomes Restart.
    """
    if reserved and is_command(text):
        name = command_name(text[len(COMMAND_PREFIX):])
        if name in BLOCKED_COMMANDS:
            return Blocked(name)

    if sender_id not in allow_list:
        return Unauthorized()
    if not is_command(text):
        return Plain()

    body = text[len(COMMAND_PREFIX):]
    if reserved and body.strip().lower() == RESTART_COMMAND:
        return Restart()
    return Command(body)
