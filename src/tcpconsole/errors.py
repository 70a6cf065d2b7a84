"""
Exceptions raised by the console server.

None of these are fatal to the host process: StartupError disables the
console, and the command errors are turned into reply lines for the client.
"""


class StartupError(Exception):
    """
    Raised when the listening socket cannot be configured or bound.

    ConsoleServer.start() catches it and leaves the server disabled.
    """


class CommandParseError(ValueError):
    """
    Raised when a line is not any recognized command (UnknownCommand).

    Carries the original line text so the reply can echo it verbatim.
    """

    def __init__(self, text: str):
        super().__init__(f"Command not found: {text}")
        self.text = text


class CommandDispatchError(Exception):
    """
    Raised for a recognized command that has no handling (Unhandled).
    """

    def __init__(self, command, text: str):
        super().__init__(f"Unhandled console command: {text}")
        self.command = command
        self.text = text
