from __future__ import annotations


class InstallerError(RuntimeError):
    """Base for every fatal error; the CLI maps these to exit status 1."""


class ConfigError(InstallerError):
    pass


class MissingPrerequisiteError(InstallerError):
    """A baseline tool is absent and cannot be installed by the run itself."""

    def __init__(self, tools: list[str]) -> None:
        self.tools = list(tools)
        super().__init__(
            "Missing required tool(s): "
            + ", ".join(self.tools)
            + ". Install them manually and re-run."
        )


class UnsupportedPlatformError(InstallerError):
    def __init__(self, system: str, machine: str) -> None:
        self.system = system
        self.machine = machine
        super().__init__(f"Unsupported platform: {system}/{machine}")


class ActionFailedError(InstallerError):
    def __init__(self, action_id: str, reason: str) -> None:
        self.action_id = action_id
        self.reason = reason
        super().__init__(f"Action {action_id} failed: {reason}")
