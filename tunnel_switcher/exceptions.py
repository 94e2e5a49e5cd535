"""
Exceptions raised by the switcher services.
Routes translate them into HTTP responses.
"""


class SwitcherError(Exception):
    """Base exception for switcher operations."""
    pass


class StorageError(SwitcherError):
    """A persisted file could not be read or written."""
    pass


class AdminAccountMissing(SwitcherError):
    """The configured admin account is not provisioned in the credential store."""
    pass


class UnknownAccount(SwitcherError):
    pass


class PolicyViolation(SwitcherError):
    """A new password does not satisfy the password policy."""

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "Password policy violation")


class InvalidSource(SwitcherError):
    """The configuration file selected for activation is missing or not a regular file."""
    pass


class StateDriftError(StorageError):
    """The active slot was replaced but its recorded name could not be saved."""
    pass


class ContainerRestartError(SwitcherError):
    """A dependent container refused or failed to restart."""
    pass
