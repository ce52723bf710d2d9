"""
We use builtin exceptions where they fit and specialize only where a caller
needs to tell failures apart:

- Every exception that might be externally visible shall be a subclass
  of ShieldException.
- Inbound messages never raise out of the router; handler failures are
  logged and turned into error-typed responses where the protocol has one.
"""


class ShieldException(Exception):
    """
    Base class for all exceptions thrown by shieldcore.
    """

    def __init__(self, message=None):
        super().__init__(message)


class OptionsError(ShieldException):
    pass


class ModuleError(ShieldException):
    """
    A capability module could not be found or refused a transition.
    """


class PipelineError(ShieldException):
    pass


class PipelineUnavailable(PipelineError):
    """
    The request pipeline facility is missing or disabled, so step ordering
    cannot be guaranteed.
    """


class RouterError(ShieldException):
    pass


class SettingsImportError(ShieldException):
    pass


class FetchError(ShieldException):
    pass
