"""Errors raised by the Yad2 assistant components."""


class Yad2AgentError(Exception):
    """Base class for every error the assistant raises on purpose."""


class SynthesisError(Yad2AgentError):
    """The completion service gave no usable, schema-conformant query."""


class FetchError(Yad2AgentError):
    """The listing feed call failed or returned a body we cannot read."""


class PresentationError(Yad2AgentError):
    """A listing cannot be presented at the requested position."""


class ConfigurationError(Yad2AgentError):
    """A required credential is missing at process start."""
