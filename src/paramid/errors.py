#########################################################################################
##
##                           ERRORS AND WARNINGS FOR PARAMID
##                                    (errors.py)
##
##         Configuration errors abort a run immediately. Numerical failures are
##         reported inside the result and surfaced as warnings instead.
##
##                                  Kevin McBride 2026
##
#########################################################################################


# ERRORS ================================================================================

class ParamIdError(Exception):
    """Base class for all paramid exceptions."""


class ConfigurationError(ParamIdError, ValueError):
    """Unrecoverable setup mistake.

    Raised for unknown state, parameter, event or observable names,
    malformed bounds, non-positive weights or tolerances and invalid solver
    settings. Subclasses ``ValueError`` so callers that already guard
    against bad arguments keep working.
    """


class ModelEvaluationError(ConfigurationError):
    """The dynamics model produced a non-finite or mis-shaped value.

    Attributes
    ----------
    model : str
        Name of the offending model.
    time : float or None
        Simulation time of the failing evaluation, if known.
    """

    def __init__(self, message, model=None, time=None):
        super().__init__(message)
        self.model = model
        self.time = time


class UnmetEventError(ParamIdError, LookupError):
    """An event constraint asked for more events than the trajectory has.

    This is a soft failure: the loss composer converts it into a penalty
    component and a diagnostic message.

    Attributes
    ----------
    event : str
        Event name that was searched for.
    required : int
        Occurrence number that was requested (1-based).
    found : int
        Number of matching events detected within the simulated horizon.
    """

    def __init__(self, event, required, found):
        self.event = event
        self.required = int(required)
        self.found = int(found)
        super().__init__(
            f"unmet event constraint: needed occurrence {self.required} of "
            f"'{event}' but only {self.found} occurred within the horizon"
        )


# WARNINGS ==============================================================================

class ConvergenceWarning(UserWarning):
    """The optimizer stopped without meeting its convergence criteria."""


class IdentifiabilityWarning(UserWarning):
    """Some derived parameters are poorly determined by the constraints."""
