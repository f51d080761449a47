"""Exceptions raised by the relaxation pipeline."""


class RelaxationError(Exception):
    """Base class for fatal relaxation failures."""


class InvalidLabeling(RelaxationError, ValueError):
    """A poly label is missing, not in {0, 1}, or the labeling has the wrong size."""


class NoInterface(RelaxationError):
    """No vertex touches polys of both labels, so there is no boundary to relax."""


class SingularSystem(RelaxationError, RuntimeError):
    """The least-squares system for the potential is rank deficient or did not converge."""
