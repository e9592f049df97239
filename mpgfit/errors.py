# mpgfit/errors.py

"""
Error taxonomy for mpgfit.

Library code raises these; the UI shell turns them into HTTP responses
(see mpgfit.serve) and the CLIs let them propagate.
"""


class MpgFitError(Exception):
    """Base class for every error raised by mpgfit."""


class NetworkError(MpgFitError):
    """The dataset could not be fetched."""


class FormatError(MpgFitError):
    """The dataset payload is not the expected JSON array of car records."""


class DegenerateDataError(MpgFitError):
    """The samples cannot be min/max scaled (no samples, or a zero range)."""


class TrainingDivergedError(MpgFitError):
    def __init__(self, epoch: int, loss: float):
        super().__init__(f"Training diverged at epoch {epoch}: loss={loss}")
        self.epoch = epoch
        self.loss = loss


class TrainingCancelledError(MpgFitError):
    def __init__(self, epoch: int):
        super().__init__(f"Training cancelled before epoch {epoch}")
        self.epoch = epoch


class TrainingInProgressError(MpgFitError):
    """A training run is already in flight on this model handle."""


class NoModelError(MpgFitError):
    """No training run has completed yet, so there is no model to use."""


class InvalidModelFileError(MpgFitError):
    """A manifest/weights pair is malformed or the two files do not match."""


class MissingFilesError(MpgFitError):
    """The manifest or the weights file was not provided."""
