"""Analysis failure taxonomy.

Each error carries a stable ``code`` and a fixed ``user_message`` that is
safe to show to end users. Diagnostic detail belongs in the log and in the
chained ``__cause__``, never in the message.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for failures surfaced to the user."""

    code: str = "analysis_failed"
    user_message: str = "Failed to analyze the image. Please try again."

    def __init__(self, user_message: str | None = None) -> None:
        if user_message is not None:
            self.user_message = user_message
        super().__init__(self.user_message)


class InvalidInputError(AnalysisError):
    """The upload is not a usable image."""

    code = "invalid_input"
    user_message = "Please upload a valid image file."


class InferenceError(AnalysisError):
    """The inference provider failed to initialize or run."""

    code = "inference_failed"


class NoVehicleDetectedError(AnalysisError):
    """Inference succeeded but nothing in the image looks like a vehicle."""

    code = "no_vehicle"
    user_message = "No car was found in the image. Please upload a clear photo of a car."


class UploadTooLargeError(InvalidInputError):
    """The upload exceeds the configured byte limit."""

    code = "file_too_large"
    user_message = "Image exceeds the upload size limit."
