"""
Custom Exceptions for ShoreWatch

Specialized exceptions for preprocessing, compositing, reduction limits and
imagery access.
"""

from __future__ import annotations
from typing import Optional, Any


class ShoreWatchError(Exception):
    """Base exception for all ShoreWatch errors."""
    pass


class MissingBandError(ShoreWatchError):
    """
    Raised when a source image lacks a band required by the harmonized schema.

    The preprocessor absorbs this error: the offending image is dropped from
    its collection and the run continues.
    """

    def __init__(
        self,
        message: str,
        band_name: Optional[str] = None,
        image_id: Optional[str] = None
    ):
        """
        Initialize missing band error.

        Args:
            message: Error description
            band_name: Name of the missing band
            image_id: Identifier of the image that lacks it
        """
        super().__init__(message)
        self.band_name = band_name
        self.image_id = image_id

    def __str__(self) -> str:
        msg = super().__str__()
        if self.band_name:
            msg += f" (Band: {self.band_name})"
        if self.image_id:
            msg += f" (Image: {self.image_id})"
        return msg


class EmptyCompositeError(ShoreWatchError):
    """
    Describes a year whose filtered collection is empty or fully masked.

    This is a soft condition. The compositor does not raise it; it returns a
    fully masked composite with ``properties["empty"] = True`` so downstream
    stages propagate "no data" instead of reporting zero land.
    """

    def __init__(self, year: int, image_count: int = 0):
        message = f"No valid observations for {year} ({image_count} image(s) in window)"
        super().__init__(message)
        self.year = year
        self.image_count = image_count


class ResourceLimitExceeded(ShoreWatchError):
    """
    Raised when a vectorization or region reduction would process more pixels
    than its configured ceiling. Fatal to the run.
    """

    def __init__(
        self,
        operation: str,
        limit: float,
        pixel_count: int
    ):
        """
        Initialize resource limit error.

        Args:
            operation: Name of the operation that hit the ceiling
            limit: Configured maximum pixel count
            pixel_count: Pixels the operation would have processed
        """
        message = (
            f"{operation} would process {pixel_count:,} pixels, "
            f"exceeding max_pixels={limit:,.0f}"
        )
        super().__init__(message)
        self.operation = operation
        self.limit = limit
        self.pixel_count = pixel_count


class ImagerySourceError(ShoreWatchError):
    """
    Raised when the imagery catalog or an asset cannot be reached.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.original_error = original_error

    def __str__(self) -> str:
        msg = super().__str__()
        if self.status_code:
            msg += f" (HTTP {self.status_code})"
        if self.url:
            msg += f" (URL: {self.url})"
        return msg


class ValidationError(ShoreWatchError):
    """
    Raised when input or configuration validation fails.
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        invalid_value: Optional[Any] = None
    ):
        """
        Initialize validation error.

        Args:
            message: Error description
            field_name: Name of the invalid field
            invalid_value: The invalid value
        """
        super().__init__(message)
        self.field_name = field_name
        self.invalid_value = invalid_value


class AnalysisError(ShoreWatchError):
    """
    Raised when the analysis pipeline encounters an unrecoverable error.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize analysis error.

        Args:
            message: Error description
            stage: Analysis stage where error occurred
            original_error: The underlying exception
        """
        super().__init__(message)
        self.stage = stage
        self.original_error = original_error

    def __str__(self) -> str:
        """Format error message with analysis details."""
        msg = super().__str__()
        if self.stage:
            msg += f" (Stage: {self.stage})"
        return msg
