"""Upload progress reporting."""

from __future__ import annotations

import logging

from tqdm import tqdm

logger = logging.getLogger(__name__)


def progress_fraction(sent: int, total: int) -> float:
    """Return ``sent / total``, or 0.0 for an empty transfer."""
    if total <= 0:
        return 0.0
    return sent / total


class ProgressReporter:
    """Sink for ``(sent, total)`` progress pairs emitted by the body producer.

    Every report is logged as ``u<sent>:<total>|<fraction>``, the line format
    consumed by the editor integration. A ``tqdm`` bar is drawn as well when
    requested.
    """

    def __init__(self, show_bar: bool = False, description: str = "Uploading"):
        """Initialize the reporter.

        Args:
            show_bar: Whether to draw a tqdm progress bar on stderr.
            description: Label shown in front of the bar.
        """
        self._show_bar = show_bar
        self._description = description
        self._bar: tqdm | None = None

    def report(self, sent: int, total: int) -> float:
        """Record progress and return the completed fraction.

        Args:
            sent: Bytes handed to the transport so far.
            total: Declared length of the request body.

        Returns:
            The completed fraction in ``[0.0, 1.0]``.
        """
        fraction = progress_fraction(sent, total)
        logger.info("u%d:%d|%.3f", sent, total, fraction)

        if self._show_bar:
            if self._bar is None:
                self._bar = tqdm(
                    total=total,
                    desc=self._description,
                    unit="B",
                    unit_scale=True,
                    unit_divisor=1024,
                )
            self._bar.n = sent
            self._bar.refresh()
        return fraction

    def close(self) -> None:
        """Close the progress bar if one was drawn."""
        if self._bar is not None:
            self._bar.close()
            self._bar = None
