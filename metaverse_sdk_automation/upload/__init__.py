"""Streaming upload engine."""

from .content_type import sniff_content_type
from .multipart import build_multipart_envelope
from .pipe import BytePipe
from .progress import ProgressReporter
from .stream_pump import StreamPump
from .uploader import ProducerErrorPolicy, Uploader

__all__ = [
    "BytePipe",
    "ProducerErrorPolicy",
    "ProgressReporter",
    "StreamPump",
    "Uploader",
    "build_multipart_envelope",
    "sniff_content_type",
]
