"""Automation client for uploading Unreal plugin packages to the Metaverse API."""

from .core.models import (
    FileMetadata,
    TransferDescriptor,
    UploadMode,
    UploadResult,
    UploadTarget,
)
from .upload.uploader import ProducerErrorPolicy, Uploader

__version__ = "0.3.0"

__all__ = [
    "FileMetadata",
    "ProducerErrorPolicy",
    "TransferDescriptor",
    "UploadMode",
    "UploadResult",
    "UploadTarget",
    "Uploader",
]
