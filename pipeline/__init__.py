"""Pipeline package for HomeWatch.

The pipeline holds the I/O edges the detector works against: the
camera adapter that produces frames, the image sink that persists
detections, the preview window and the bounded dispatcher used for
background detection and save work.
"""

from .camera_adapter import CameraAdapter, FrameSource, FrameSourceError, is_empty_frame
from .dispatch import BoundedDispatcher
from .image_sink import ImageSink, OpenCVImageSink, detection_image_name
from .preview import OpenCVWindow, PreviewSink

__all__ = [
    "BoundedDispatcher",
    "CameraAdapter",
    "FrameSource",
    "FrameSourceError",
    "ImageSink",
    "OpenCVImageSink",
    "OpenCVWindow",
    "PreviewSink",
    "detection_image_name",
    "is_empty_frame",
]
