"""rtmp2hls: Serve a live RTMP stream as HLS through a supervised ffmpeg worker."""

__version__ = "0.1.0"

from .manager import PipelineManager
from .models import PipelineConfig, StreamEndpoint

__all__ = ["PipelineManager", "PipelineConfig", "StreamEndpoint", "__version__"]
