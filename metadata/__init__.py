from .types import VideoMetadata, parse_video_metadata_value

__all__ = ["VideoMetadata", "parse_video_metadata_value"]
