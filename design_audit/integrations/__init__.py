from .figma_client import FigmaClient, FigmaClientError
from .vision_client import VisionClient, VisionClientError

__all__ = ["FigmaClient", "FigmaClientError", "VisionClient", "VisionClientError"]
