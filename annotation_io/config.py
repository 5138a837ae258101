"""
Annotation I/O configuration
"""

import os
import logging

# Worker pool
MAX_WORKERS = int(os.getenv("ANNOTATION_IO_MAX_WORKERS", str(min(32, (os.cpu_count() or 1) + 4))))

# Logging
LOG_LEVEL = os.getenv("ANNOTATION_IO_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Tolerance used when comparing coordinates
DOUBLE_EQUAL_TOLERANCE = 1e-6

# Decimal places written per format
VOC_DECIMALS = 2
JSON_DECIMALS = 6
YOLO_DECIMALS = 6

# File naming
YOLO_OBJECT_DATA_FILE = "object.data"
YOLO_DEFAULT_IMAGE_SUFFIX = ".jpg"
VOC_ANNOTATION_SUFFIX = "_A"
JSON_DEFAULT_FILE_NAME = "annotations.json"


def setup_logging(level: str = None) -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
