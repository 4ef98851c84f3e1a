"""
Shared helpers for AWS builders.
"""
import logging

from iaccost.core.config import config
from iaccost.graph.attribute_graph import AttributeNode


logger = logging.getLogger(__name__)

VENDOR_NAME = "aws"


def aws_region(node: AttributeNode) -> str:
    """Region attribute of the node, or DEFAULT_AWS_REGION."""
    region = node.get_str("region")
    if region:
        return region
    logger.debug(f"No region on {node.address}, using {config.DEFAULT_AWS_REGION}")
    return config.DEFAULT_AWS_REGION
