"""Deploy Agent - Single-node deployment and process lifecycle manager."""

__version__ = "0.1.0"

from deploy_agent.core.config import Settings

__all__ = ["Settings", "__version__"]
