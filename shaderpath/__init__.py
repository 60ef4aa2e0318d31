import importlib.metadata

from loguru import logger

__version__ = importlib.metadata.version(__package__)

__about__ = "🔍 Resolve shader uniforms and attributes by their full dotted path"
