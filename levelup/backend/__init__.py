"""
Backend module - the boundary to the tree generation service.

Provides:
- GenerationBackend interface
- HTTP implementation (httpx)
- Offline demo implementation
- Wire codec and JSON Schema validation
"""

from levelup.backend.base import GenerationBackend
from levelup.backend.http_backend import HttpGenerationBackend, normalize_base_url
from levelup.backend.demo import DemoGenerationBackend, build_demo_tree_payload
from levelup.backend.schema import SchemaRegistry, validate_payload

__all__ = [
    "GenerationBackend",
    "HttpGenerationBackend",
    "normalize_base_url",
    "DemoGenerationBackend",
    "build_demo_tree_payload",
    "SchemaRegistry",
    "validate_payload",
]
