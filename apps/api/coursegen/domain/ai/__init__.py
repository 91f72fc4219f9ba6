"""Generation gateway and provider abstractions."""

from coursegen.domain.ai.factory import build_generation_gateway
from coursegen.domain.ai.gateway import GenerationGateway

__all__ = ["GenerationGateway", "build_generation_gateway"]
