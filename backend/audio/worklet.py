"""
Named capture-processor registry.

Consumers look processors up by name (MIC_PROCESSOR_NAME) instead of
importing concrete classes, mirroring how the browser client loads the
`mic-processor` worklet module by name.
"""

from __future__ import annotations

from typing import Callable

from audio.frames import PcmFrame
from audio.mic_processor import MicProcessor
from constants import MIC_PROCESSOR_NAME

ProcessorFactory = Callable[..., MicProcessor]

_registry: dict[str, ProcessorFactory] = {}


class UnknownProcessorError(KeyError):
    """Raised when no processor is registered under the requested name."""


def register_processor(name: str, factory: ProcessorFactory) -> None:
    """Register a processor factory. Re-registering a name replaces it."""
    _registry[name] = factory


def create_processor(
    name: str,
    *,
    sample_rate_hz: float,
    post_message: Callable[[PcmFrame], None],
) -> MicProcessor:
    """Instantiate a registered processor for a capture graph."""
    factory = _registry.get(name)
    if factory is None:
        raise UnknownProcessorError(name)
    return factory(sample_rate_hz=sample_rate_hz, post_message=post_message)


register_processor(MIC_PROCESSOR_NAME, MicProcessor)
