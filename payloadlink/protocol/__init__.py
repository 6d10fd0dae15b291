"""Wire protocol for PayloadLink: constants, typed values, messages, frames."""

from . import codec, frame, protocol, structures
from .codec import TypedValue
from .frame import Frame

__all__ = [
    "Frame",
    "TypedValue",
    "codec",
    "frame",
    "protocol",
    "structures",
]
