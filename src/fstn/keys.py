"""Store keys and home-prefix expansion."""

from dataclasses import dataclass
from typing import List, Tuple

from .errors import InvalidKeyError

SEPARATOR = ":"
TILDE = "~"


def home_prefix(user: str) -> Tuple[str, str]:
    """Segments of a user's home directory, e.g. ("home", "<alice,alice>")."""
    return ("home", f"<{user},{user}>")


@dataclass(frozen=True)
class Key:
    """A ':'-separated path into the store namespace.

    Keys carry no value/blob tag; which namespace semantics apply is decided
    by the operation that uses them.
    """

    segments: Tuple[str, ...]

    @classmethod
    def parse(cls, text: str) -> "Key":
        """Parse a key such as ``~:photos:cat.png``.

        Raises:
            InvalidKeyError: If the key or any of its segments is empty
        """
        if not text or not text.strip():
            raise InvalidKeyError(text, "key is empty")
        segments = tuple(text.split(SEPARATOR))
        if any(not s for s in segments):
            raise InvalidKeyError(text, "empty path segment")
        return cls(segments)

    @staticmethod
    def validate_name(name: str) -> str:
        """Check a single entry name used under a directory key.

        Raises:
            InvalidKeyError: If name is empty or contains the separator
        """
        if not name or not name.strip():
            raise InvalidKeyError(name, "entry name is empty")
        if SEPARATOR in name:
            raise InvalidKeyError(name, f"entry name cannot contain '{SEPARATOR}'")
        return name

    @property
    def needs_expansion(self) -> bool:
        return any(s.startswith(TILDE) for s in self.segments)

    def expand(self, user: str) -> "Key":
        """Rewrite every segment starting with ``~`` to the user's home.

        ``~`` alone becomes the home prefix; ``~name`` becomes the home
        prefix followed by ``name``.
        """
        expanded: List[str] = []
        for segment in self.segments:
            if segment.startswith(TILDE):
                expanded.extend(home_prefix(user))
                rest = segment[len(TILDE):]
                if rest:
                    expanded.append(rest)
            else:
                expanded.append(segment)
        return Key(tuple(expanded))

    def to_path(self) -> List[str]:
        """Wire form: a JSON list of segments."""
        return list(self.segments)

    def __str__(self) -> str:
        return SEPARATOR.join(self.segments)


__all__ = ["Key", "home_prefix"]
