"""Device profile registry."""

from typing import Iterable, Optional

from epub2bundle.models import DeviceProfile, Margins

# Supernote Manta A5 X2: 1920x2560 px at 300 PPI
MANTA_PROFILE = DeviceProfile(
    name="supernote-manta-a5x2",
    viewport_width=1920,
    viewport_height=2560,
    margins=Margins(top=100, right=80, bottom=200, left=80),  # bottom leaves room for the toolbar
    font_size=48,
    line_height=1.5,
    font_family="'Noto Serif', serif",
)


class UnknownProfileError(ValueError):
    """Raised when a profile name is not registered."""


class ProfileRegistry:
    """Set of named device profiles with a default.

    Build one at startup and pass it to whatever needs to look up profiles.
    """

    def __init__(self, profiles: Iterable[DeviceProfile], default: Optional[str] = None):
        self._profiles: dict[str, DeviceProfile] = {}
        for profile in profiles:
            if profile.name in self._profiles:
                raise ValueError(f"Profilo duplicato: '{profile.name}'")
            self._profiles[profile.name] = profile

        if not self._profiles:
            raise ValueError("Il registro dei profili è vuoto")

        self._default = default or next(iter(self._profiles))
        if self._default not in self._profiles:
            raise UnknownProfileError(self._unknown_message(self._default))

    @property
    def default(self) -> DeviceProfile:
        return self._profiles[self._default]

    def get(self, name: Optional[str] = None) -> DeviceProfile:
        """Return the named profile, or the default when no name is given."""
        if not name:
            return self.default
        if name not in self._profiles:
            raise UnknownProfileError(self._unknown_message(name))
        return self._profiles[name]

    def names(self) -> list[str]:
        return list(self._profiles.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._profiles

    def _unknown_message(self, name: str) -> str:
        available = ", ".join(self._profiles.keys())
        return f"Profilo sconosciuto '{name}'. Disponibili: {available}"


def default_registry() -> ProfileRegistry:
    """Registry holding the built-in profiles."""
    return ProfileRegistry([MANTA_PROFILE], default=MANTA_PROFILE.name)
