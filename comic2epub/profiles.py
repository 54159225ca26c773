from dataclasses import dataclass
from typing import Tuple
from comic2epub.exceptions import ConfigError

PALETTE_4 = (0x00, 0x55, 0xAA, 0xFF)
PALETTE_15 = (0x00, 0x11, 0x22, 0x33, 0x44, 0x55, 0x66, 0x77, 0x88, 0x99, 0xAA, 0xBB, 0xCC, 0xDD, 0xFF)
PALETTE_16 = tuple(range(0x00, 0x100, 0x11))

@dataclass(frozen=True)
class Profile:
    code: str
    description: str
    width: int
    height: int
    palette: Tuple[int, ...]

    @property
    def gray_levels(self):
        return len(self.palette)

PROFILES = [
    # Kindle
    Profile("K1", "Kindle 1", 600, 670, PALETTE_4),
    Profile("K11", "Kindle 11", 1072, 1448, PALETTE_16),
    Profile("K2", "Kindle 2", 600, 670, PALETTE_15),
    Profile("K34", "Kindle Keyboard/Touch", 600, 800, PALETTE_16),
    Profile("K578", "Kindle", 600, 800, PALETTE_16),
    Profile("KDX", "Kindle DX/DXG", 824, 1000, PALETTE_16),
    Profile("KPW", "Kindle Paperwhite 1/2", 758, 1024, PALETTE_16),
    Profile("KV", "Kindle Paperwhite 3/4/Voyage/Oasis", 1072, 1448, PALETTE_16),
    Profile("KPW5", "Kindle Paperwhite 5/Signature Edition", 1236, 1648, PALETTE_16),
    Profile("KO", "Kindle Oasis 2/3", 1264, 1680, PALETTE_16),
    Profile("KS", "Kindle Scribe", 1860, 2480, PALETTE_16),
    # Kobo
    Profile("KoMT", "Kobo Mini/Touch", 600, 800, PALETTE_16),
    Profile("KoG", "Kobo Glo", 768, 1024, PALETTE_16),
    Profile("KoGHD", "Kobo Glo HD", 1072, 1448, PALETTE_16),
    Profile("KoA", "Kobo Aura", 758, 1024, PALETTE_16),
    Profile("KoAHD", "Kobo Aura HD", 1080, 1440, PALETTE_16),
    Profile("KoAH2O", "Kobo Aura H2O", 1080, 1430, PALETTE_16),
    Profile("KoAO", "Kobo Aura ONE", 1404, 1872, PALETTE_16),
    Profile("KoN", "Kobo Nia", 758, 1024, PALETTE_16),
    Profile("KoC", "Kobo Clara HD/Kobo Clara 2E", 1072, 1448, PALETTE_16),
    Profile("KoL", "Kobo Libra H2O/Kobo Libra 2", 1264, 1680, PALETTE_16),
    Profile("KoF", "Kobo Forma", 1440, 1920, PALETTE_16),
    Profile("KoS", "Kobo Sage", 1440, 1920, PALETTE_16),
    Profile("KoE", "Kobo Elipsa", 1404, 1872, PALETTE_16),
]

PROFILES_BY_CODE = {p.code: p for p in PROFILES}

def get_profile(code):
    try:
        return PROFILES_BY_CODE[code]
    except KeyError:
        raise ConfigError(f"Profile doesn't exist: '{code}'")

def describe_profiles():
    """One help line per profile."""
    return "\n".join(
        "    - %-7s ( %9s ) - %2d levels of gray - %s" % (
            p.code, f"{p.width}x{p.height}", p.gray_levels, p.description)
        for p in PROFILES
    )
