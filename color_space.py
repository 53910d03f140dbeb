"""
Palette color values and their renderings (hex, CIE LAB).
"""

from dataclasses import dataclass

import numpy as np


# =============================================================================
# Color Conversion
# =============================================================================

def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert RGB array (0-255) to LAB color space."""
    rgb = np.asarray(rgb)
    if rgb.ndim == 1:
        rgb = rgb.reshape(1, -1)

    rgb_norm = rgb.astype(np.float64) / 255.0

    # Apply gamma correction
    mask = rgb_norm > 0.04045
    rgb_linear = np.where(mask, ((rgb_norm + 0.055) / 1.055) ** 2.4, rgb_norm / 12.92)

    # RGB to XYZ matrix
    r, g, b = rgb_linear[:, 0], rgb_linear[:, 1], rgb_linear[:, 2]
    x = r * 0.4124564 + g * 0.3575761 + b * 0.1804375
    y = r * 0.2126729 + g * 0.7151522 + b * 0.0721750
    z = r * 0.0193339 + g * 0.1191920 + b * 0.9503041

    # XYZ to LAB (D65 reference white)
    xn, yn, zn = 0.95047, 1.0, 1.08883
    x, y, z = x / xn, y / yn, z / zn

    epsilon = 0.008856
    kappa = 903.3
    fx = np.where(x > epsilon, x ** (1/3), (kappa * x + 16) / 116)
    fy = np.where(y > epsilon, y ** (1/3), (kappa * y + 16) / 116)
    fz = np.where(z > epsilon, z ** (1/3), (kappa * z + 16) / 116)

    L = 116 * fy - 16
    a = 500 * (fx - fy)
    b_val = 200 * (fy - fz)

    return np.column_stack([L, a, b_val])


# =============================================================================
# Palette Values
# =============================================================================

@dataclass(frozen=True)
class Color:
    """A 24-bit RGB color."""
    r: int
    g: int
    b: int

    def __post_init__(self):
        for channel in (self.r, self.g, self.b):
            if not 0 <= channel <= 255:
                raise ValueError(f"Channel value {channel} outside 0-255")

    @classmethod
    def from_hex(cls, hex_code: str) -> 'Color':
        """Parse '#RRGGBB' (the '#' is optional)."""
        digits = hex_code[1:] if hex_code.startswith('#') else hex_code
        if len(digits) != 6:
            raise ValueError(f"Not a #RRGGBB color: {hex_code!r}")
        try:
            return cls(int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))
        except ValueError:
            raise ValueError(f"Not a #RRGGBB color: {hex_code!r}")

    def to_hex(self) -> str:
        return f"#{self.r:02X}{self.g:02X}{self.b:02X}"

    def to_lab(self) -> np.ndarray:
        """CIE LAB coordinates (D65) as a length-3 array."""
        return rgb_to_lab(np.array([self.as_tuple()]))[0]

    def as_tuple(self) -> tuple:
        return (self.r, self.g, self.b)


@dataclass(frozen=True)
class ColorCount:
    """One palette entry: a representative color and the pixels it stands for."""
    color: Color
    count: int

    @property
    def hex(self) -> str:
        return self.color.to_hex()

    def percentage(self, total: int) -> float:
        """Share of `total` pixels covered by this entry, in percent."""
        if total <= 0:
            return 0.0
        return self.count / total * 100
