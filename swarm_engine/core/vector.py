"""Immutable 3D vector used for positions, velocities and forces.

Frame convention: x/y horizontal (meters), z vertical (positive up).
"""

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np


@dataclass(frozen=True)
class Vector3:
    """3D vector value type.

    Attributes:
        x: First horizontal component
        y: Second horizontal component
        z: Vertical component
    """
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scalar: float) -> "Vector3":
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> "Vector3":
        # Division by zero collapses to the zero vector
        if scalar == 0:
            return Vector3()
        return Vector3(self.x / scalar, self.y / scalar, self.z / scalar)

    def __neg__(self) -> "Vector3":
        return Vector3(-self.x, -self.y, -self.z)

    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def normalize(self) -> "Vector3":
        """Unit vector in the same direction (zero stays zero)."""
        mag = self.magnitude()
        if mag == 0:
            return Vector3()
        return self / mag

    def limit(self, max_magnitude: float) -> "Vector3":
        """Scale down to max_magnitude if longer."""
        mag = self.magnitude()
        if mag > max_magnitude:
            return self.normalize() * max_magnitude
        return self

    def distance_to(self, other: "Vector3") -> float:
        return (self - other).magnitude()

    def horizontal_distance_to(self, other: "Vector3") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def dot(self, other: "Vector3") -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: "Vector3") -> "Vector3":
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def perpendicular(self) -> "Vector3":
        """Horizontal perpendicular (-y, x, 0), normalized."""
        return Vector3(-self.y, self.x, 0.0).normalize()

    def rotated(self, heading: float) -> "Vector3":
        """Rotate about the vertical axis by heading degrees."""
        angle_rad = math.radians(heading)
        cos_h = math.cos(angle_rad)
        sin_h = math.sin(angle_rad)
        return Vector3(
            self.x * cos_h - self.y * sin_h,
            self.x * sin_h + self.y * cos_h,
            self.z,
        )

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def as_tuple(self) -> tuple:
        return (self.x, self.y, self.z)

    @classmethod
    def from_array(cls, values: Iterable[float]) -> "Vector3":
        x, y, z = (float(v) for v in values)
        return cls(x, y, z)

    @classmethod
    def from_heading(cls, heading: float, speed: float) -> "Vector3":
        """Velocity vector for a heading in degrees and a ground speed."""
        angle_rad = math.radians(heading)
        return cls(math.cos(angle_rad) * speed, math.sin(angle_rad) * speed, 0.0)


ZERO = Vector3()


def centroid(points: Iterable[Vector3]) -> Vector3:
    """Mean of a collection of vectors (zero vector when empty)."""
    points = list(points)
    if not points:
        return ZERO
    mean = np.mean([p.as_array() for p in points], axis=0)
    return Vector3.from_array(mean)
