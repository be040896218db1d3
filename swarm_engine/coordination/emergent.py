"""Detection of emergent swarm motion patterns."""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..core.models import Agent, FlockingState
from ..core.vector import Vector3

logger = logging.getLogger(__name__)

MIN_AGENTS = 3
FLOCKING_ALIGNMENT = 0.7
FLOCKING_COHESION = 100.0  # mean distance to centroid (m)
FLOCKING_VARIANCE = 20.0  # mean velocity deviation (m/s)
CONVERGING_DISTANCE = 50.0
DIVERGING_DISTANCE = 200.0
EMERGENCY_ENTROPY = 0.8


@dataclass(frozen=True)
class EmergentPatterns:
    """Swarm-level motion classification.

    Attributes:
        is_flocking: Agents move together in one direction
        is_converging: Agents are gathering
        is_diverging: Agents are spreading out
        entropy: 0-1 instability scalar
        alignment: Mean cosine similarity of velocities to mean velocity
        cohesion: Mean distance to centroid (meters)
        velocity_variance: Mean deviation from mean velocity (m/s)
        center_of_mass: Centroid of the sampled agents
        average_velocity: Mean velocity of the sampled agents
    """
    is_flocking: bool = False
    is_converging: bool = False
    is_diverging: bool = False
    entropy: float = 0.0
    alignment: float = 0.0
    cohesion: float = 0.0
    velocity_variance: float = 0.0
    center_of_mass: Vector3 = Vector3()
    average_velocity: Vector3 = Vector3()

    @property
    def emergency(self) -> bool:
        return self.entropy > EMERGENCY_ENTROPY or self.is_diverging


def detect_patterns(agents: Sequence[Agent]) -> EmergentPatterns:
    """Classify the motion of active agents with known position and velocity.

    Fewer than three usable agents give an all-false result with zero entropy.
    """
    usable = [
        a for a in agents
        if a.is_active and a.position is not None and a.velocity is not None
    ]
    if len(usable) < MIN_AGENTS:
        return EmergentPatterns()

    positions = np.array([a.position.as_array() for a in usable])
    velocities = np.array([a.velocity.as_array() for a in usable])

    center = positions.mean(axis=0)
    mean_velocity = velocities.mean(axis=0)

    mean_norm = np.linalg.norm(mean_velocity)
    norms = np.linalg.norm(velocities, axis=1)
    if mean_norm == 0:
        alignment = 0.0
    else:
        # Stationary agents contribute zero similarity
        safe = np.where(norms > 0, norms, 1.0)
        cosines = np.where(norms > 0, velocities @ mean_velocity / (safe * mean_norm), 0.0)
        alignment = float(cosines.mean())

    cohesion = float(np.linalg.norm(positions - center, axis=1).mean())
    variance = float(np.linalg.norm(velocities - mean_velocity, axis=1).mean())
    entropy = min(variance / 50 + (1 - alignment), 1.0)

    return EmergentPatterns(
        is_flocking=(
            alignment > FLOCKING_ALIGNMENT
            and cohesion < FLOCKING_COHESION
            and variance < FLOCKING_VARIANCE
        ),
        is_converging=cohesion < CONVERGING_DISTANCE,
        is_diverging=cohesion > DIVERGING_DISTANCE,
        entropy=entropy,
        alignment=alignment,
        cohesion=cohesion,
        velocity_variance=variance,
        center_of_mass=Vector3.from_array(center),
        average_velocity=Vector3.from_array(mean_velocity),
    )


def flocking_state(patterns: EmergentPatterns) -> FlockingState:
    """Swarm coordination sub-state for the given patterns."""
    return FlockingState(
        center_of_mass=patterns.center_of_mass,
        average_velocity=patterns.average_velocity,
        is_flocking=patterns.is_flocking,
        is_converging=patterns.is_converging,
        is_diverging=patterns.is_diverging,
        entropy=patterns.entropy,
    )
