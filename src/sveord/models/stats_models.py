"""Models for dashboard statistics."""
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class LevelStats:
    """Counts for one proficiency level."""
    total: int = 0
    learned: int = 0
    reserved: int = 0
    percent: int = 0


@dataclass
class Proficiency:
    mastered: int = 0
    to_study: int = 0
    total_unique: int = 0
    completion_percent: int = 0


@dataclass
class Velocity:
    """Distinct words learned/reserved since local midnight."""
    learned_today: int = 0
    reserved_today: int = 0


@dataclass
class DashboardStats:
    """Aggregated progress of one user over the whole vocabulary."""
    levels: Dict[str, LevelStats] = field(default_factory=dict)
    proficiency: Proficiency = field(default_factory=Proficiency)
    velocity: Velocity = field(default_factory=Velocity)

    @property
    def has_data(self) -> bool:
        return self.proficiency.total_unique > 0
