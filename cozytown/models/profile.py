from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .wallet import Wallet


@dataclass
class Profile:
    user_id: str
    display_name: str = ""
    wallet: Wallet = field(default_factory=lambda: Wallet(0))
    workouts_per_week: int = 3
    fitness_goal: Optional[str] = None
    experience_level: Optional[str] = None
    onboarding_completed: bool = False

    @property
    def coins(self) -> int:
        return self.wallet.coins

    def to_front(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "displayName": self.display_name,
            "coins": self.coins,
            "workoutsPerWeek": self.workouts_per_week,
            "fitnessGoal": self.fitness_goal,
            "experienceLevel": self.experience_level,
            "onboardingCompleted": self.onboarding_completed,
        }

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "display_name": self.display_name,
            "coins": self.coins,
            "workouts_per_week": self.workouts_per_week,
            "fitness_goal": self.fitness_goal,
            "experience_level": self.experience_level,
            "onboarding_completed": self.onboarding_completed,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Profile":
        return cls(
            user_id=str(row["id"]),
            display_name=row.get("display_name") or "",
            wallet=Wallet(int(row.get("coins") or 0)),
            workouts_per_week=int(row.get("workouts_per_week") or 3),
            fitness_goal=row.get("fitness_goal"),
            experience_level=row.get("experience_level"),
            onboarding_completed=bool(row.get("onboarding_completed")),
        )
