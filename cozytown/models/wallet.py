from dataclasses import dataclass

from ..errors import InsufficientBalance, InvalidAmount


@dataclass(frozen=True)
class Wallet:
    """A user's coin balance. Debits return a new wallet and never go below zero."""
    coins: int = 0

    def __post_init__(self):
        if self.coins < 0:
            raise ValueError("coins must be >= 0")

    def covers(self, amount: int) -> bool:
        return 0 <= amount <= self.coins

    def debit(self, amount: int) -> "Wallet":
        if amount <= 0:
            raise InvalidAmount("amount must be > 0")
        if not self.covers(amount):
            raise InsufficientBalance(f"You don't have enough coins ({self.coins} available)")
        return Wallet(self.coins - amount)

    def credit(self, amount: int) -> "Wallet":
        if amount <= 0:
            raise InvalidAmount("amount must be > 0")
        return Wallet(self.coins + amount)
