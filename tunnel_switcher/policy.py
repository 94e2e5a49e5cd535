"""
Password policy.
A frozen description of the rules a new password must satisfy, plus the
lockout thresholds applied on failed logins.
"""
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SPECIAL_CHARACTERS = frozenset('!@#$%^&*(),.?":{}|<>')


class PasswordPolicy(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    min_length: int = Field(default=12, ge=0)
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True
    max_attempts: int = Field(default=5, ge=1)
    lock_time_seconds: int = Field(default=900, ge=0)

    def violations(self, candidate: str) -> List[str]:
        """
        Return the rules `candidate` breaks, in evaluation order.
        An empty list means the password is acceptable.
        """
        problems = []
        if len(candidate) < self.min_length:
            problems.append(f"Password must be at least {self.min_length} characters")
        if self.require_uppercase and not any("A" <= c <= "Z" for c in candidate):
            problems.append("Password must contain an uppercase letter")
        if self.require_lowercase and not any("a" <= c <= "z" for c in candidate):
            problems.append("Password must contain a lowercase letter")
        if self.require_digit and not any("0" <= c <= "9" for c in candidate):
            problems.append("Password must contain a digit")
        if self.require_special and not any(c in SPECIAL_CHARACTERS for c in candidate):
            problems.append("Password must contain a special character")
        return problems

    def validate_password(self, candidate: str) -> bool:
        """Check `candidate` against every enabled rule, stopping at the first failure."""
        if len(candidate) < self.min_length:
            return False
        if self.require_uppercase and not any("A" <= c <= "Z" for c in candidate):
            return False
        if self.require_lowercase and not any("a" <= c <= "z" for c in candidate):
            return False
        if self.require_digit and not any("0" <= c <= "9" for c in candidate):
            return False
        if self.require_special and not any(c in SPECIAL_CHARACTERS for c in candidate):
            return False
        return True

    def describe(self) -> dict:
        """Policy as camelCase data for client-side hints."""
        return self.model_dump(by_alias=True)
