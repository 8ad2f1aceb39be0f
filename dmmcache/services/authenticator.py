import hashlib
import hmac
import secrets
import time
from typing import Callable, Optional, Tuple


class ProblemAuthenticator:
    """
    Validates the ``dmmProblemKey`` / ``solution`` pair sent with every query.

    A problem key has the form ``<token>-<unix timestamp>``. Its solution is
    ``HMAC-SHA256(salt, problem key)`` as lowercase hex. Keys older than
    ``max_age`` seconds, or dated in the future beyond ``max_age``, are rejected.
    """

    def __init__(
        self,
        salt: str,
        max_age: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.salt = salt.encode()
        self.max_age = max_age
        self.clock = clock

    def _expected_solution(self, problem_key: str) -> str:
        return hmac.new(self.salt, problem_key.encode(), hashlib.sha256).hexdigest()

    def _is_fresh(self, problem_key: str) -> bool:
        token, sep, timestamp = problem_key.rpartition("-")
        if not sep or not token or not timestamp.isdigit():
            return False

        age = self.clock() - int(timestamp)
        return -self.max_age <= age <= self.max_age

    def validate(self, problem_key: Optional[str], solution: Optional[str]) -> bool:
        if not isinstance(problem_key, str) or not isinstance(solution, str):
            return False
        if not problem_key or not solution:
            return False

        try:
            if not self._is_fresh(problem_key):
                return False
            return hmac.compare_digest(
                self._expected_solution(problem_key).encode(),
                solution.lower().encode("utf-8", errors="replace"),
            )
        except (TypeError, ValueError, UnicodeError, OverflowError):
            return False

    def generate_problem(self) -> Tuple[str, str]:
        """Issue a fresh problem key with its solution, as the web client does."""
        problem_key = f"{secrets.token_hex(8)}-{int(self.clock())}"
        return problem_key, self._expected_solution(problem_key)
