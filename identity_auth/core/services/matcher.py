"""
Demographic fuzzy matching.

Pure functions, no I/O. Scores a claimed demographic record against the
on-file record with Levenshtein-based similarity on names and contacts and
an exact comparison on date of birth, then aggregates with fixed weights.

Missing phone/email still carry their weight (they contribute 0 rather than
being dropped from the denominator), so a perfect name and date-of-birth
match alone scores 70.0 and does not reach the 75.0 threshold.

Example usage:
    from identity_auth.core.services.matcher import score

    result = score(on_file, claimed)
    result.total          # 0.0 .. 100.0
    result.authenticated  # total >= 75.0
"""

from dataclasses import dataclass

from identity_auth.core.config import settings
from identity_auth.core.schemas.auth import DemographicRecord


__all__ = [
    "MatchScore",
    "WEIGHTS",
    "levenshtein_distance",
    "score",
    "similarity",
]


WEIGHTS: dict[str, float] = {
    "name": 0.40,
    "date_of_birth": 0.30,
    "phone": 0.15,
    "email": 0.15,
}


@dataclass(frozen=True)
class MatchScore:
    """
    Per-field similarities and the weighted aggregate.

    Attributes:
        name: Full-name similarity, 0-100.
        date_of_birth: 100 on exact match, else 0.
        phone: Phone similarity, 0 when missing on either side.
        email: Email similarity, 0 when missing on either side.
        total: Weighted sum of the above.
        threshold: Minimum total required to authenticate.
    """

    name: float
    date_of_birth: float
    phone: float
    email: float
    total: float
    threshold: float

    @property
    def authenticated(self) -> bool:
        return self.total >= self.threshold

    @property
    def rounded(self) -> float:
        """The total at two-decimal precision, as reported in audit rows."""
        return round(self.total, 2)


def levenshtein_distance(a: str, b: str) -> int:
    """
    Edit distance between two strings (insert, delete, substitute; unit cost).

    Classic dynamic-programming formulation over Unicode code points,
    O(len(a) * len(b)) time and space.

    Examples:
        >>> levenshtein_distance("kitten", "sitting")
        3
        >>> levenshtein_distance("", "abc")
        3
    """
    rows = len(b) + 1
    cols = len(a) + 1
    matrix = [[0] * cols for _ in range(rows)]

    for i in range(rows):
        matrix[i][0] = i
    for j in range(cols):
        matrix[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            if b[i - 1] == a[j - 1]:
                matrix[i][j] = matrix[i - 1][j - 1]
            else:
                matrix[i][j] = min(
                    matrix[i - 1][j - 1] + 1,  # substitute
                    matrix[i][j - 1] + 1,  # insert
                    matrix[i - 1][j] + 1,  # delete
                )

    return matrix[rows - 1][cols - 1]


def similarity(a: str | None, b: str | None) -> float:
    """
    Percentage similarity ``(maxLen - distance) / maxLen * 100``, floored at 0.

    Comparison is case-insensitive. Returns 0 when either side is missing
    or empty.

    Examples:
        >>> similarity("Jane", "jane")
        100.0
        >>> similarity("abcd", "abcf")
        75.0
    """
    if not a or not b:
        return 0.0

    a = a.lower()
    b = b.lower()
    max_length = max(len(a), len(b))
    distance = levenshtein_distance(a, b)
    return max(0.0, (max_length - distance) / max_length * 100)


def score(
    on_file: DemographicRecord,
    claimed: DemographicRecord,
    threshold: float | None = None,
) -> MatchScore:
    """
    Score a claimed record against the on-file record.

    Args:
        on_file: The resident's stored demographic data.
        claimed: The data presented for authentication.
        threshold: Pass mark; defaults to ``settings.DEMOGRAPHIC_MATCH_THRESHOLD``.

    Returns:
        MatchScore: Field scores, weighted total and the verdict.
    """
    threshold = (
        settings.DEMOGRAPHIC_MATCH_THRESHOLD if threshold is None else threshold
    )

    name_score = similarity(on_file.full_name, claimed.full_name)

    dob_score = 0.0
    if on_file.date_of_birth and claimed.date_of_birth:
        if on_file.date_of_birth.lower() == claimed.date_of_birth.lower():
            dob_score = 100.0

    phone_score = similarity(on_file.phone, claimed.phone)
    email_score = similarity(on_file.email, claimed.email)

    total = (
        name_score * WEIGHTS["name"]
        + dob_score * WEIGHTS["date_of_birth"]
        + phone_score * WEIGHTS["phone"]
        + email_score * WEIGHTS["email"]
    )

    return MatchScore(
        name=name_score,
        date_of_birth=dob_score,
        phone=phone_score,
        email=email_score,
        total=total,
        threshold=threshold,
    )
