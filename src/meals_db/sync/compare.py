"""Mismatch detection, ignore filtering and link candidate scoring.

Everything here is pure: inputs are snapshots already read by the
adapters, outputs are new values. No store is touched.

Detection compares trimmed values (optionally case-folded). Ignore rules
match raw values exactly. An ignore decision therefore stops applying as
soon as either side is reformatted, even when detection would still see
the same trimmed difference.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Iterable, Mapping, Sequence

from .mapper import FieldMapper
from .models import (
    ClientSnapshot,
    DetectionResult,
    IgnoreRule,
    LinkCandidate,
    Mismatch,
    WordPressUser,
)

logger = logging.getLogger(__name__)

CANDIDATE_THRESHOLD = 50
CANDIDATE_LIMIT = 5
MAX_SCORE = 200

_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D+")


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def _comparable(value: str, casefold: bool) -> str:
    value = value.strip()
    return value.casefold() if casefold else value


def _diff_pair(
    client: ClientSnapshot,
    user: WordPressUser,
    mapper: FieldMapper,
    casefold: bool,
) -> list[Mismatch]:
    found = []
    for name in mapper.field_names:
        ours = getattr(client, name)
        theirs = getattr(user, name)
        if _comparable(ours, casefold) == _comparable(theirs, casefold):
            continue
        found.append(
            Mismatch(
                client_id=client.id,
                wp_user_id=user.id,
                field_name=name,
                value_from_client=ours,
                value_from_wp=theirs,
            )
        )
    return found


def detect_mismatches(
    wp_users: Iterable[WordPressUser],
    linked_clients: Mapping[int, Sequence[ClientSnapshot]],
    unlinked_clients: Iterable[ClientSnapshot],
    staff_wp_ids: Iterable[int],
    *,
    casefold: bool = False,
    mapper: FieldMapper | None = None,
) -> DetectionResult:
    """Diff every linked client against its WordPress user.

    Args:
        wp_users: All WordPress users.
        linked_clients: WordPress user id to the clients linked to it.
        unlinked_clients: Clients without a link; reported, not diffed.
        staff_wp_ids: WordPress ids belonging to staff. These users are
            never diffed and never reported as unmatched.
        casefold: Also ignore case differences.
        mapper: Field mapper (defaults to the standard comparable fields).

    Returns:
        DetectionResult with mismatches ordered by client id, then field
        order.
    """
    mapper = mapper or FieldMapper()
    staff = frozenset(staff_wp_ids)
    users = {u.id: u for u in wp_users}

    mismatches: list[Mismatch] = []
    orphaned: list[ClientSnapshot] = []
    for wp_id, linked in linked_clients.items():
        if wp_id in staff:
            continue
        user = users.get(wp_id)
        if user is None:
            orphaned.extend(linked)
            continue
        for client in linked:
            mismatches.extend(_diff_pair(client, user, mapper, casefold))

    # Stable sort keeps declared field order within each client
    mismatches.sort(key=lambda m: m.client_id)
    orphaned.sort(key=lambda c: c.id)

    unmatched = [
        u
        for u in users.values()
        if u.id not in staff and u.id not in linked_clients
    ]
    unmatched.sort(key=lambda u: u.id)

    if orphaned:
        logger.info("%d clients point at missing WordPress users", len(orphaned))

    return DetectionResult(
        mismatches=mismatches,
        unlinked_clients=sorted(unlinked_clients, key=lambda c: c.id),
        orphaned_links=orphaned,
        unmatched_users=unmatched,
    )


def detect(
    wp_users: Iterable[WordPressUser],
    linked_clients: Mapping[int, Sequence[ClientSnapshot]],
    unlinked_clients: Iterable[ClientSnapshot],
    staff_wp_ids: Iterable[int],
    *,
    casefold: bool = False,
) -> list[Mismatch]:
    """Like ``detect_mismatches`` but return only the mismatch list."""
    return detect_mismatches(
        wp_users,
        linked_clients,
        unlinked_clients,
        staff_wp_ids,
        casefold=casefold,
    ).mismatches


def filter_ignored(
    mismatches: Sequence[Mismatch], rules: Iterable[IgnoreRule]
) -> list[Mismatch]:
    """Drop every mismatch covered by an ignore rule.

    A rule covers a mismatch only when field name, client value and
    WordPress value are all identical strings.
    """
    ignored = {(r.field_name, r.source_value, r.target_value) for r in rules}
    if not ignored:
        return list(mismatches)
    return [
        m
        for m in mismatches
        if (m.field_name, m.value_from_client, m.value_from_wp) not in ignored
    ]


# ---------------------------------------------------------------------------
# Candidate matching
# ---------------------------------------------------------------------------


def normalize_name(value: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    stripped = _NON_WORD_RE.sub("", stripped).replace("_", "")
    return _SPACE_RE.sub(" ", stripped).strip()


def normalize_phone(value: str) -> str:
    return _NON_DIGIT_RE.sub("", value)


def levenshtein_distance(a: str | None, b: str | None) -> int:
    """Classic edit distance (insert, delete, substitute).

    Keeps a single rolling row, so memory is O(min(len(a), len(b))).
    """
    a = "" if a is None else a
    b = "" if b is None else b

    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    if len(a) < len(b):
        a, b = b, a

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(
                min(
                    cur[j - 1] + 1,
                    prev[j] + 1,
                    prev[j - 1] + (0 if ca == cb else 1),
                )
            )
        prev = cur
    return prev[-1]


def _tail(digits: str, size: int) -> str | None:
    return digits[-size:] if len(digits) >= size else None


def _email_user(value: str) -> str:
    return value.strip().lower().split("@", 1)[0]


def _name_points(ours: str, theirs: str) -> int:
    if not ours:
        return 0
    if ours == theirs:
        return 40
    if theirs and levenshtein_distance(ours, theirs) <= 2:
        return 25
    return 0


def similarity_score(client: ClientSnapshot, user: WordPressUser) -> int:
    """Score how likely *user* is the account of *client* (0-200).

    - first and last name: +40 each when equal, +25 within two edits
    - phone: +60 when the last seven digits agree, else +20 for the last four
    - email: +20 when the part before ``@`` agrees
    """
    score = _name_points(
        normalize_name(client.first_name), normalize_name(user.first_name)
    )
    score += _name_points(
        normalize_name(client.last_name), normalize_name(user.last_name)
    )

    ours = normalize_phone(client.phone)
    theirs = normalize_phone(user.phone)
    if ours and theirs:
        if _tail(ours, 7) is not None and _tail(ours, 7) == _tail(theirs, 7):
            score += 60
        elif _tail(ours, 4) is not None and _tail(ours, 4) == _tail(theirs, 4):
            score += 20

    our_user = _email_user(client.email)
    if our_user and our_user == _email_user(user.email):
        score += 20

    return max(0, min(score, MAX_SCORE))


def find_probable_matches(
    client: ClientSnapshot,
    wp_users: Iterable[WordPressUser],
    exclude_ids: Iterable[int] = frozenset(),
    limit: int = CANDIDATE_LIMIT,
    threshold: int = CANDIDATE_THRESHOLD,
) -> list[LinkCandidate]:
    """Rank WordPress users that probably belong to *client*.

    Args:
        client: The unlinked client.
        wp_users: Users to consider.
        exclude_ids: User ids never suggested (staff, already linked).
        limit: Maximum number of candidates.
        threshold: Minimum score to be suggested.

    Returns:
        Candidates, best first; ties keep the lower user id first.
    """
    excluded = frozenset(exclude_ids)
    candidates = []
    for user in wp_users:
        if user.id in excluded:
            continue
        score = similarity_score(client, user)
        if score < threshold:
            continue
        candidates.append(
            LinkCandidate(
                wp_user_id=user.id,
                score=score,
                display_name=user.display_name,
                email=user.email,
                phone=user.phone,
            )
        )
    candidates.sort(key=lambda c: (-c.score, c.wp_user_id))
    return candidates[:limit]


def match_by_name(
    client: ClientSnapshot, wp_users: Iterable[WordPressUser]
) -> WordPressUser | None:
    """First user whose normalized first and last names both equal the client's."""
    first = normalize_name(client.first_name)
    last = normalize_name(client.last_name)
    if not first or not last:
        return None
    for user in wp_users:
        if (
            normalize_name(user.first_name) == first
            and normalize_name(user.last_name) == last
        ):
            return user
    return None


def match_by_phone(
    client: ClientSnapshot, wp_users: Iterable[WordPressUser]
) -> WordPressUser | None:
    """First user whose phone ends in the client's last seven digits.

    Shorter client numbers are compared in full.
    """
    digits = normalize_phone(client.phone)
    if not digits:
        return None
    size = min(7, len(digits))
    target = digits[-size:]
    for user in wp_users:
        theirs = normalize_phone(user.phone)
        if theirs and theirs[-size:] == target:
            return user
    return None
