"""Heuristic spam detection and auto-moderation."""

import logging
import re
from collections.abc import Iterable, Sequence

from redis.exceptions import RedisError

from app.config import Settings, settings as default_settings
from app.errors import InfraErrorPolicy, InternalServiceError
from app.redis_client import RedisKeys
from app.schemas.spam import (
    MessageMetadata,
    Severity,
    SpamAction,
    SpamCheckResult,
    SpamViolation,
    ViolationType,
)
from app.services.mutes import MuteRegistry

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://\S+")
_LETTER = re.compile(r"[A-Za-z]")
_UPPERCASE = re.compile(r"[A-Z]")

# Messages shorter than this (in letters) are never judged for caps.
MIN_LETTERS_FOR_CAPS = 3

INFRA_ERRORS = (RedisError, ConnectionError, TimeoutError)


def caps_percentage(content: str) -> float | None:
    """Uppercase share of ASCII letters, or None when there are too few letters."""
    letters = len(_LETTER.findall(content))
    if letters < MIN_LETTERS_FOR_CAPS:
        return None
    return len(_UPPERCASE.findall(content)) / letters * 100


def is_excessive_caps(content: str, max_percentage: float = 50) -> bool:
    percentage = caps_percentage(content)
    return percentage is not None and percentage > max_percentage


def count_urls(content: str) -> int:
    return len(URL_PATTERN.findall(content))


def find_repeated_runs(content: str, threshold: int = 7) -> list[str]:
    """Runs of ``threshold`` or more identical characters."""
    pattern = re.compile(rf"(.)\1{{{threshold - 1},}}", re.DOTALL)
    return [match.group(0) for match in pattern.finditer(content)]


def has_repeated_characters(content: str, threshold: int = 7) -> bool:
    return bool(find_repeated_runs(content, threshold))


def determine_action(violations: Sequence[SpamViolation]) -> SpamAction:
    """Escalate from the collected violations to a single action."""
    if not violations:
        return SpamAction.ALLOW

    has_high = any(v.severity is Severity.HIGH for v in violations)
    medium_count = sum(1 for v in violations if v.severity is Severity.MEDIUM)
    total = len(violations)

    if has_high or medium_count >= 2 or total >= 3:
        return SpamAction.MUTE
    if medium_count >= 1 or total >= 2:
        return SpamAction.BLOCK
    return SpamAction.WARN


class ProfanityFilter:
    """Mutable in-memory word list, matched on whole words, case-insensitively."""

    def __init__(self, words: Iterable[str] = ()):
        self._words: list[str] = []
        self._patterns: dict[str, re.Pattern[str]] = {}
        for word in words:
            self.add_word(word)

    @property
    def words(self) -> list[str]:
        return list(self._words)

    def add_word(self, word: str) -> bool:
        word = word.strip().lower()
        if not word or word in self._patterns:
            return False
        self._words.append(word)
        self._patterns[word] = re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)
        return True

    def remove_word(self, word: str) -> bool:
        word = word.strip().lower()
        if word not in self._patterns:
            return False
        self._words.remove(word)
        del self._patterns[word]
        return True

    def contains_profanity(self, content: str) -> bool:
        return any(pattern.search(content) for pattern in self._patterns.values())


class SpamClassifier:
    """
    Classify a message and recommend ``allow``, ``warn``, ``block`` or ``mute``.

    Every heuristic runs so the full violation list is reported. A ``mute``
    verdict also writes a MuteRecord through the MuteRegistry.
    """

    def __init__(
        self,
        redis,
        mutes: MuteRegistry,
        profanity: ProfanityFilter,
        settings: Settings | None = None,
        *,
        on_infra_error: InfraErrorPolicy | str | None = None,
    ):
        self.redis = redis
        self.mutes = mutes
        self.profanity = profanity
        self.settings = settings or default_settings
        self.on_infra_error = InfraErrorPolicy(
            on_infra_error or self.settings.spam_on_infra_error
        )

    async def check_spam(self, metadata: MessageMetadata) -> SpamCheckResult:
        try:
            return await self._classify(metadata)
        except INFRA_ERRORS as exc:
            if self.on_infra_error is InfraErrorPolicy.REJECT:
                logger.error("spam check failed user=%s: %s", metadata.user_id, exc)
                raise InternalServiceError("Spam detection is temporarily unavailable") from exc
            logger.warning("spam check failed open user=%s: %s", metadata.user_id, exc)
            return SpamCheckResult(is_spam=False, violations=[], action=SpamAction.ALLOW)

    async def _classify(self, metadata: MessageMetadata) -> SpamCheckResult:
        if await self.mutes.is_user_muted(metadata.user_id):
            return SpamCheckResult(
                is_spam=True,
                violations=[
                    SpamViolation(
                        type=ViolationType.PROFANITY,
                        severity=Severity.HIGH,
                        details="User is currently muted",
                    )
                ],
                action=SpamAction.MUTE,
                message="You are currently muted",
            )

        if not self.settings.spam_enabled:
            return SpamCheckResult(is_spam=False, violations=[], action=SpamAction.ALLOW)

        violations: list[SpamViolation] = []
        duplicate = await self._check_duplicate(metadata)
        if duplicate:
            violations.append(duplicate)
        violations.extend(self._content_violations(metadata.content))

        action = determine_action(violations)
        if action is SpamAction.MUTE:
            try:
                await self.mutes.mute_user(metadata.user_id, violations)
            except INFRA_ERRORS as exc:
                # The verdict still stands for this message.
                logger.warning("could not persist mute user=%s: %s", metadata.user_id, exc)

        return SpamCheckResult(
            is_spam=bool(violations),
            violations=violations,
            action=action,
            message=self._action_message(action),
        )

    async def _check_duplicate(self, metadata: MessageMetadata) -> SpamViolation | None:
        key = RedisKeys.spam_duplicate(metadata.user_id)
        last_message = await self.redis.get(key)
        # Always remember the latest content, so repeats are caught from the second send.
        await self.redis.set(key, metadata.content, ex=self.settings.spam_duplicate_window)

        if last_message == metadata.content:
            minutes = max(round(self.settings.spam_duplicate_window / 60), 1)
            return SpamViolation(
                type=ViolationType.DUPLICATE_MESSAGE,
                severity=Severity.MEDIUM,
                details=f"Same message sent within {minutes} minutes",
            )
        return None

    def _content_violations(self, content: str) -> list[SpamViolation]:
        settings = self.settings
        violations: list[SpamViolation] = []

        percentage = caps_percentage(content)
        if percentage is not None and percentage > settings.spam_max_caps_percentage:
            violations.append(
                SpamViolation(
                    type=ViolationType.EXCESSIVE_CAPS,
                    severity=Severity.LOW,
                    details=(
                        f"{round(percentage)}% uppercase "
                        f"(limit: {settings.spam_max_caps_percentage}%)"
                    ),
                )
            )

        urls = count_urls(content)
        if urls > settings.spam_max_urls:
            violations.append(
                SpamViolation(
                    type=ViolationType.URL_SPAM,
                    severity=Severity.HIGH,
                    details=f"{urls} URLs found (limit: {settings.spam_max_urls})",
                )
            )

        runs = find_repeated_runs(content, settings.spam_repeated_char_threshold)
        if runs:
            violations.append(
                SpamViolation(
                    type=ViolationType.REPEATED_CHARACTERS,
                    severity=Severity.LOW,
                    details=f"Repeated character patterns found: {', '.join(runs)}",
                )
            )

        if self.profanity.contains_profanity(content):
            violations.append(
                SpamViolation(
                    type=ViolationType.PROFANITY,
                    severity=Severity.MEDIUM,
                    details="Profanity detected",
                )
            )

        return violations

    def _action_message(self, action: SpamAction) -> str | None:
        if action is SpamAction.WARN:
            return "Please avoid spam-like behavior"
        if action is SpamAction.BLOCK:
            return "Message blocked due to spam detection"
        if action is SpamAction.MUTE:
            hours = -(-self.settings.spam_mute_duration // 3600)
            return f"You have been muted for {hours} hours due to spam violations"
        return None
