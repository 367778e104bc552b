"""
Heuristic translation quality checks.

The checker compares an original text with its translation and reports
issues without ever reading the meaning of either: emptiness, unchanged
text, implausible length, lost list/line structure, and dropped or altered
placeholders, URLs and email addresses.
"""
import re
from typing import List

from pdf_translator.config import (
    MIN_LENGTH_RATIO,
    MAX_LENGTH_RATIO,
    LENGTH_DEVIATION_THRESHOLD,
)
from pdf_translator.core.models import IssueType, QualityIssue, QualityResult, Severity

# Untranslated-looking output is only flagged above this length
MIN_UNTRANSLATED_LENGTH = 10

SEVERITY_WEIGHTS = {
    Severity.ERROR: 10,
    Severity.WARNING: 5,
    Severity.INFO: 1,
}

BULLET_PATTERN = re.compile(r'^\s*[•·▪▫◦‣⁃-]\s', re.MULTILINE)
NUMBERED_PATTERN = re.compile(r'^\s*\d+[.)]\s', re.MULTILINE)

PLACEHOLDER_PATTERNS = [
    re.compile(r'\{[^}]+\}'),        # {name}
    re.compile(r'\[[^\]]+\]'),       # [name]
    re.compile(r'%[sdifg]'),         # %s, %d
    re.compile(r'\$\{[^}]+\}'),      # ${name}
    re.compile(r'\{\{[^}]+\}\}'),    # {{name}}
    re.compile(r'#\{[^}]+\}'),       # #{name}
]

URL_PATTERN = re.compile(r'https?://\S+')
EMAIL_PATTERN = re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}')


class QualityChecker:
    """Scores a translation against its original."""

    def __init__(
        self,
        min_length_ratio: float = MIN_LENGTH_RATIO,
        max_length_ratio: float = MAX_LENGTH_RATIO,
        length_deviation_threshold: float = LENGTH_DEVIATION_THRESHOLD
    ):
        """
        Args:
            min_length_ratio: Smallest acceptable len(translated) / len(original)
            max_length_ratio: Largest acceptable len(translated) / len(original)
            length_deviation_threshold: Ratio deviation above which a length
                mismatch is a warning rather than info
        """
        self.min_length_ratio = min_length_ratio
        self.max_length_ratio = max_length_ratio
        self.length_deviation_threshold = length_deviation_threshold

    def check(
        self,
        original: str,
        translated: str,
        fragment_id: str,
        source_lang: str = "",
        target_lang: str = ""
    ) -> QualityResult:
        """
        Run every check on one original/translation pair.

        The language codes are accepted for context and are not used by the
        current heuristics.

        Returns:
            QualityResult; passed is False iff at least one error-severity issue
        """
        issues: List[QualityIssue] = []

        def add(issue_type: IssueType, severity: Severity, description: str):
            issues.append(QualityIssue(
                type=issue_type,
                severity=severity,
                fragment_id=fragment_id,
                description=description,
                original=original,
                translated=translated,
            ))

        if not translated.strip():
            add(IssueType.UNTRANSLATED, Severity.ERROR, "Translation is empty")

        if translated == original and len(original) > MIN_UNTRANSLATED_LENGTH:
            add(IssueType.UNTRANSLATED, Severity.WARNING, "Text appears to be untranslated")

        if original:
            ratio = len(translated) / len(original)
            if ratio < self.min_length_ratio or ratio > self.max_length_ratio:
                severity = (
                    Severity.WARNING
                    if abs(1 - ratio) > self.length_deviation_threshold
                    else Severity.INFO
                )
                add(
                    IssueType.LENGTH_MISMATCH, severity,
                    f"Translation length ratio is {ratio:.2f} (expected between "
                    f"{self.min_length_ratio} and {self.max_length_ratio})"
                )

        self._check_formatting(original, translated, add)
        self._check_placeholders(original, translated, add)

        return QualityResult(
            passed=not any(i.severity == Severity.ERROR for i in issues),
            issues=issues,
            score=self.calculate_score(issues),
        )

    @staticmethod
    def calculate_score(issues: List[QualityIssue]) -> int:
        penalty = sum(SEVERITY_WEIGHTS[issue.severity] for issue in issues)
        return max(0, 100 - penalty)

    def _check_formatting(self, original: str, translated: str, add) -> None:
        original_breaks = original.count('\n')
        translated_breaks = translated.count('\n')
        if original_breaks != translated_breaks:
            add(
                IssueType.FORMAT_MISMATCH, Severity.WARNING,
                f"Line break count mismatch: {original_breaks} -> {translated_breaks}"
            )

        original_bullets = len(BULLET_PATTERN.findall(original))
        translated_bullets = len(BULLET_PATTERN.findall(translated))
        if original_bullets != translated_bullets:
            add(
                IssueType.FORMAT_MISMATCH, Severity.WARNING,
                f"Bullet point count mismatch: {original_bullets} -> {translated_bullets}"
            )

        original_numbers = len(NUMBERED_PATTERN.findall(original))
        translated_numbers = len(NUMBERED_PATTERN.findall(translated))
        if original_numbers != translated_numbers:
            add(
                IssueType.FORMAT_MISMATCH, Severity.WARNING,
                f"Numbered list item count mismatch: {original_numbers} -> {translated_numbers}"
            )

    def _check_placeholders(self, original: str, translated: str, add) -> None:
        for pattern in PLACEHOLDER_PATTERNS:
            original_matches = pattern.findall(original)
            translated_matches = pattern.findall(translated)

            if len(original_matches) != len(translated_matches):
                add(
                    IssueType.PLACEHOLDER_MISMATCH, Severity.ERROR,
                    f"Placeholder count mismatch for pattern {pattern.pattern}: "
                    f"{len(original_matches)} -> {len(translated_matches)}"
                )
            elif original_matches and set(original_matches) != set(translated_matches):
                add(
                    IssueType.PLACEHOLDER_MISMATCH, Severity.ERROR,
                    f"Placeholder content mismatch: {', '.join(sorted(set(original_matches)))} "
                    f"-> {', '.join(sorted(set(translated_matches)))}"
                )

        # URLs and emails must survive untouched, in any order
        if sorted(URL_PATTERN.findall(original)) != sorted(URL_PATTERN.findall(translated)):
            add(IssueType.PLACEHOLDER_MISMATCH, Severity.ERROR, "URL mismatch in translation")

        if sorted(EMAIL_PATTERN.findall(original)) != sorted(EMAIL_PATTERN.findall(translated)):
            add(
                IssueType.PLACEHOLDER_MISMATCH, Severity.ERROR,
                "Email address mismatch in translation"
            )
