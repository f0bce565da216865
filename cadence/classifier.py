"""
Complexity Estimator for Cadence.

Scores free-text task descriptions to decide their complexity tier,
task type, and whether the work should start from a written spec.
"""

import re
from typing import Optional

from cadence.schemas import ComplexityLevel, TaskAnalysis, TaskType


MAX_FEATURES = 10

EFFORT_BY_COMPLEXITY = {
    ComplexityLevel.SIMPLE: "<1 day",
    ComplexityLevel.MODERATE: "few days",
    ComplexityLevel.COMPLEX: "1+ weeks",
}

ARCHITECTURE_PHRASES = (
    "architecture",
    "schema design",
    "database schema",
    "api design",
    "system design",
    "distributed system",
)

SCOPE_KEYWORDS = (
    "integrate", "refactor", "redesign", "migrate", "convert",
    "dashboard", "admin", "management", "authentication", "authorization",
)

# Scope keywords can lift a task to moderate but never to complex on their own.
MAX_SCOPE_POINTS = 2

# Components counted only when a quantity above this is given ("8 pages").
QUANTITY_THRESHOLD = 3

TASK_TYPE_KEYWORDS = (
    (TaskType.BUG_FIX, ("bug", "fix", "error", "broken", "crash", "issue")),
    (TaskType.REFACTOR, ("refactor", "improve", "optimize", "optimise", "clean up", "restructure")),
    (TaskType.DOCUMENTATION, ("doc", "readme", "comment", "guide")),
)


class ComplexityEstimator:
    """
    Heuristic task classifier.

    Stateless: every method is a pure function of its input text and
    never raises for str or None input.

    Scoring:
    - +1 per enumerated feature ("with X, Y and Z", numbered and bullet lists)
    - +1 per scope keyword, at most +2
    - +N for quantified components above the threshold ("8 pages")
    - Architecture signals force complex
    - App/enterprise scale with three or more features forces complex
    """

    def __init__(self):
        self._with_pattern = re.compile(r'\bwith\s+([^.;:\n]+)')
        self._with_split = re.compile(r',|\band\b')
        self._numbered_pattern = re.compile(r'^\s*\d+\.\s*(.+?)\s*$', re.MULTILINE)
        self._bullet_pattern = re.compile(r'^\s*[-*]\s+(.+?)\s*$', re.MULTILINE)
        self._quantity_pattern = re.compile(
            r'\b(\d+)\s*(?:pages?|screens?|views?|components?|features?|modules?)\b'
        )
        self._scale_pattern = re.compile(r'\b(?:apps?|applications?|enterprise|platforms?)\b')
        self._microservice_pattern = re.compile(r'\bmicro-?services?\b')
        self._platform_pattern = re.compile(r'\bplatforms?\b')
        self._api_pattern = re.compile(r'\bapis?\b')
        self._database_pattern = re.compile(r'\bdatabases?\b')

    def estimate_complexity(self, text: Optional[str]) -> ComplexityLevel:
        """
        Estimate the complexity tier of a task description.

        Args:
            text: Free-text task description. None and empty are allowed.

        Returns:
            Always one of simple, moderate, complex.
        """
        return self._evaluate(text)[0]

    def should_use_spec_first(self, text: Optional[str]) -> bool:
        """Spec-first is recommended exactly when the task is complex."""
        return self.estimate_complexity(text) == ComplexityLevel.COMPLEX

    def analyze(self, text: Optional[str]) -> TaskAnalysis:
        """
        Full planning report for a task description.

        Returns:
            TaskAnalysis with complexity, task type, detected features,
            the spec-first recommendation, and a rough effort estimate.
        """
        complexity, score, features = self._evaluate(text)
        return TaskAnalysis(
            complexity=complexity,
            task_type=self._detect_task_type(self._normalize(text)),
            features=features,
            spec_first_recommended=complexity == ComplexityLevel.COMPLEX,
            estimated_effort=EFFORT_BY_COMPLEXITY[complexity],
            score=score,
        )

    def extract_features(self, text: Optional[str]) -> list[str]:
        """
        Pull enumerated features out of a description.

        Looks at "with X, Y and Z" clauses, numbered lists, and bullet
        lists. Results are lower-cased and de-duplicated in order.
        """
        normalized = self._normalize(text)
        if not normalized:
            return []

        found: list[str] = []
        for match in self._with_pattern.finditer(normalized):
            found.extend(self._with_split.split(match.group(1)))
        found.extend(self._numbered_pattern.findall(normalized))
        found.extend(self._bullet_pattern.findall(normalized))

        features: list[str] = []
        for item in found:
            item = item.strip().strip("-*").strip()
            if len(item) > 2 and item not in features:
                features.append(item)
        return features[:MAX_FEATURES]

    def get_recommendation(self, analysis: TaskAnalysis) -> str:
        """Short workflow recommendation for an analysis."""
        if analysis.spec_first_recommended:
            return (
                f"This appears to be complex work (estimated {analysis.estimated_effort}).\n"
                "\n"
                "Recommended approach:\n"
                "1. Write a spec document before opening issues\n"
                "2. Review architecture decisions with the team\n"
                "3. Break the spec into smaller trackable issues\n"
                "4. Implement incrementally"
            )
        return (
            f"This appears to be {analysis.complexity.value} work "
            f"(estimated {analysis.estimated_effort}).\n"
            "\n"
            "You can proceed directly with implementation."
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _normalize(self, text: Optional[str]) -> str:
        if not isinstance(text, str):
            return ""
        return text.lower()

    def _evaluate(self, text: Optional[str]) -> tuple[ComplexityLevel, int, list[str]]:
        """Return (complexity, score, features) for a description."""
        normalized = self._normalize(text)
        if not normalized.strip():
            return ComplexityLevel.SIMPLE, 0, []

        features = self.extract_features(normalized)
        score = len(features)

        scope_hits = sum(1 for keyword in SCOPE_KEYWORDS if keyword in normalized)
        score += min(scope_hits, MAX_SCOPE_POINTS)

        quantified = 0
        for match in self._quantity_pattern.finditer(normalized):
            quantity = int(match.group(1))
            if quantity > QUANTITY_THRESHOLD:
                quantified += quantity
        score += quantified

        if self._has_architecture_signal(normalized):
            return ComplexityLevel.COMPLEX, score, features

        if self._scale_pattern.search(normalized) and len(features) + quantified >= 3:
            return ComplexityLevel.COMPLEX, score, features

        if score >= 5:
            return ComplexityLevel.COMPLEX, score, features
        if score >= 2:
            return ComplexityLevel.MODERATE, score, features
        return ComplexityLevel.SIMPLE, score, features

    def _has_architecture_signal(self, text: str) -> bool:
        if any(phrase in text for phrase in ARCHITECTURE_PHRASES):
            return True
        if self._platform_pattern.search(text) or self._microservice_pattern.search(text):
            return True
        return bool(self._api_pattern.search(text) and self._database_pattern.search(text))

    def _detect_task_type(self, text: str) -> TaskType:
        for task_type, keywords in TASK_TYPE_KEYWORDS:
            if any(keyword in text for keyword in keywords):
                return task_type
        return TaskType.FEATURE
