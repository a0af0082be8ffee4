# src/goalcore/routing/classifier.py
"""
Message Classifier.

Maps a user message (plus recent turn history) to an agent type and a set
of additive signals:

- agent type: which specialized agent fits the message best
  (gif, joke, trivia, technical, hold, general)
- signals: waiting, entertainment, technical, boredom, frustration,
  positive feedback, resolved, question, terse

Classification is keyword/pattern based and stateless.  An optional
external backend (for example an LLM) can be consulted from
:meth:`MessageClassifier.classify_async` when the heuristic is unsure.

Usage:
    from goalcore.routing.classifier import MessageClassifier

    classifier = MessageClassifier()
    result = classifier.classify("u1", "Can you tell me a joke?")
    result.agent_type        # AgentType.JOKE
    result.has(Signal.ENTERTAINMENT)  # True
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping, Optional, Pattern, Protocol, Sequence, Tuple

from ..config.models import ClassifierConfig, GoalCoreConfig
from ..exceptions import ClassificationError
from ..goals.models import (
    AGENT_GOALS,
    AgentType,
    ClassificationResult,
    EntertainmentPreference,
    GoalType,
    Signal,
    TurnRecord,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Keyword Definitions
# =============================================================================

TECHNICAL_KEYWORDS: Tuple[str, ...] = (
    "code", "coding", "programming", "debug", "debugging", "error", "errors", "bug", "bugs",
    "exception", "stack trace", "crash", "api", "database", "sql", "javascript", "python",
    "react", "node", "css", "html", "function", "variable", "array", "class", "method",
    "framework", "library", "algorithm", "data structure", "server", "frontend", "backend",
    "deployment", "deploy", "git", "github", "repository", "commit", "merge", "branch",
    "typescript", "npm", "yarn", "package", "dependency", "component", "props", "redux",
    "axios", "async", "await", "promise", "callback", "dom", "schema", "docker",
    "kubernetes", "aws", "azure", "gcp", "microservice", "rest", "graphql", "websocket",
    "http", "https", "ssl", "tls", "cors", "authentication", "oauth", "jwt", "cookie",
    "webpack", "babel", "eslint", "jest", "unit test", "integration test", "ci/cd", "devops",
    "linux", "bash", "shell", "terminal", "command line", "regex", "json", "yaml", "compile",
    "install", "login", "password", "website", "app",
)

JOKE_KEYWORDS: Tuple[str, ...] = (
    "dad joke", "dad jokes", "pun", "puns", "joke", "jokes", "funny", "humor", "cheesy",
    "groan", "laugh", "make me laugh", "tell me a joke", "corny", "silly", "witty",
    "punchline", "one-liner", "wordplay", "play on words",
)

TRIVIA_KEYWORDS: Tuple[str, ...] = (
    "trivia", "fact", "facts", "fun fact", "fun facts", "random fact", "did you know",
    "interesting fact", "history", "science", "nature", "space", "animals", "geography",
    "fascinating", "knowledge", "learn something", "discovery", "invention", "world record",
    "ancient", "historical", "scientific", "curiosity", "tell me something", "educate me",
)

GIF_KEYWORDS: Tuple[str, ...] = (
    "gif", "gifs", "animated", "animation", "meme", "memes", "funny image", "reaction gif",
    "giphy", "tenor", "cat gif", "dog gif", "cute gif", "dance gif", "party gif",
)

HOLD_KEYWORDS: Tuple[str, ...] = (
    "waiting", "wait", "on hold", "hold on", "queue", "in line", "support agent",
    "human agent", "representative", "real person", "talk to someone", "how long",
    "still waiting", "ticket",
)

# (agent, keywords, base confidence, step per match, confidence cap).
# Order breaks ties between equally-scored agents.
AGENT_KEYWORDS: Tuple[Tuple[AgentType, Tuple[str, ...], float, float, float], ...] = (
    (AgentType.GIF, GIF_KEYWORDS, 0.7, 0.15, 0.95),
    (AgentType.JOKE, JOKE_KEYWORDS, 0.6, 0.15, 0.9),
    (AgentType.TRIVIA, TRIVIA_KEYWORDS, 0.55, 0.1, 0.85),
    (AgentType.TECHNICAL, TECHNICAL_KEYWORDS, 0.5, 0.1, 0.8),
    (AgentType.HOLD, HOLD_KEYWORDS, 0.6, 0.1, 0.85),
)

ENTERTAINMENT_PATTERNS: List[str] = [
    r"\b(play|game|fun|joke|story|fact|trivia|entertain|entertainment)\b",
    r"\b(watch something|make me laugh|cheer me up|amuse me)\b",
]

WAITING_PATTERNS: List[str] = [
    r"\b(waiting|wait|on hold|hold on|queue|in line|how long)\b",
    r"\b(still no (one|answer|reply|response))\b",
]

BOREDOM_PATTERNS: List[str] = [
    r"\b(bored|boring|nothing to do|tired of this)\b",
    r"\b(not fun|dull|uninteresting)\b",
]

FRUSTRATION_PATTERNS: List[str] = [
    r"\b(frustrat\w*|annoy\w*|useless|ridiculous|unhelpful|not helpful|fed up)\b",
    r"\b(this sucks|waste of time|angry|terrible|awful|give up|stop it)\b",
    r"[!?]{3,}",
]

POSITIVE_PATTERNS: List[str] = [
    r"\b(thanks|thank you|thx|great|awesome|nice|perfect|love it|haha|lol)\b",
    r"(?<!not )(?<!un)\bhelpful\b",
]

RESOLVED_PATTERNS: List[str] = [
    r"\b(solved|fixed|resolved|all set|works now|it works|that worked|that did it)\b",
]

CHAT_PATTERN = r"\b(chat|talk)\b"

FOLLOW_UP_PATTERN = (
    r"^(another( one)?|one more|more|again|next( one)?|tell me another|do it again)"
    r"[\s!.,?]*(please)?[\s!.,?]*$"
)

SIGNAL_PATTERNS: Tuple[Tuple[Signal, List[str]], ...] = (
    (Signal.WAITING, WAITING_PATTERNS),
    (Signal.ENTERTAINMENT, ENTERTAINMENT_PATTERNS),
    (Signal.BOREDOM, BOREDOM_PATTERNS),
    (Signal.FRUSTRATION, FRUSTRATION_PATTERNS),
    (Signal.POSITIVE_FEEDBACK, POSITIVE_PATTERNS),
    (Signal.RESOLVED, RESOLVED_PATTERNS),
)

_CATEGORY_BY_AGENT = {
    AgentType.GIF: EntertainmentPreference.GIFS,
    AgentType.JOKE: EntertainmentPreference.JOKES,
    AgentType.TRIVIA: EntertainmentPreference.TRIVIA,
}

_TECHNICAL_CONTEXT_CHARS = 200


def _keyword_pattern(keyword: str) -> Pattern[str]:
    return re.compile(r"(?<![\w])" + re.escape(keyword) + r"(?![\w])", re.IGNORECASE)


class ClassificationBackend(Protocol):
    """External classifier consulted for low-confidence messages.

    Returns a mapping with ``agent_type``, ``confidence`` and optionally
    ``reasoning``.
    """

    async def classify(
        self, message: str, recent_history: Sequence[TurnRecord]
    ) -> Mapping[str, Any]:
        ...


# =============================================================================
# Classifier Implementation
# =============================================================================


class MessageClassifier:
    """
    Classify messages by agent type and extract goal signals.

    Args:
        config: Thresholds for message shape and backend fallback.
        backend: Optional external classifier for uncertain messages.
    """

    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        backend: Optional[ClassificationBackend] = None,
    ) -> None:
        self.config = config or ClassifierConfig()
        self.backend = backend

        self._agent_patterns = [
            (agent, [_keyword_pattern(k) for k in keywords], base, step, cap)
            for agent, keywords, base, step, cap in AGENT_KEYWORDS
        ]
        self._signal_patterns = [
            (signal, [re.compile(p, re.IGNORECASE) for p in patterns])
            for signal, patterns in SIGNAL_PATTERNS
        ]
        self._chat_pattern = re.compile(CHAT_PATTERN, re.IGNORECASE)
        self._follow_up_pattern = re.compile(FOLLOW_UP_PATTERN, re.IGNORECASE)

    @classmethod
    def from_config(
        cls, config: GoalCoreConfig, backend: Optional[ClassificationBackend] = None
    ) -> "MessageClassifier":
        return cls(config.classifier, backend=backend)

    def classify(
        self,
        user_id: str,
        message_text: Optional[str],
        recent_history: Sequence[TurnRecord] = (),
    ) -> ClassificationResult:
        """
        Classify a message (sync, heuristic only).

        Never raises: empty or unexpected input yields a low-confidence
        "general" result.
        """
        text = message_text.strip() if isinstance(message_text, str) else ""
        if not text:
            return ClassificationResult(
                agent_type=AgentType.GENERAL,
                confidence=0.3,
                reasoning="Empty message",
                method="empty_input",
            )

        try:
            result = self._classify_heuristic(text, recent_history)
        except Exception:
            logger.exception("Heuristic classification failed for user '%s'", user_id)
            return ClassificationResult(
                agent_type=AgentType.GENERAL,
                confidence=0.3,
                reasoning="Classification failed",
                method="fallback",
            )

        logger.debug(
            "User '%s' classified as %s (conf=%.2f, signals=%s)",
            user_id,
            result.agent_type,
            result.confidence,
            [s.value for s in result.extracted_signals],
        )
        return result

    async def classify_async(
        self,
        user_id: str,
        message_text: Optional[str],
        recent_history: Sequence[TurnRecord] = (),
    ) -> ClassificationResult:
        """
        Classify with the external backend as a fallback for uncertain messages.

        Signals always come from the heuristic; the backend only refines the
        agent type and confidence.  Backend failures keep the heuristic result.
        """
        result = self.classify(user_id, message_text, recent_history)

        if (
            not self.config.llm_fallback_enabled
            or self.backend is None
            or result.confidence >= self.config.llm_confidence_threshold
            or result.method == "empty_input"
        ):
            return result

        try:
            raw = await self.backend.classify(str(message_text), list(recent_history))
            agent_type, confidence, reasoning = self._parse_backend(raw)
        except Exception as e:
            logger.warning(
                "Backend classification failed for user '%s', using heuristic: %s", user_id, e
            )
            return ClassificationResult(
                agent_type=result.agent_type,
                confidence=result.confidence,
                extracted_signals=result.extracted_signals,
                entertainment_category=result.entertainment_category,
                technical_topic=result.technical_topic,
                reasoning=result.reasoning,
                method="heuristic_backend_failed",
            )

        known = AgentType.coerce(agent_type)
        category = result.entertainment_category
        if category is None and known in _CATEGORY_BY_AGENT:
            category = _CATEGORY_BY_AGENT[known]
        return ClassificationResult(
            agent_type=known if known is not None else agent_type,
            confidence=confidence,
            extracted_signals=result.extracted_signals,
            entertainment_category=category,
            technical_topic=result.technical_topic,
            reasoning=reasoning,
            method="backend",
        )

    # ------------------------------------------------------------------
    # Heuristics
    # ------------------------------------------------------------------

    def _classify_heuristic(
        self, text: str, recent_history: Sequence[TurnRecord]
    ) -> ClassificationResult:
        signals: dict[Signal, float] = {}

        # Keyword scores per agent
        scores: List[Tuple[AgentType, int, float, List[str]]] = []
        for agent, patterns, base, step, cap in self._agent_patterns:
            matched = [p.pattern for p in patterns if p.search(text)]
            if matched:
                scores.append((agent, len(matched), min(cap, base + len(matched) * step), matched))

        for agent, count, _, _ in scores:
            if agent in (AgentType.GIF, AgentType.JOKE, AgentType.TRIVIA):
                signals[Signal.ENTERTAINMENT] = max(
                    signals.get(Signal.ENTERTAINMENT, 0.0), min(1.0, 0.5 + 0.25 * count)
                )
            elif agent is AgentType.TECHNICAL:
                signals[Signal.TECHNICAL] = min(1.0, 0.4 + 0.2 * count)

        for signal, patterns in self._signal_patterns:
            hits = sum(1 for p in patterns if p.search(text))
            if hits:
                signals[signal] = max(signals.get(signal, 0.0), min(1.0, 0.5 + 0.25 * hits))

        if "?" in text or len(text) >= self.config.engaged_message_chars:
            signals[Signal.QUESTION] = 1.0
        if len(text) < self.config.terse_message_chars:
            signals[Signal.TERSE] = 1.0

        technical_topic = text[:_TECHNICAL_CONTEXT_CHARS] if Signal.TECHNICAL in signals else None
        ordered = {s: signals[s] for s in Signal if s in signals}

        if scores:
            # Highest keyword count wins; AGENT_KEYWORDS order breaks ties.
            agent, count, confidence, _ = max(scores, key=lambda s: s[1])
            category = _CATEGORY_BY_AGENT.get(agent)
            wants_chat = Signal.ENTERTAINMENT in ordered and self._chat_pattern.search(text)
            if category is None and wants_chat:
                category = EntertainmentPreference.GENERAL_CHAT
            return ClassificationResult(
                agent_type=agent,
                confidence=confidence,
                extracted_signals=ordered,
                entertainment_category=category,
                technical_topic=technical_topic,
                reasoning=f"Detected {count} {agent.value} keyword(s) in the message",
                method="keywords",
            )

        follow_up = self._follow_up(text, recent_history)
        if follow_up is not None:
            if AGENT_GOALS[follow_up] is GoalType.ENTERTAINMENT:
                ordered = {Signal.ENTERTAINMENT: 0.75, **ordered}
                ordered = {s: ordered[s] for s in Signal if s in ordered}
            return ClassificationResult(
                agent_type=follow_up,
                confidence=0.75,
                extracted_signals=ordered,
                entertainment_category=_CATEGORY_BY_AGENT.get(follow_up),
                reasoning=f"Follow-up to previous {follow_up.value} turn",
                method="follow_up",
            )

        category = None
        if self._chat_pattern.search(text) and (
            Signal.ENTERTAINMENT in ordered or Signal.BOREDOM in ordered
        ):
            category = EntertainmentPreference.GENERAL_CHAT
        return ClassificationResult(
            agent_type=AgentType.GENERAL,
            confidence=0.5,
            extracted_signals=ordered,
            entertainment_category=category,
            reasoning="No specific keywords detected, classifying as general",
            method="default",
        )

    def _follow_up(
        self, text: str, recent_history: Sequence[TurnRecord]
    ) -> Optional[AgentType]:
        if not recent_history or not self._follow_up_pattern.match(text):
            return None
        return AgentType.coerce(recent_history[-1].agent_type)

    @staticmethod
    def _parse_backend(raw: Mapping[str, Any]) -> Tuple[Any, float, str]:
        if not isinstance(raw, Mapping) or "agent_type" not in raw:
            raise ClassificationError(f"Backend result missing agent_type: {raw!r}")
        try:
            confidence = float(raw.get("confidence", 0.5))
        except (TypeError, ValueError) as e:
            raise ClassificationError(f"Backend confidence is not a number: {e}") from e
        confidence = max(0.0, min(1.0, confidence))
        return raw["agent_type"], confidence, str(raw.get("reasoning", ""))
