import re
from typing import Protocol

from reviewpulse.errors import InvalidInputError
from reviewpulse.models.sentiment import ReviewTag, SentimentResult


class SentimentAnalyzer(Protocol):
    def analyze(self, text: str) -> SentimentResult: ...

    def derive_tags(self, result: SentimentResult) -> list[ReviewTag]: ...


class LexiconSentimentAnalyzer:
    """Keyword-lexicon sentiment baseline.

    The score is ``(p - n) / (p + n)`` over the number of distinct positive and
    negative lexicon terms present in the text. Output depends only on the text
    and the constructor arguments, so repeated calls yield identical results.

    Match policies:

    - ``word``: a term must start at a word boundary. Inflections still match
      ("recommended"), embedded words do not ("unfriendly").
    - ``substring``: plain containment.
    """

    MODEL_VERSION = "lexicon-1.0"
    SUPPORTED_MATCH_POLICIES = {"word", "substring"}

    POSITIVE_WORDS = (
        "amazing", "excellent", "great", "good", "wonderful", "fantastic", "outstanding",
        "perfect", "love", "enjoy", "delicious", "friendly", "helpful", "professional",
        "quick", "fast", "clean", "beautiful", "comfortable", "recommend", "best",
    )
    NEGATIVE_WORDS = (
        "terrible", "awful", "horrible", "bad", "poor", "disappointing", "worst",
        "hate", "disgusting", "rude", "slow", "dirty", "expensive", "overpriced",
        "cold", "burnt", "wrong", "broken", "uncomfortable", "avoid", "never",
    )
    TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
        "service": ("service", "staff", "employee", "server", "waiter", "waitress", "cashier"),
        "food": ("food", "meal", "dish", "cuisine", "cooking", "chef", "kitchen"),
        "coffee": ("coffee", "espresso", "latte", "cappuccino", "brew", "bean"),
        "atmosphere": ("atmosphere", "ambiance", "environment", "decor", "music", "lighting"),
        "price": ("price", "cost", "expensive", "cheap", "affordable", "value", "worth"),
        "location": ("location", "place", "area", "neighborhood", "parking", "access"),
        "cleanliness": ("clean", "dirty", "hygiene", "sanitary", "messy", "tidy"),
        "speed": ("fast", "slow", "quick", "wait", "time", "efficient", "delayed"),
    }
    # topic -> (category, positive tag name, negative tag name)
    TOPIC_TAGS: dict[str, tuple[str, str, str]] = {
        "service": ("staff", "friendly staff", "poor service"),
        "staff": ("staff", "friendly staff", "poor service"),
        "food": ("product", "quality food", "poor food"),
        "coffee": ("product", "quality food", "poor food"),
        "atmosphere": ("ambiance", "good atmosphere", "poor atmosphere"),
        "price": ("value", "good value", "overpriced"),
        "speed": ("service", "fast service", "slow service"),
    }

    _SENTENCE_SPLIT_REGEX = re.compile(r"[.!?]+")
    _MIN_PHRASE_WORDS = 3
    _MAX_PHRASE_WORDS = 8
    _MAX_KEY_PHRASES = 5

    def __init__(
        self,
        *,
        positive_threshold: float = 0.2,
        negative_threshold: float = -0.2,
        match_policy: str = "word",
    ) -> None:
        policy = str(match_policy or "").strip().lower()
        if policy not in self.SUPPORTED_MATCH_POLICIES:
            supported = ", ".join(sorted(self.SUPPORTED_MATCH_POLICIES))
            raise ValueError(f"Unknown match policy '{match_policy}'. Supported: {supported}.")
        if negative_threshold > positive_threshold:
            raise ValueError("negative_threshold must not be greater than positive_threshold.")

        self.positive_threshold = positive_threshold
        self.negative_threshold = negative_threshold
        self.match_policy = policy

        terms = {*self.POSITIVE_WORDS, *self.NEGATIVE_WORDS}
        for keywords in self.TOPIC_KEYWORDS.values():
            terms.update(keywords)
        self._patterns = {term: re.compile(rf"\b{re.escape(term)}") for term in terms}

    def analyze(self, text: str) -> SentimentResult:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Review text is empty.")

        text_lower = text.lower()
        positive_count = sum(1 for word in self.POSITIVE_WORDS if self._contains(text_lower, word))
        negative_count = sum(1 for word in self.NEGATIVE_WORDS if self._contains(text_lower, word))

        total_hits = positive_count + negative_count
        score = 0.0
        if total_hits > 0:
            score = (positive_count - negative_count) / total_hits
            score = max(-1.0, min(1.0, score))

        return SentimentResult(
            label=self.label_for_score(score),
            score=score,
            confidence=min(0.95, 0.5 + abs(score) * 0.3),
            topics=self.extract_topics(text),
            key_phrases=self.extract_key_phrases(text),
            metadata={
                "model_version": self.MODEL_VERSION,
                "language": "en",
                "match_policy": self.match_policy,
                "positive_words_found": positive_count,
                "negative_words_found": negative_count,
                "total_words_analyzed": len(text.split()),
            },
        )

    def label_for_score(self, score: float) -> str:
        if score > self.positive_threshold:
            return "positive"
        if score < self.negative_threshold:
            return "negative"
        return "neutral"

    def extract_topics(self, text: str) -> list[str]:
        text_lower = text.lower()
        return [
            topic
            for topic, keywords in self.TOPIC_KEYWORDS.items()
            if any(self._contains(text_lower, keyword) for keyword in keywords)
        ]

    def extract_key_phrases(self, text: str) -> list[str]:
        phrases: list[str] = []
        for sentence in self._SENTENCE_SPLIT_REGEX.split(text):
            cleaned = " ".join(sentence.split())
            if not cleaned:
                continue
            if self._MIN_PHRASE_WORDS <= len(cleaned.split(" ")) <= self._MAX_PHRASE_WORDS:
                phrases.append(cleaned)
            if len(phrases) == self._MAX_KEY_PHRASES:
                break
        return phrases

    def derive_tags(self, result: SentimentResult) -> list[ReviewTag]:
        tags: list[ReviewTag] = []
        seen: set[tuple[str, str]] = set()
        for topic in result.topics:
            category, positive_name, negative_name = self.TOPIC_TAGS.get(topic, ("other", topic, topic))
            if result.label == "positive":
                name = positive_name
            elif result.label == "negative":
                name = negative_name
            else:
                name = topic

            key = (name, category)
            if key in seen:
                continue
            seen.add(key)
            tags.append(ReviewTag(name=name, category=category, confidence=result.confidence))
        return tags

    def _contains(self, text_lower: str, term: str) -> bool:
        if self.match_policy == "substring":
            return term in text_lower
        return self._patterns[term].search(text_lower) is not None
