"""Rate limiting and anti-spam checks run before anything is relayed.

Four rules, checked in order, first rejection wins:

1. IP volume         5/s, 40/min, 500/h per client IP
2. webhook volume    120/min, 2000/h per public webhook id
3. mention spam      @everyone at most 3/min, 20/day per IP
4. duplicate content same text at most 3/min, 20/day per IP

Each rule records the attempt before comparing, so rejected attempts still
count against later ones. Rules 1 and 2 are both recorded on every attempt;
rules 3 and 4 are skipped once a volume rule has rejected.
"""
import hashlib
import logging
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from .counters import SlidingWindowCounter, count_within

logger = logging.getLogger(__name__)

HOUR = 3600
DAY = 86400

# (window seconds, max events allowed inside it)
IP_LIMITS = ((1, 5), (60, 40), (HOUR, 500))
WEBHOOK_LIMITS = ((60, 120), (HOUR, 2000))
MENTION_LIMITS = ((60, 3), (DAY, 20))
DUPLICATE_LIMITS = ((60, 3), (DAY, 20))

BROADCAST_MENTION = "@everyone"

IP_RATE_LIMITED = "ip_rate_limited"
WEBHOOK_RATE_LIMITED = "webhook_rate_limited"
MENTION_SPAM = "mention_spam"
DUPLICATE_CONTENT = "duplicate_content"

MESSAGES = {
    IP_RATE_LIMITED: "IP rate limit exceeded",
    WEBHOOK_RATE_LIMITED: "Webhook rate limit exceeded",
    MENTION_SPAM: "Too many @everyone mentions",
    DUPLICATE_CONTENT: "Duplicate message spam",
}


@dataclass
class Decision:
    accepted: bool
    reason: Optional[str] = None

    @property
    def message(self):
        return MESSAGES.get(self.reason, "")


ACCEPT = Decision(True)


def _text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def extract_text(payload) -> str:
    """All human readable text of a Discord message payload, newline joined."""
    if not isinstance(payload, dict):
        return ""

    parts = [_text(payload.get("content"))]
    embeds = payload.get("embeds")
    if isinstance(embeds, list):
        for embed in embeds:
            if not isinstance(embed, dict):
                continue
            parts.append(_text(embed.get("title")))
            parts.append(_text(embed.get("description")))
            fields = embed.get("fields")
            if isinstance(fields, list):
                for field in fields:
                    if isinstance(field, dict):
                        parts.append(_text(field.get("name")))
                        parts.append(_text(field.get("value")))
    return "\n".join(p for p in parts if p)


def normalize_text(text: str) -> str:
    return text.strip().lower()


def fingerprint(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _exceeds(log, now, limits) -> bool:
    return any(count_within(log, now, window) > limit for window, limit in limits)


def _retention(limits) -> int:
    return max(window for window, _ in limits)


class AdmissionPipeline:
    def __init__(self):
        self.ip_hits = SlidingWindowCounter()
        self.webhook_hits = SlidingWindowCounter()
        self.mention_hits = SlidingWindowCounter()
        self.duplicate_hits = SlidingWindowCounter()
        self._lock = Lock()

    def admit(self, ip: str, identifier: str, payload, now: float) -> Decision:
        with self._lock:
            # both volume rules always record; content rules only run when they pass
            ip_decision = self._check_ip(ip, now)
            webhook_decision = self._check_webhook(identifier, now)
            decision = (
                ip_decision
                or webhook_decision
                or self._check_content(ip, payload, now)
                or ACCEPT
            )
        if not decision.accepted:
            logger.warning("rejected ip=%s id=%s reason=%s", ip, identifier, decision.reason)
        return decision

    def _check_ip(self, ip, now):
        log = self.ip_hits.record(ip, now, _retention(IP_LIMITS))
        if _exceeds(log, now, IP_LIMITS):
            return Decision(False, IP_RATE_LIMITED)
        return None

    def _check_webhook(self, identifier, now):
        log = self.webhook_hits.record(identifier, now, _retention(WEBHOOK_LIMITS))
        if _exceeds(log, now, WEBHOOK_LIMITS):
            return Decision(False, WEBHOOK_RATE_LIMITED)
        return None

    def _check_content(self, ip, payload, now):
        text = extract_text(payload)
        normalized = normalize_text(text)

        if BROADCAST_MENTION in normalized:
            log = self.mention_hits.record(ip, now, _retention(MENTION_LIMITS))
            if _exceeds(log, now, MENTION_LIMITS):
                return Decision(False, MENTION_SPAM)

        if normalized:
            key = "%s:%s" % (ip, fingerprint(normalized))
            log = self.duplicate_hits.record(key, now, _retention(DUPLICATE_LIMITS))
            if _exceeds(log, now, DUPLICATE_LIMITS):
                return Decision(False, DUPLICATE_CONTENT)
        return None

    def purge(self, now: float) -> int:
        """Drop keys idle for longer than their longest window."""
        with self._lock:
            return (
                self.ip_hits.purge(now, _retention(IP_LIMITS))
                + self.webhook_hits.purge(now, _retention(WEBHOOK_LIMITS))
                + self.mention_hits.purge(now, _retention(MENTION_LIMITS))
                + self.duplicate_hits.purge(now, _retention(DUPLICATE_LIMITS))
            )
