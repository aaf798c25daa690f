"""Image CAPTCHAs: random answers drawn as noisy PNGs, verified once."""

from __future__ import annotations

import hmac
import math
import random
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Protocol

from svcbase.raster import CHAR_BOX_H, CHAR_BOX_W, Canvas, draw_char, random_dark_color

DEFAULT_CHARSET = "0123456789ABCDEFGHJKMNPQRSTUVWXYZ"


class _Store(Protocol):
    def put(self, id: str, answer: str, ttl: float) -> None: ...

    def take(self, id: str) -> str | None: ...


class MemoryStore:
    """In-process challenge store with background eviction of expired entries."""

    def __init__(self, interval: float = 60.0) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[str, float]] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        if interval > 0:
            self._thread = threading.Thread(
                target=self._sweep_loop, args=(interval,), name="captcha-sweeper", daemon=True
            )
            self._thread.start()

    def put(self, id: str, answer: str, ttl: float) -> None:
        """Store answer under id for ttl seconds."""
        with self._lock:
            self._entries[id] = (answer, time.monotonic() + ttl)

    def take(self, id: str) -> str | None:
        """Remove id and return its answer, or None if unknown or expired."""
        with self._lock:
            entry = self._entries.pop(id, None)
        if entry is None:
            return None
        answer, expires = entry
        if time.monotonic() > expires:
            return None
        return answer

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def close(self) -> None:
        """Stop the background sweeper; safe to call more than once."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            self._evict_expired()

    def _evict_expired(self) -> None:
        now = time.monotonic()
        with self._lock:
            for key in [k for k, (_, exp) in self._entries.items() if now > exp]:
                del self._entries[key]


@dataclass
class CaptchaOptions:
    """Settings for Captcha; zero values fall back to defaults. ttl is in seconds."""

    width: int = 160
    height: int = 60
    length: int = 5
    charset: str = DEFAULT_CHARSET
    ttl: float = 300.0
    case_sensitive: bool = False
    store: Any = None


class Captcha:
    """Issues and verifies single-use image challenges."""

    def __init__(self, options: CaptchaOptions | None = None) -> None:
        opts = options or CaptchaOptions()
        self.width = opts.width or 160
        self.height = opts.height or 60
        self.length = opts.length or 5
        self.charset = opts.charset or DEFAULT_CHARSET
        self.ttl = opts.ttl or 300.0
        self.case_sensitive = opts.case_sensitive
        self.store: _Store = opts.store if opts.store is not None else MemoryStore()

    def generate(self) -> tuple[str, bytes]:
        """Create and store a challenge; return (id, png_bytes)."""
        answer = self.random_answer()
        challenge_id = random_id()
        self.store.put(challenge_id, answer, self.ttl)
        return challenge_id, self._draw(answer).to_png()

    def verify(self, id: str, user_answer: str) -> bool:
        """Check and consume the challenge; unknown or expired ids give False."""
        answer = self.store.take(id)
        if answer is None:
            return False
        expected, given = answer, user_answer
        if not self.case_sensitive:
            expected, given = expected.lower(), given.lower()
        return hmac.compare_digest(expected.encode(), given.encode())

    def random_answer(self) -> str:
        """An unpredictable answer drawn uniformly from the charset."""
        return "".join(secrets.choice(self.charset) for _ in range(self.length))

    def _draw(self, answer: str) -> Canvas:
        w, h = self.width, self.height
        canvas = Canvas(w, h, (240, 240, 240, 255))
        for _ in range((w * h) // 20):
            canvas.set(random.randrange(w), random.randrange(h), random_dark_color())
        for _ in range(3):
            _draw_sine_curve(canvas, random_dark_color())
        x0 = max(4, int((w - len(answer) * CHAR_BOX_W) / 2))
        y_base = int((h - CHAR_BOX_H) / 2)
        for i, ch in enumerate(answer):
            draw_char(canvas, x0 + i * CHAR_BOX_W, y_base + random.randrange(6) - 3, ch)
        return canvas


def _draw_sine_curve(canvas: Canvas, color: tuple[int, int, int, int]) -> None:
    w, h = canvas.width, canvas.height
    amp = h / 4
    period = w / (2 + random.random() * 2)
    y_off = h / 2 + (random.random() * h / 3 - h / 6)
    for x in range(w):
        y = int(amp * math.sin(x / period) + y_off)
        if 0 <= y < h:
            canvas.set(x, y, color)
            if y + 1 < h:
                canvas.set(x, y + 1, color)


def random_id() -> str:
    """A random 24-character lowercase hex identifier."""
    return secrets.token_hex(12)