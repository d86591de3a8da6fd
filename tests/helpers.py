import re
from collections import deque

from fair_dice import SecureRandomSource

HMAC_RE = re.compile(r"HMAC=([0-9A-F]{64})")
REVEAL_RE = re.compile(r": (\d+) \(KEY=([0-9A-F]{64})\)\.")


class ScriptedRandom(SecureRandomSource):
    """Secure source stand-in that returns queued values and distinct keys."""

    def __init__(self, values):
        super().__init__()
        self.values = deque(values)
        self.keys_issued = 0

    def generate_uniform(self, max_value):
        value = self.values.popleft()
        assert 0 <= value <= max_value, (value, max_value)
        return value

    def generate_key(self):
        self.keys_issued += 1
        return bytes([self.keys_issued]) * self.key_size


class ScriptedBytes(SecureRandomSource):
    """Feeds fixed byte strings to the real rejection sampler."""

    def __init__(self, chunks):
        super().__init__()
        self.chunks = deque(chunks)
        self.requested = []

    def random_bytes(self, count):
        self.requested.append(count)
        return self.chunks.popleft()


class ScriptedConsole:
    def __init__(self, answers):
        self.answers = deque(answers)
        self.lines = []

    def input(self, prompt):
        if not self.answers:
            raise EOFError
        return self.answers.popleft()

    def output(self, text):
        self.lines.extend(str(text).split("\n"))

    def text(self):
        return "\n".join(self.lines)


def commitment_pairs(text):
    """Pair every shown digest with the value/key revealed after it."""
    return list(zip(HMAC_RE.findall(text), REVEAL_RE.findall(text)))
