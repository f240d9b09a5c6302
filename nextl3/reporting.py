"""Diagnostic reporters.

Every pipeline stage takes a reporter and calls ``report(message)`` for
non-fatal observations. Nothing here ever raises into the pipeline.
"""
import os
import sys
from typing import List


HIDE_ENV = 'NEXTL3_HIDE_DIAGNOSTICS'


class StderrReporter:
    """Print tagged diagnostics to stderr unless NEXTL3_HIDE_DIAGNOSTICS=1."""

    def __init__(self, tag: str = 'nextl3', stream=None):
        self.tag = tag
        self.stream = stream
        self.enabled = os.environ.get(HIDE_ENV) != '1'

    def report(self, message: str):
        if not self.enabled:
            return
        print(f"[{self.tag}] {message}", file=self.stream or sys.stderr)

    def child(self, tag: str) -> 'StderrReporter':
        return StderrReporter(tag, self.stream)


class ListReporter:
    """Collect diagnostics in memory."""

    def __init__(self):
        self.messages: List[str] = []

    def report(self, message: str):
        self.messages.append(message)

    def child(self, tag: str) -> 'ListReporter':
        return self

    def __contains__(self, text: str) -> bool:
        return any(text in m for m in self.messages)


class NullReporter:
    def report(self, message: str):
        pass

    def child(self, tag: str) -> 'NullReporter':
        return self
