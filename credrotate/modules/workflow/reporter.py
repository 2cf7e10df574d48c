"""Operator-facing progress output, routed through logging."""

import logging

logger = logging.getLogger("credrotate.workflow")

BANNER_WIDTH = 40


class StepReporter:
    """Announces numbered steps and their outcomes."""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def banner(self, title: str) -> None:
        inner = BANNER_WIDTH
        self.log.info("")
        self.log.info("╔" + "═" * inner + "╗", extra={"kind": "banner"})
        self.log.info("║  " + title.ljust(inner - 2) + "║", extra={"kind": "banner"})
        self.log.info("╚" + "═" * inner + "╝", extra={"kind": "banner"})
        self.log.info("")

    def heading(self, text: str) -> None:
        self.log.info(text, extra={"kind": "heading"})

    def step(self, number: int, text: str) -> None:
        self.log.info(f"Step {number}: {text}", extra={"kind": "step"})

    def success(self, text: str) -> None:
        self.log.info(text, extra={"kind": "success"})

    def detail(self, text: str) -> None:
        self.log.info(text, extra={"kind": "detail"})

    def warning(self, text: str) -> None:
        self.log.warning(text)

    def error(self, text: str) -> None:
        self.log.error(text)
